"""Tests for the batch SyncEngine and conflict resolvers."""

from __future__ import annotations

import pytest

from wp_md_sync.converters import item_to_text
from wp_md_sync.sync.detector import content_digest
from wp_md_sync.sync.engine import SyncEngine
from wp_md_sync.sync.models import FileStatus, SyncAction
from wp_md_sync.sync.resolver import (
    LocalWinsResolver,
    RemoteWinsResolver,
    create_resolver,
)

PAGE = "post-types/page/about.md"
FRESH = "post-types/post/fresh.md"
FRESH_TEXT = "---\ntitle: Fresh\nstatus: draft\n---\n<p>fresh</p>\n"


@pytest.fixture
def engine(session):
    return SyncEngine(session)


@pytest.fixture
async def pulled(engine, fake_client):
    """Engine whose site has ``about`` pulled and in sync."""
    fake_client.add_item("page", 7, "about", "<p>v1</p>")
    await engine.pull(["page"])
    return engine


def _statuses(report) -> dict[str, FileStatus]:
    return {e.path: e.status for e in report.entries}


# ---------------------------------------------------------------------------
# Pull / push
# ---------------------------------------------------------------------------


class TestPull:
    async def test_pull_defaults_to_all_types(self, engine, fake_client):
        report = await engine.pull()
        assert report.operation == "pull"
        listed = [c[1] for c in fake_client.calls_of("list_all")]
        assert listed == list(engine.session.mapper.content_types)


class TestPush:
    async def test_skips_unchanged_and_creates_untracked(
        self, pulled, fake_client, write_local
    ):
        write_local(FRESH, FRESH_TEXT)

        report = await pulled.push()

        actions = {r.path: r.action for r in report.results}
        assert actions == {
            PAGE: SyncAction.IGNORE,
            FRESH: SyncAction.CREATE_REMOTE,
        }
        assert fake_client.calls_of("update") == []
        assert report.ok

    async def test_pushes_modified_tracked_file(
        self, pulled, fake_client, read_local, write_local
    ):
        write_local(PAGE, read_local(PAGE) + "\n<p>more</p>\n")

        report = await pulled.push()

        assert [r.path for r in report.pushed] == [PAGE]
        assert len(fake_client.calls_of("update")) == 1

    async def test_file_filter_and_types(
        self, pulled, fake_client, write_local
    ):
        write_local(FRESH, FRESH_TEXT)
        write_local("post-types/post/other.md", FRESH_TEXT)

        report = await pulled.push(types=["post"], file_filter="fresh")

        assert [r.path for r in report.results] == [FRESH]

    async def test_dry_run_calls_nothing(
        self, pulled, fake_client, write_local
    ):
        write_local(FRESH, FRESH_TEXT)
        calls = len(fake_client.calls)

        report = await pulled.push(dry_run=True)

        assert report.dry_run
        assert len(fake_client.calls) == calls
        assert pulled.session.store.load().get(FRESH) is None

    async def test_one_failure_does_not_stop_batch(
        self, pulled, fake_client, write_local
    ):
        write_local("post-types/post/bad.md", "no front matter")
        write_local(FRESH, FRESH_TEXT)

        report = await pulled.push()

        assert [r.path for r in report.errors] == ["post-types/post/bad.md"]
        assert [r.path for r in report.created_remote] == [FRESH]
        assert not report.ok


class TestForcePush:
    async def test_recreates_deleted_items(
        self, pulled, fake_client, read_local
    ):
        fake_client.delete("page", 7)

        report = await pulled.force_push()

        assert report.operation == "force-push"
        assert [r.path for r in report.created_remote] == [PAGE]
        assert "id: 100" in read_local(PAGE)
        entry = pulled.session.store.load().get(PAGE)
        assert entry.remote_id == 100

    async def test_pushes_unchanged_files_too(self, pulled, fake_client):
        report = await pulled.force_push()
        assert [r.path for r in report.pushed] == [PAGE]
        assert len(fake_client.calls_of("update")) == 1


# ---------------------------------------------------------------------------
# New
# ---------------------------------------------------------------------------


class TestNew:
    async def test_creates_and_tracks(self, engine, fake_client, read_local):
        result = await engine.new("post", "Hello World")

        assert result.success
        assert result.action == SyncAction.CREATE_REMOTE
        assert result.path == "post-types/post/hello-world.md"
        assert result.remote_id == 100
        data = fake_client.calls_of("create")[0][2]
        assert data["status"] == "draft"
        assert data["slug"] == "hello-world"

        text = read_local(result.path)
        entry = engine.session.store.load().get(result.path)
        assert entry.remote_id == 100
        assert entry.local_digest == content_digest(text)

    async def test_publish_flag(self, engine, fake_client):
        await engine.new("page", "About", publish=True, parent=3)
        data = fake_client.calls_of("create")[0][2]
        assert data["status"] == "publish"
        assert data["parent"] == 3

    async def test_template_part_area(self, engine, fake_client):
        result = await engine.new(
            "wp_template_part", "Site Footer", area="footer"
        )
        assert result.path == "template-parts/site-footer.md"
        assert fake_client.calls_of("create")[0][2]["area"] == "footer"

    async def test_empty_title_rejected(self, engine, fake_client):
        with pytest.raises(ValueError, match="Title cannot be empty"):
            await engine.new("post", "  ")
        assert fake_client.calls == []

    async def test_unknown_type_rejected(self, engine):
        with pytest.raises(ValueError, match="Unknown content type"):
            await engine.new("product", "x")

    async def test_media_cannot_be_created(self, engine, fake_client):
        with pytest.raises(ValueError, match="Cannot create"):
            await engine.new("attachment", "x")
        assert fake_client.calls == []

    async def test_existing_untracked_file_is_not_overwritten(
        self, engine, write_local, read_local
    ):
        write_local(PAGE, "my own notes\n")

        result = await engine.new("page", "About")

        assert result.path == "post-types/page/about-100.md"
        assert read_local(PAGE) == "my own notes\n"
        assert engine.session.store.load().get(PAGE) is None

    async def test_remote_failure_is_reported(self, engine, fake_client):
        fake_client.failing_types.add("post")
        result = await engine.new("post", "Hello")
        assert not result.success
        assert "boom" in result.error


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class TestUpload:
    async def test_uploads_and_tracks_metadata(
        self, engine, fake_client, read_local, tmp_path
    ):
        image = tmp_path / "Logo.png"
        image.write_bytes(b"\x89PNG")

        result = await engine.upload(image, alt_text="Company logo")

        assert result.success
        assert result.path == "media/logo.md"
        assert result.remote_id == 100
        assert result.message == (
            "https://wp.example.com/wp-content/uploads/Logo.png"
        )
        assert fake_client.calls_of("upload_media") == [
            ("upload_media", "Logo.png", None, "Company logo", None)
        ]
        assert "![Company logo](" in read_local("media/logo.md")
        entry = engine.session.store.load().get("media/logo.md")
        assert entry.content_type == "attachment"
        assert entry.remote_id == 100

        report = await engine.pull(["attachment"])
        assert report.pulled == []

    async def test_missing_file_rejected(self, engine, fake_client, tmp_path):
        with pytest.raises(ValueError, match="File not found"):
            await engine.upload(tmp_path / "nope.png")
        assert fake_client.calls == []

    async def test_rejected_upload_is_reported(
        self, engine, fake_client, tmp_path
    ):
        fake_client.failing_types.add("attachment")
        image = tmp_path / "huge.png"
        image.write_bytes(b"x")

        result = await engine.upload(image)

        assert not result.success
        assert "Upload failed" in result.error
        assert not engine.session.store.path.exists()


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class TestStatus:
    async def test_local_classification(
        self, pulled, fake_client, write_local, read_local, site_config
    ):
        fake_client.add_item("page", 8, "team", "<p>team</p>")
        await pulled.pull(["page"])
        write_local(PAGE, read_local(PAGE) + "\nedit\n")
        write_local(FRESH, FRESH_TEXT)
        (site_config.content_root / "post-types/page/team.md").unlink()

        report = await pulled.status()

        assert _statuses(report) == {
            PAGE: FileStatus.MODIFIED,
            FRESH: FileStatus.NEW_LOCAL,
            "post-types/page/team.md": FileStatus.MISSING,
        }
        assert not report.remote_checked
        assert not report.in_sync

    async def test_in_sync(self, pulled):
        report = await pulled.status()
        assert _statuses(report) == {PAGE: FileStatus.SYNCED}
        assert report.in_sync
        assert report.last_sync is not None

    async def test_remote_classification(
        self, pulled, fake_client, site_config
    ):
        fake_client.set_body("page", 7, "<p>v2</p>")
        fake_client.add_item("post", 8, "hello", "<p>hi</p>")

        report = await pulled.status(remote=True)

        assert _statuses(report) == {
            PAGE: FileStatus.REMOTE_CHANGED,
            "post-types/post/hello.md": FileStatus.REMOTE_NEW,
        }
        assert report.remote_checked
        assert not (
            site_config.content_root / "post-types/post/hello.md"
        ).exists()

    async def test_remote_conflict_and_errors(
        self, pulled, fake_client, read_local, write_local
    ):
        write_local(PAGE, read_local(PAGE) + "\nedit\n")
        fake_client.set_body("page", 7, "<p>v2</p>")
        fake_client.failing_types.add("wp_block")

        report = await pulled.status(remote=True)

        assert _statuses(report)[PAGE] == FileStatus.CONFLICT
        assert len(report.errors) == 1
        assert report.errors[0].startswith("patterns:")


# ---------------------------------------------------------------------------
# Conflict resolution
# ---------------------------------------------------------------------------


@pytest.fixture
async def conflicted(pulled, fake_client, read_local, write_local):
    write_local(PAGE, read_local(PAGE) + "\n<p>local</p>\n")
    fake_client.set_body("page", 7, "<p>remote</p>")
    report = await pulled.pull(["page"])
    assert [r.path for r in report.conflicts] == [PAGE]
    return pulled


class TestResolve:
    def test_factory(self):
        assert isinstance(create_resolver("local"), LocalWinsResolver)
        assert isinstance(create_resolver("remote"), RemoteWinsResolver)
        with pytest.raises(ValueError, match="Unknown conflict side"):
            create_resolver("both")

    async def test_local_wins(self, conflicted, fake_client, read_local):
        local = read_local(PAGE)

        result = await conflicted.resolve(PAGE, "local")

        assert result.action == SyncAction.PUSH
        assert "<p>local</p>" in fake_client.items["page"][7]["content"][
            "raw"
        ]
        entry = conflicted.session.store.load().get(PAGE)
        assert entry.local_digest == content_digest(local)
        assert entry.remote_digest == content_digest(local)

    async def test_remote_wins(self, conflicted, fake_client, read_local):
        result = await conflicted.resolve(PAGE, "remote")

        assert result.action == SyncAction.PULL
        remote = item_to_text(fake_client.items["page"][7], "page")
        assert read_local(PAGE) == remote
        entry = conflicted.session.store.load().get(PAGE)
        assert entry.local_digest == content_digest(remote)

        report = await conflicted.pull(["page"])
        assert report.conflicts == []

    async def test_remote_wins_needs_tracked_path(self, engine):
        result = await engine.resolve(FRESH, "remote")
        assert not result.success
        assert "not tracked" in result.error

    async def test_resolve_accepts_absolute_path(
        self, conflicted, site_config
    ):
        result = await conflicted.resolve(
            str(site_config.content_root / PAGE), "remote"
        )
        assert result.path == PAGE

    async def test_conflict_diff(self, conflicted):
        lines = await conflicted.conflict_diff(PAGE)
        diff = "".join(lines)
        assert "+<p>remote</p>" in diff
        assert "-<p>local</p>" in diff
        assert lines[0].startswith("--- local: ")

    async def test_conflict_diff_untracked(self, engine):
        with pytest.raises(ValueError, match="not tracked"):
            await engine.conflict_diff(FRESH)


class TestNormalizePath:
    def test_content_relative(self, engine):
        assert engine.normalize_path(PAGE) == PAGE

    def test_absolute_outside_root(self, engine, tmp_path):
        with pytest.raises(ValueError, match="outside"):
            engine.normalize_path(str(tmp_path.parent / "x.md"))

    @pytest.mark.parametrize(
        "path, message",
        [
            ("../x.md", "cannot contain"),
            ("post-types/post/a.txt", "must be a .md file"),
        ],
    )
    def test_invalid(self, engine, path, message):
        with pytest.raises(ValueError, match=message):
            engine.normalize_path(path)
