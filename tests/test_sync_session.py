"""Tests for SiteSession: polling, pushing and local events.

Covers:
- A pull writes the file and records local == remote digests
- Polling twice without remote changes writes nothing the second time
- Safe pulls, conflicts (reported every poll, never written) and --force
- Push parity for both update and create
- Failures leave the state untouched and never stop other paths/types
- Untracked local files are never created remotely by a watcher event
- Poll and push on one site are serialized
- Items sharing a slug get separate files; media files are never pushed
- Closing a session abandons remote calls still in flight
"""

from __future__ import annotations

import asyncio
import threading

import pytest

from wp_md_sync.config_schema import SyncSection
from wp_md_sync.converters import item_to_text
from wp_md_sync.sync.detector import content_digest
from wp_md_sync.sync.models import SyncAction
from wp_md_sync.sync.reconciler import NEW_FILE_ADVISORY, LocalEvent
from wp_md_sync.sync.session import SiteSession

PAGE = "post-types/page/about.md"


def _remote_text(fake_client, content_type="page", remote_id=7) -> str:
    return item_to_text(
        fake_client.items[content_type][remote_id], content_type
    )


async def _pull_about(session, fake_client, body="<p>v1</p>"):
    fake_client.add_item("page", 7, "about", body)
    return await session.poll(["page"])


# ---------------------------------------------------------------------------
# Remote -> local
# ---------------------------------------------------------------------------


class TestPoll:
    async def test_pull_writes_file_and_tracks_it(
        self, session, fake_client, read_local
    ):
        report = await _pull_about(session, fake_client)

        assert [r.path for r in report.pulled] == [PAGE]
        text = _remote_text(fake_client)
        assert read_local(PAGE) == text

        entry = session.store.load().get(PAGE)
        assert entry.remote_id == 7
        assert entry.content_type == "page"
        assert entry.local_digest == content_digest(text)
        assert entry.remote_digest == content_digest(text)

    async def test_second_poll_writes_nothing(
        self, session, fake_client, site_config
    ):
        await _pull_about(session, fake_client)
        state_mtime = session.store.path.stat().st_mtime_ns
        file_mtime = (site_config.content_root / PAGE).stat().st_mtime_ns
        before = session.store.load()

        report = await session.poll(["page"])

        assert report.pulled == []
        assert [r.action for r in report.results] == [SyncAction.IGNORE]
        assert session.store.path.stat().st_mtime_ns == state_mtime
        assert (
            site_config.content_root / PAGE
        ).stat().st_mtime_ns == file_mtime
        assert session.store.load().files == before.files

    async def test_remote_change_is_pulled_when_local_unchanged(
        self, session, fake_client, read_local
    ):
        await _pull_about(session, fake_client)
        fake_client.set_body("page", 7, "<p>v2</p>")

        report = await session.poll(["page"])

        assert [r.path for r in report.pulled] == [PAGE]
        text = _remote_text(fake_client)
        assert read_local(PAGE) == text
        entry = session.store.load().get(PAGE)
        assert entry.local_digest == entry.remote_digest
        assert entry.remote_digest == content_digest(text)

    async def test_both_sides_changed_is_conflict(
        self, session, fake_client, read_local, write_local
    ):
        await _pull_about(session, fake_client)
        edited = read_local(PAGE) + "\n<p>local edit</p>\n"
        write_local(PAGE, edited)
        fake_client.set_body("page", 7, "<p>v2</p>")
        before = session.store.load().get(PAGE)

        for _ in range(2):
            report = await session.poll(["page"])
            assert [r.path for r in report.conflicts] == [PAGE]
            assert report.pulled == []
            assert read_local(PAGE) == edited
            assert session.store.load().get(PAGE) == before

    async def test_force_overwrites_conflict(
        self, session, fake_client, read_local, write_local
    ):
        await _pull_about(session, fake_client)
        write_local(PAGE, read_local(PAGE) + "\nlocal edit\n")
        fake_client.set_body("page", 7, "<p>v2</p>")

        report = await session.poll(["page"], force=True)

        assert report.conflicts == []
        assert read_local(PAGE) == _remote_text(fake_client)

    async def test_dry_run_writes_nothing(
        self, session, fake_client, site_config
    ):
        fake_client.add_item("page", 7, "about", "<p>v1</p>")

        report = await session.poll(["page"], dry_run=True)

        assert [r.action for r in report.results] == [SyncAction.PULL]
        assert report.dry_run
        assert not (site_config.content_root / PAGE).exists()
        assert not session.store.path.exists()

    async def test_deleted_local_file_is_restored_on_remote_change(
        self, session, fake_client, site_config, read_local
    ):
        await _pull_about(session, fake_client)
        (site_config.content_root / PAGE).unlink()
        fake_client.set_body("page", 7, "<p>v2</p>")

        report = await session.poll(["page"])

        assert [r.path for r in report.pulled] == [PAGE]
        assert read_local(PAGE) == _remote_text(fake_client)

    async def test_tracked_item_keeps_its_path_after_slug_change(
        self, session, fake_client, site_config
    ):
        await _pull_about(session, fake_client)
        fake_client.items["page"][7]["slug"] = "about-us"

        report = await session.poll(["page"])

        assert [r.path for r in report.pulled] == [PAGE]
        renamed = site_config.content_root / "post-types/page/about-us.md"
        assert not renamed.exists()

    async def test_pages_sharing_a_slug_get_separate_files(
        self, session, fake_client, read_local
    ):
        fake_client.add_item("page", 7, "overview", "<p>Docs</p>", parent=1)
        fake_client.add_item("page", 8, "overview", "<p>Blog</p>", parent=2)

        first = await session.poll(["page"])

        assert sorted(r.path for r in first.pulled) == [
            "post-types/page/overview-8.md",
            "post-types/page/overview.md",
        ]
        assert "<p>Docs</p>" in read_local("post-types/page/overview.md")
        assert "<p>Blog</p>" in read_local("post-types/page/overview-8.md")

        # Listing order must not matter once both are tracked.
        pages = fake_client.items["page"]
        fake_client.items["page"] = {8: pages[8], 7: pages[7]}
        second = await session.poll(["page"])

        assert second.pulled == []
        assert {r.action for r in second.results} == {SyncAction.IGNORE}
        assert "<p>Docs</p>" in read_local("post-types/page/overview.md")

    async def test_failing_type_does_not_stop_other_types(
        self, session, fake_client, site_config
    ):
        fake_client.failing_types.add("post")
        fake_client.add_item("page", 7, "about", "<p>v1</p>")

        report = await session.poll(["post", "page"])

        assert [r.path for r in report.errors] == ["post-types/post"]
        assert [r.path for r in report.pulled] == [PAGE]
        assert (site_config.content_root / PAGE).exists()

    async def test_poll_defaults_to_configured_types(
        self, site_config, fake_client, notifier
    ):
        session = SiteSession(
            site_config,
            sync=SyncSection(poll_types=["page"]),
            client=fake_client,
            notifier=notifier,
        )
        await session.poll()
        assert fake_client.calls_of("list_all") == [("list_all", "page")]

    async def test_status_event_only_when_something_happened(
        self, session, fake_client, notifier
    ):
        await _pull_about(session, fake_client)
        await session.poll(["page"])
        assert notifier.types().count("status") == 1

    async def test_pull_into_short_folder(
        self, site_config, fake_client, notifier, short_folder_types
    ):
        session = SiteSession(
            site_config,
            client=fake_client,
            notifier=notifier,
            content_types=short_folder_types,
        )
        fake_client.add_item("page", 7, "about", "<p>About</p>")

        await session.poll(["page"])

        path = site_config.content_root / "pages/about.md"
        assert path.exists()
        digest = content_digest(path.read_text(encoding="utf-8"))
        entry = session.store.load().get("pages/about.md")
        assert entry.local_digest == digest
        assert entry.remote_digest == digest


# ---------------------------------------------------------------------------
# Local -> remote
# ---------------------------------------------------------------------------


class TestPush:
    async def test_update_sets_parity(
        self, session, fake_client, read_local, write_local
    ):
        await _pull_about(session, fake_client)
        edited = read_local(PAGE).replace("<p>v1</p>", "<p>edited</p>")
        write_local(PAGE, edited)

        result = await session.push_path(PAGE)

        assert result.success
        assert result.action == SyncAction.PUSH
        updates = fake_client.calls_of("update")
        assert len(updates) == 1
        assert updates[0][1:3] == ("page", 7)
        assert updates[0][3]["content"] == "<p>edited</p>"
        entry = session.store.load().get(PAGE)
        assert entry.local_digest == content_digest(edited)
        assert entry.remote_digest == content_digest(edited)

    async def test_create_sets_parity(
        self, session, fake_client, write_local, read_local
    ):
        text = "---\ntitle: Fresh\nstatus: draft\n---\n<p>body</p>\n"
        path = "post-types/post/fresh.md"
        write_local(path, text)

        result = await session.push_path(path)

        assert result.action == SyncAction.CREATE_REMOTE
        assert result.remote_id == 100
        assert fake_client.calls_of("create")[0][1] == "post"
        entry = session.store.load().get(path)
        assert entry.remote_id == 100
        assert entry.content_type == "post"
        assert entry.local_digest == content_digest(text)
        assert entry.remote_digest == content_digest(text)
        assert read_local(path) == text

    async def test_push_emits_pushing_then_pushed(
        self, session, fake_client, read_local, write_local, notifier
    ):
        await _pull_about(session, fake_client)
        write_local(PAGE, read_local(PAGE) + "\nmore\n")

        await session.push_path(PAGE)

        pushed = [e for e in notifier.events if e.file == PAGE]
        assert [e.type for e in pushed] == ["pushing", "pushed"]
        assert pushed[1].remote_id == 7
        assert pushed[1].url == "https://wp.example.com"

    async def test_transport_failure_leaves_state(
        self, session, fake_client, read_local, write_local, notifier
    ):
        await _pull_about(session, fake_client)
        write_local(PAGE, read_local(PAGE) + "\nmore\n")
        before = session.store.load().get(PAGE)
        fake_client.failing_types.add("page")

        result = await session.push_path(PAGE)

        assert not result.success
        assert "boom" in result.error
        assert session.store.load().get(PAGE) == before
        assert notifier.types()[-1] == "error"

    async def test_missing_front_matter_fails_that_path(
        self, session, write_local
    ):
        write_local("post-types/post/bad.md", "no front matter here")

        result = await session.push_path("post-types/post/bad.md")

        assert not result.success
        assert "frontmatter" in result.error
        assert session.store.load().get("post-types/post/bad.md") is None

    async def test_deleted_remote_item_fails_without_fallback(
        self, session, fake_client, read_local, write_local
    ):
        await _pull_about(session, fake_client)
        write_local(PAGE, read_local(PAGE) + "\nmore\n")
        fake_client.delete("page", 7)

        result = await session.push_path(PAGE)

        assert not result.success
        assert fake_client.calls_of("create") == []

    async def test_deleted_remote_item_recreated_with_fallback(
        self, session, fake_client, read_local, write_local
    ):
        await _pull_about(session, fake_client)
        write_local(PAGE, read_local(PAGE) + "\nmore\n")
        fake_client.delete("page", 7)

        result = await session.push_path(PAGE, create_fallback=True)

        assert result.action == SyncAction.CREATE_REMOTE
        assert result.remote_id == 100
        assert "id: 100" in read_local(PAGE)
        entry = session.store.load().get(PAGE)
        assert entry.remote_id == 100
        assert entry.local_digest == content_digest(read_local(PAGE))

    async def test_untracked_file_not_created_when_create_disallowed(
        self, session, fake_client, write_local
    ):
        write_local("post-types/post/fresh.md", "---\ntitle: Fresh\n---\nx")

        result = await session.push_path(
            "post-types/post/fresh.md", allow_create=False
        )

        assert result.action == SyncAction.ADVISORY
        assert fake_client.calls_of("create") == []

    async def test_media_file_is_never_pushed(
        self, session, fake_client, write_local
    ):
        write_local(
            "media/logo.md",
            "---\nid: 40\ntype: attachment\ntitle: Logo\n---\nEdited\n",
        )

        result = await session.push_path("media/logo.md")

        assert result.action == SyncAction.ADVISORY
        assert "read-only" in result.message
        assert fake_client.calls_of("update") == []
        assert fake_client.calls_of("create") == []

    async def test_dry_run_makes_no_remote_call(
        self, session, fake_client, write_local, notifier
    ):
        write_local("post-types/post/fresh.md", "---\ntitle: Fresh\n---\nx")

        result = await session.push_path(
            "post-types/post/fresh.md", dry_run=True
        )

        assert result.action == SyncAction.CREATE_REMOTE
        assert fake_client.calls == []
        assert notifier.events == []
        assert not session.store.path.exists()


# ---------------------------------------------------------------------------
# Local events
# ---------------------------------------------------------------------------


class TestHandleLocal:
    async def test_untracked_add_never_creates(
        self, session, fake_client, write_local
    ):
        path = "post-types/post/draft.md"
        write_local(path, "---\ntitle: Draft\n---\nbody")

        result = await session.handle_local(path, LocalEvent.ADD)

        assert result.action == SyncAction.ADVISORY
        assert result.message == NEW_FILE_ADVISORY
        assert fake_client.calls_of("create") == []
        assert session.store.load().get(path) is None

    async def test_tracked_change_pushes_update(
        self, session, fake_client, read_local, write_local
    ):
        await _pull_about(session, fake_client)
        edited = read_local(PAGE) + "\n<p>edit</p>\n"
        write_local(PAGE, edited)

        result = await session.handle_local(PAGE, LocalEvent.CHANGE)

        assert result.action == SyncAction.PUSH
        assert len(fake_client.calls_of("update")) == 1
        entry = session.store.load().get(PAGE)
        assert entry.local_digest == content_digest(edited)

    async def test_tracked_remove_untracks_without_remote_call(
        self, session, fake_client, site_config
    ):
        await _pull_about(session, fake_client)
        (site_config.content_root / PAGE).unlink()
        calls = len(fake_client.calls)

        result = await session.handle_local(PAGE, LocalEvent.REMOVE)

        assert result.action == SyncAction.UNTRACK
        assert session.store.load().get(PAGE) is None
        assert len(fake_client.calls) == calls


# ---------------------------------------------------------------------------
# Serialization and lifecycle
# ---------------------------------------------------------------------------


class TestSerialization:
    async def test_concurrent_poll_and_push_keep_both_updates(
        self, session, fake_client, read_local, write_local
    ):
        await _pull_about(session, fake_client)
        edited = read_local(PAGE) + "\n<p>edit</p>\n"
        write_local(PAGE, edited)
        fake_client.add_item("post", 8, "hello", "<p>hi</p>")

        await asyncio.gather(
            session.poll(["post"]), session.push_path(PAGE)
        )

        state = session.store.load()
        assert state.get("post-types/post/hello.md") is not None
        assert state.get(PAGE).local_digest == content_digest(edited)


class TestLifecycle:
    async def test_connect_announces_site(self, session, notifier):
        assert await session.connect() == "Admin"
        assert notifier.events[-1].type == "connected"
        assert notifier.events[-1].url == "https://wp.example.com"

    async def test_close_cancels_timers_and_suppression(self, session):
        async def _never():
            raise AssertionError("timer fired after close")

        session.timers.schedule(PAGE, 10, _never)
        session.suppression.add(PAGE)

        session.close()

        assert len(session.timers) == 0
        assert PAGE not in session.suppression

    async def test_remote_calls_run_on_session_daemon_threads(
        self, session, fake_client
    ):
        seen = []
        original = fake_client.list_all

        def _list(content_type):
            seen.append(threading.current_thread())
            return original(content_type)

        fake_client.list_all = _list
        await session.poll(["page"])

        assert seen[0].daemon
        assert seen[0].name.startswith("wp-md-testsite")

    async def test_close_abandons_in_flight_request(
        self, session, fake_client
    ):
        started = threading.Event()
        release = threading.Event()

        def _slow_list(content_type):
            started.set()
            release.wait(10)
            return []

        fake_client.list_all = _slow_list
        task = asyncio.create_task(session.poll(["page"]))
        try:
            assert await asyncio.to_thread(started.wait, 5)
            task.cancel()
            session.close()

            with pytest.raises(asyncio.CancelledError):
                await asyncio.wait_for(task, 1)
            with pytest.raises(RuntimeError):
                session.executor.submit(len, "x")
        finally:
            release.set()
