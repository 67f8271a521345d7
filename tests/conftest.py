"""Shared pytest fixtures for wp-md-sync tests."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from wp_md_sync.config import SiteConfig
from wp_md_sync.config_schema import SyncSection
from wp_md_sync.content_types import CONTENT_TYPES
from wp_md_sync.exceptions import NotFoundError, TransportError
from wp_md_sync.notifier import SyncEvent
from wp_md_sync.sync.session import SiteSession


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live WordPress site",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live WordPress site"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

_RAW_FIELDS = ("title", "content", "excerpt")


class FakeWordPressClient:
    """In-memory stand-in for ``WordPressClient``.

    Items are stored the way the REST API returns them with
    ``context=edit``: ``title``/``content`` are ``{"raw": ...}`` objects.
    """

    def __init__(self) -> None:
        self.items: dict[str, dict[int, dict[str, Any]]] = {}
        self.calls: list[tuple] = []
        self.failing_types: set[str] = set()
        self.next_id = 100

    # -- test helpers --------------------------------------------------

    def add_item(
        self,
        content_type: str,
        remote_id: int,
        slug: str,
        body: str,
        title: str | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        item = {
            "id": remote_id,
            "slug": slug,
            "status": "publish",
            "title": {"raw": title if title is not None else slug.title()},
            "content": {"raw": body},
            "date": "2024-01-01T00:00:00",
            "modified": "2024-01-01T00:00:00",
            **extra,
        }
        self.items.setdefault(content_type, {})[remote_id] = item
        return item

    def set_body(self, content_type: str, remote_id: int, body: str) -> None:
        self.items[content_type][remote_id]["content"] = {"raw": body}

    def delete(self, content_type: str, remote_id: int) -> None:
        del self.items[content_type][remote_id]

    def calls_of(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    # -- client API ----------------------------------------------------

    def list_all(self, content_type: str) -> list[dict[str, Any]]:
        self.calls.append(("list_all", content_type))
        if content_type in self.failing_types:
            raise TransportError("boom", status_code=500)
        return [
            copy.deepcopy(i)
            for i in self.items.get(content_type, {}).values()
        ]

    def fetch_one(self, content_type: str, remote_id: int | str) -> dict:
        self.calls.append(("fetch_one", content_type, remote_id))
        try:
            return copy.deepcopy(self.items[content_type][int(remote_id)])
        except KeyError:
            raise NotFoundError(f"{content_type} {remote_id} not found")

    def _apply(self, item: dict, data: dict) -> None:
        for key, value in data.items():
            item[key] = {"raw": value} if key in _RAW_FIELDS else value

    def create(self, content_type: str, data: dict) -> dict:
        self.calls.append(("create", content_type, data))
        if content_type in self.failing_types:
            raise TransportError("boom", status_code=500)
        remote_id = self.next_id
        self.next_id += 1
        item = {"id": remote_id, "status": "draft", "slug": ""}
        self._apply(item, data)
        self.items.setdefault(content_type, {})[remote_id] = item
        return copy.deepcopy(item)

    def update(
        self, content_type: str, remote_id: int | str, data: dict
    ) -> dict:
        self.calls.append(("update", content_type, remote_id, data))
        if content_type in self.failing_types:
            raise TransportError("boom", status_code=500)
        try:
            item = self.items[content_type][int(remote_id)]
        except KeyError:
            raise NotFoundError(f"{content_type} {remote_id} not found")
        self._apply(item, data)
        return copy.deepcopy(item)

    def upload_media(
        self,
        path: Path,
        title: str | None = None,
        alt_text: str | None = None,
        caption: str | None = None,
    ) -> dict:
        self.calls.append(("upload_media", path.name, title, alt_text, caption))
        if "attachment" in self.failing_types:
            raise TransportError("Upload failed", status_code=413)
        remote_id = self.next_id
        self.next_id += 1
        stem = path.stem.lower()
        url = f"https://wp.example.com/wp-content/uploads/{path.name}"
        item = {
            "id": remote_id,
            "slug": stem,
            "status": "inherit",
            "title": {"raw": title or path.stem},
            "caption": {"raw": caption or ""},
            "description": {"raw": ""},
            "alt_text": alt_text or "",
            "media_type": "image",
            "mime_type": "image/png",
            "source_url": url,
            "media_details": {
                "width": 640,
                "height": 480,
                "file": f"2024/01/{path.name}",
                "sizes": {
                    "thumbnail": {
                        "source_url": url.replace(".png", "-150x150.png"),
                        "width": 150,
                        "height": 150,
                    }
                },
            },
            "date": "2024-01-01T00:00:00",
            "modified": "2024-01-01T00:00:00",
        }
        self.items.setdefault("attachment", {})[remote_id] = item
        return copy.deepcopy(item)

    def validate_connection(self) -> str:
        self.calls.append(("validate_connection",))
        return "Admin"


class RecordingNotifier:
    """Notifier that keeps every event."""

    def __init__(self) -> None:
        self.events: list[SyncEvent] = []

    def notify(self, event: SyncEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.type for e in self.events]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def site_config(tmp_path: Path) -> SiteConfig:
    """A site rooted in a temporary directory."""
    return SiteConfig(
        name="testsite",
        site_url="https://wp.example.com",
        username="admin",
        app_password="abcd efgh ijkl",
        site_dir=tmp_path,
    )


@pytest.fixture
def fake_client() -> FakeWordPressClient:
    return FakeWordPressClient()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def short_folder_types():
    """Path table where pages live directly under ``pages/``."""
    return {
        **CONTENT_TYPES,
        "page": CONTENT_TYPES["page"].model_copy(update={"folder": "pages"}),
    }


@pytest.fixture
def session(site_config, fake_client, notifier) -> SiteSession:
    """A session wired to the fake client and a recording notifier."""
    return SiteSession(
        site_config,
        sync=SyncSection(suppression_ms=2000),
        client=fake_client,
        notifier=notifier,
    )


@pytest.fixture
def write_local(site_config):
    """Write a file under the content root; returns its absolute path."""

    def _write(rel_path: str, text: str) -> Path:
        path = site_config.content_root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def read_local(site_config):
    def _read(rel_path: str) -> str:
        return (site_config.content_root / rel_path).read_text(
            encoding="utf-8"
        )

    return _read
