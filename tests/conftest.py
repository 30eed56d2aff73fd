"""Shared fixtures: an in-memory Jellyfin catalog, a recording notifier and a temp library."""

from pathlib import Path
from typing import Any, Optional

import pytest

from jellyfin_sync.exceptions import NotFoundError
from jellyfin_sync.models.library import RemoteItem
from jellyfin_sync.storage.repository import LibraryRepository


class FakeCatalog:
    """Serves albums from dictionaries and writes small byte payloads on download."""

    def __init__(self) -> None:
        self.albums: dict[str, RemoteItem] = {}
        self.children: dict[str, list[RemoteItem]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_downloads: set[str] = set()
        self.fail_images = False

    def add_album(
        self,
        album_id: str,
        name: str,
        artist: Optional[str],
        track_names: list[str],
        image_tag: Optional[str] = "tag-1",
        container: str = "flac",
    ) -> list[RemoteItem]:
        self.albums[album_id] = RemoteItem(
            id=album_id, name=name, album_artist=artist, primary_image_tag=image_tag
        )
        tracks = [
            RemoteItem(
                id=f"{album_id}-t{i}",
                name=track_name,
                album_artist=artist,
                index_number=i,
                container=container,
            )
            for i, track_name in enumerate(track_names, 1)
        ]
        self.children[album_id] = tracks
        return tracks

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def get_item(
        self, item_id: str, token: str, user_id: Optional[str] = None
    ) -> RemoteItem:
        self.calls.append(("get_item", item_id))
        if item_id not in self.albums:
            raise NotFoundError(f"Item '{item_id}' was not found on the server.")
        return self.albums[item_id]

    async def list_children(self, parent_id: str, token: str) -> list[RemoteItem]:
        self.calls.append(("list_children", parent_id))
        # Reversed so callers have to sort by index themselves.
        return list(reversed(self.children.get(parent_id, [])))

    async def download_item(self, item_id: str, destination: Path, token: str) -> int:
        self.calls.append(("download_item", item_id))
        if item_id in self.fail_downloads:
            raise ConnectionError(f"connection reset while fetching {item_id}")
        payload = f"audio:{item_id}".encode()
        destination.write_bytes(payload)
        return len(payload)

    async def download_image(
        self, item_id: str, image_tag: str, destination: Path, token: str
    ) -> int:
        self.calls.append(("download_image", item_id))
        if self.fail_images:
            raise ConnectionError("image endpoint unavailable")
        destination.write_bytes(b"\xff\xd8jpeg")
        return 6


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, dict(payload)))

    def names(self) -> list[str]:
        return [event for event, _ in self.events]


class StaticCredentials:
    def __init__(self, token: Optional[str] = "secret-token") -> None:
        self.token = token

    def current_token(self) -> Optional[str]:
        return self.token


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def credentials() -> StaticCredentials:
    return StaticCredentials()


@pytest.fixture
def repository(tmp_path: Path) -> LibraryRepository:
    return LibraryRepository(tmp_path / "data" / "library.sqlite")


@pytest.fixture
def downloads_dir(tmp_path: Path) -> Path:
    return tmp_path / "data" / "downloads"
