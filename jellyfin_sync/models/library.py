"""
Dataclasses for the local library cache and the requests accepted by the
download queue.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union


@dataclass
class Album:
    """One cached remote album. `local_directory` is the only 'downloaded' marker."""

    id: int
    remote_id: str
    title: str
    artist: str
    cover_image_id: Optional[str] = None
    local_directory: Optional[str] = None
    local_cover_path: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_downloaded(self) -> bool:
        return self.local_directory is not None


@dataclass
class Track:
    """One cached remote track, owned by exactly one album."""

    id: int
    remote_id: str
    album_id: int
    name: str
    track_index: int
    local_path: Optional[str] = None


@dataclass
class RemoteItem:
    """The subset of a Jellyfin item the sync engine relies on."""

    id: str
    name: str
    album_artist: Optional[str] = None
    index_number: Optional[int] = None
    container: Optional[str] = None
    primary_image_tag: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RemoteItem":
        """Builds an item from a raw Jellyfin JSON object (PascalCase keys)."""
        image_tags = data.get("ImageTags") or {}
        return cls(
            id=str(data["Id"]),
            name=data.get("Name") or "Unknown",
            album_artist=data.get("AlbumArtist"),
            index_number=data.get("IndexNumber"),
            container=data.get("Container"),
            primary_image_tag=image_tags.get("Primary"),
        )


@dataclass
class AlbumSearchItem:
    id: str
    name: str
    album_artist: str
    downloaded: bool = False


@dataclass
class AlbumSearchResult:
    total_record_count: int
    start_index: int
    items: list[AlbumSearchItem] = field(default_factory=list)


@dataclass
class AlbumDetails:
    """A downloaded album as needed for offline playback."""

    album: Album
    tracks: list[Track] = field(default_factory=list)


@dataclass(frozen=True)
class AlbumDownloadRequest:
    remote_id: str
    user_id: Optional[str] = None


@dataclass(frozen=True)
class TrackDownloadRequest:
    remote_id: str
    destination: Path


DownloadRequest = Union[AlbumDownloadRequest, TrackDownloadRequest]
