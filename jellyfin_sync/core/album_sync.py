"""
Turns a single album (or track) download request into local metadata plus files on disk.
"""

import logging
from pathlib import Path
from typing import Optional, Protocol

from rich.markup import escape

from jellyfin_sync.exceptions import LocalIOError, NotFoundError, UnauthenticatedError
from jellyfin_sync.models.library import (
    Album,
    AlbumDownloadRequest,
    DownloadRequest,
    RemoteItem,
    TrackDownloadRequest,
)
from jellyfin_sync.models.stats import SyncStats
from jellyfin_sync.storage.repository import LibraryRepository
from jellyfin_sync.utils.formatting import album_artist_name
from jellyfin_sync.utils.path import (
    COVER_FILENAME,
    album_directory,
    create_dir,
    remove_album_files,
    remove_album_tree,
    track_filename,
)

from .notifications import (
    ALBUM_DOWNLOAD_COMPLETED,
    ALBUM_DOWNLOAD_STARTED,
    TRACK_DOWNLOAD_COMPLETED,
    TRACK_DOWNLOAD_STARTED,
    NotificationSink,
)

log = logging.getLogger(__name__)


class CredentialSource(Protocol):
    def current_token(self) -> Optional[str]: ...


class RemoteCatalog(Protocol):
    async def get_item(
        self, item_id: str, token: str, user_id: Optional[str] = None
    ) -> RemoteItem: ...

    async def list_children(self, parent_id: str, token: str) -> list[RemoteItem]: ...

    async def download_item(self, item_id: str, destination: Path, token: str) -> int: ...

    async def download_image(
        self, item_id: str, image_tag: str, destination: Path, token: str
    ) -> int: ...


class AlbumSynchronizer:
    """
    Orchestrates the materialization of one album.

    Each step depends on the previous one succeeding; the first error aborts
    the album. The album row only gets its `local_directory` in the final
    step, so an interrupted or failed run always reads as "not downloaded".
    """

    def __init__(
        self,
        repository: LibraryRepository,
        client: RemoteCatalog,
        credentials: CredentialSource,
        notifier: NotificationSink,
        downloads_dir: Path,
        download_cover: bool = True,
        stats: Optional[SyncStats] = None,
    ):
        self.repository = repository
        self.client = client
        self.credentials = credentials
        self.notifier = notifier
        self.downloads_dir = downloads_dir
        self.download_cover = download_cover
        self.stats = stats or SyncStats()

    async def process(self, request: DownloadRequest) -> None:
        """Entry point for the download queue worker."""
        if isinstance(request, AlbumDownloadRequest):
            await self.sync_album(request.remote_id, request.user_id)
        elif isinstance(request, TrackDownloadRequest):
            await self.sync_track(request.remote_id, request.destination)
        else:
            raise TypeError(f"Unsupported download request: {request!r}")

    def _require_token(self) -> str:
        token = self.credentials.current_token()
        if not token:
            raise UnauthenticatedError("No access token available. Log in first.")
        return token

    async def sync_album(self, remote_album_id: str, user_id: Optional[str] = None) -> Album:
        """
        Downloads an album's cover and tracks and records them in the library.

        Requesting an album that is already downloaded is a no-op that still
        reports completion.
        """
        self.notifier.emit(ALBUM_DOWNLOAD_STARTED, {"id": remote_album_id})
        token = self._require_token()

        album = await self._sync_metadata(remote_album_id, token, user_id)
        if album.is_downloaded:
            self.stats.albums_already_downloaded += 1
            log.info(
                f"[yellow]○ Skipping:[/] {escape(album.artist)} - "
                f"{escape(album.title)} (already downloaded)"
            )
            self.notifier.emit(ALBUM_DOWNLOAD_COMPLETED, {"id": remote_album_id})
            return album

        log.info(f"\n[bold cyan]▶ Album:[/] {escape(album.artist)} - {escape(album.title)}")
        album_dir = album_directory(self.downloads_dir, album.artist, album.title)
        self._make_dir(album_dir)

        cover_path = await self._fetch_cover(album, album_dir, token)

        remote_tracks = await self.client.list_children(remote_album_id, token)
        await self._download_tracks(album, remote_tracks, album_dir, token)

        await self.repository.finalize_album(remote_album_id, album_dir, cover_path)
        self.stats.albums_completed += 1
        log.info(
            f"[green]✓ Downloaded[/] {escape(album.title)} "
            f"({len(remote_tracks)} tracks) to [dim]{escape(str(album_dir))}[/dim]"
        )
        self.notifier.emit(ALBUM_DOWNLOAD_COMPLETED, {"id": remote_album_id})

        return await self.repository.find_album_by_remote_id(remote_album_id) or album

    async def _sync_metadata(
        self, remote_album_id: str, token: str, user_id: Optional[str]
    ) -> Album:
        """Reuses the cached album row, or fetches the remote item and inserts one."""
        if album := await self.repository.find_album_by_remote_id(remote_album_id):
            return album

        item = await self.client.get_item(remote_album_id, token, user_id)
        log.debug(f"Caching metadata for album '{remote_album_id}' ({item.name}).")
        return await self.repository.create_album(
            remote_album_id,
            item.name,
            album_artist_name(item),
            item.primary_image_tag,
        )

    async def _fetch_cover(self, album: Album, album_dir: Path, token: str) -> Optional[Path]:
        """
        Downloads this album's `cover.jpg`. Returns its path, or None if the album
        has no art. A file left by another album in the same directory is replaced.
        """
        if not self.download_cover or not album.cover_image_id:
            return None

        cover_path = album_dir / COVER_FILENAME
        log.debug(f"Downloading cover for album ID {album.remote_id}")
        await self.client.download_image(
            album.remote_id, album.cover_image_id, cover_path, token
        )
        self.stats.covers_downloaded += 1
        return cover_path

    async def _download_tracks(
        self,
        album: Album,
        remote_tracks: list[RemoteItem],
        album_dir: Path,
        token: str,
    ) -> None:
        total = len(remote_tracks)
        ordered = sorted(remote_tracks, key=lambda t: t.index_number or 0)

        for item in ordered:
            track_path = album_dir / track_filename(
                item.name, item.index_number, total, item.container
            )
            track = await self.repository.insert_track(
                album.id, item.id, item.name, item.index_number or 0
            )

            if track.local_path and Path(track.local_path).is_file():
                log.debug(f"Track '{item.name}' already on disk, skipping.")
                continue

            try:
                written = await self.client.download_item(item.id, track_path, token)
            except Exception:
                self.stats.tracks_failed += 1
                log.error(f"  [red]✗ Failed:[/] {escape(album.title)} - {escape(item.name)}")
                raise

            await self.repository.mark_track_downloaded(track.id, track_path)
            self.stats.tracks_downloaded += 1
            self.stats.total_size_downloaded += written
            log.info(f"  [green]✓[/] [dim]{escape(track_path.name)}[/dim]")

    async def sync_track(self, remote_track_id: str, destination: Path) -> Path:
        """Streams a single item to an explicit destination path."""
        self.notifier.emit(TRACK_DOWNLOAD_STARTED, {"id": remote_track_id})
        token = self._require_token()

        self._make_dir(destination.parent)
        written = await self.client.download_item(remote_track_id, destination, token)
        self.stats.tracks_downloaded += 1
        self.stats.total_size_downloaded += written

        self.notifier.emit(TRACK_DOWNLOAD_COMPLETED, {"id": remote_track_id})
        return destination

    async def delete_album(self, remote_album_id: str) -> None:
        """
        Removes a downloaded album's files and rows.

        Raises:
            NotFoundError: If the album is unknown or was never fully downloaded.
            LocalIOError: If the album directory cannot be removed.
        """
        album = await self.repository.find_album_by_remote_id(remote_album_id)
        if album is None or album.local_directory is None:
            raise NotFoundError(f"Album '{remote_album_id}' is not downloaded.")

        album_dir = Path(album.local_directory)
        shared = await self.repository.other_album_files(album.id, album_dir)
        try:
            if shared:
                owned = await self._owned_files(album)
                log.debug(
                    f"Directory '{album_dir}' is shared with other albums, "
                    f"removing {len(owned)} files only."
                )
                removed_parent = remove_album_files(
                    album_dir, [p for p in owned if str(p) not in shared]
                )
            else:
                removed_parent = remove_album_tree(album_dir)
            if removed_parent:
                log.debug(f"Removed empty artist directory '{album_dir.parent}'.")
        except OSError as e:
            raise LocalIOError(f"Failed to delete album directory '{album_dir}': {e}") from e

        await self.repository.delete_album_cascade(album.id)
        log.info(f"[green]✓ Deleted[/] {escape(album.artist)} - {escape(album.title)}")

    async def _owned_files(self, album: Album) -> list[Path]:
        tracks = await self.repository.list_tracks_for_album(album.id)
        files = [Path(t.local_path) for t in tracks if t.local_path]
        if album.local_cover_path:
            files.append(Path(album.local_cover_path))
        return files

    @staticmethod
    def _make_dir(directory: Path) -> None:
        try:
            create_dir(directory)
        except OSError as e:
            raise LocalIOError(f"Failed to create directory '{directory}': {e}") from e
