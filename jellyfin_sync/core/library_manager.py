"""
The main entry point for callers: queues downloads, deletes albums and answers
library searches, online or from the local cache.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiohttp

from jellyfin_sync.api.client import JellyfinClient
from jellyfin_sync.exceptions import NotFoundError, RemoteApiError
from jellyfin_sync.models.config import SyncConfig
from jellyfin_sync.models.library import (
    Album,
    AlbumDetails,
    AlbumDownloadRequest,
    AlbumSearchItem,
    AlbumSearchResult,
    DownloadRequest,
    RemoteItem,
    TrackDownloadRequest,
)
from jellyfin_sync.models.stats import SyncStats
from jellyfin_sync.storage.repository import DEFAULT_PAGE_SIZE, LibraryRepository
from jellyfin_sync.utils.formatting import album_artist_name

from .album_sync import AlbumSynchronizer, CredentialSource
from .download_queue import DownloadQueue
from .notifications import NotificationSink

log = logging.getLogger(__name__)


class LibraryManager:
    """Facade over the download queue, the album synchronizer and the repository."""

    def __init__(
        self,
        client: JellyfinClient,
        repository: LibraryRepository,
        credentials: CredentialSource,
        notifier: NotificationSink,
        downloads_dir: Path,
        poll_interval: float = 1.0,
        download_cover: bool = True,
    ):
        self.client = client
        self.repository = repository
        self.credentials = credentials
        self.stats = SyncStats()
        self.synchronizer = AlbumSynchronizer(
            repository,
            client,
            credentials,
            notifier,
            downloads_dir,
            download_cover=download_cover,
            stats=self.stats,
        )
        self.queue = DownloadQueue(self._process_request, notifier, poll_interval)

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        client: JellyfinClient,
        credentials: CredentialSource,
        notifier: NotificationSink,
    ) -> "LibraryManager":
        return cls(
            client,
            LibraryRepository(config.database_path),
            credentials,
            notifier,
            config.downloads_dir,
            poll_interval=config.poll_interval,
            download_cover=config.download_cover,
        )

    async def __aenter__(self) -> "LibraryManager":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    def start(self) -> None:
        """Starts the download worker on the running event loop."""
        self.queue.start()

    async def _process_request(self, request: DownloadRequest) -> None:
        try:
            await self.synchronizer.process(request)
        except Exception:
            self.stats.record_failure(request.remote_id)
            raise

    # Downloads
    def enqueue_album_download(
        self, remote_album_id: str, user_id: Optional[str] = None
    ) -> None:
        """Queues an album download. Raises QueueClosedError after shutdown."""
        self.queue.enqueue(AlbumDownloadRequest(remote_album_id, user_id))

    def enqueue_track_download(self, remote_track_id: str, destination: Path) -> None:
        self.queue.enqueue(TrackDownloadRequest(remote_track_id, Path(destination)))

    async def wait_until_idle(self) -> None:
        await self.queue.join()

    async def shutdown(self) -> None:
        """Refuses new requests, lets the in-flight one finish and stops the worker."""
        self.queue.shutdown()
        await self.queue.wait_closed()

    async def delete_album(self, remote_album_id: str) -> None:
        await self.synchronizer.delete_album(remote_album_id)

    # Library queries
    async def album_details(self, remote_album_id: str) -> AlbumDetails:
        """Returns a cached album and its tracks in index order."""
        album = await self.repository.find_album_by_remote_id(remote_album_id)
        if album is None:
            raise NotFoundError(f"Album '{remote_album_id}' is not in the library.")
        tracks = await self.repository.list_tracks_for_album(album.id, order_by_index=True)
        return AlbumDetails(album=album, tracks=tracks)

    @staticmethod
    def _offline_result(
        albums: list[Album], total: int, offset: int
    ) -> AlbumSearchResult:
        items = [
            AlbumSearchItem(
                id=album.remote_id,
                name=album.title,
                album_artist=album.artist,
                downloaded=album.local_directory is not None,
            )
            for album in albums
        ]
        return AlbumSearchResult(
            total_record_count=total, start_index=offset, items=items
        )

    async def search_offline(
        self, query: str, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> AlbumSearchResult:
        """Searches the local cache only. An empty query lists recent albums."""
        if not query:
            return await self.recent_offline(limit, offset)
        albums = await self.repository.search_offline(query, limit, offset)
        total = await self.repository.count_offline(query)
        return self._offline_result(albums, total, offset)

    async def recent_offline(
        self, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> AlbumSearchResult:
        albums = await self.repository.recent_offline(limit, offset)
        total = await self.repository.count_offline()
        return self._offline_result(albums, total, offset)

    async def search_albums(
        self,
        query: str,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        user_id: Optional[str] = None,
    ) -> AlbumSearchResult:
        """
        Searches the server for albums by title or artist, flagging downloaded ones.

        Falls back to the local cache when no token is stored or the server
        cannot be reached.
        """
        token = self.credentials.current_token()
        if not token:
            log.debug("No access token, searching the local library instead.")
            return await self.search_offline(query, limit, offset)

        try:
            if not query:
                items = await self.client.get_latest_albums(token, limit, offset, user_id)
                total = len(items)
            else:
                total, items = await self._search_remote(query, token, limit, offset, user_id)
        except (RemoteApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning(f"[yellow]Server search failed, using local library:[/] {e}")
            return await self.search_offline(query, limit, offset)

        downloaded = await self.repository.downloaded_remote_ids([i.id for i in items])
        return AlbumSearchResult(
            total_record_count=total,
            start_index=offset,
            items=[
                AlbumSearchItem(
                    id=item.id,
                    name=item.name,
                    album_artist=album_artist_name(item),
                    downloaded=item.id in downloaded,
                )
                for item in items
            ],
        )

    async def _search_remote(
        self,
        query: str,
        token: str,
        limit: int,
        offset: int,
        user_id: Optional[str],
    ) -> tuple[int, list[RemoteItem]]:
        """Merges title matches with albums by matching artists, then paginates."""
        by_title = await self.client.search_albums(query, token, user_id)
        artists = await self.client.search_artists(query, token, user_id)
        by_artist = await self.client.search_albums_by_artist(
            [a.id for a in artists], token, user_id
        )

        combined = list({item.id: item for item in by_title + by_artist}.values())
        combined.sort(key=lambda item: item.name)
        return len(combined), combined[offset : offset + limit]
