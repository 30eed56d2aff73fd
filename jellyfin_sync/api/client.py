"""
Async client for the Jellyfin HTTP API: item lookups, search, and byte-stream downloads.
"""

import logging
import time
from pathlib import Path
from typing import Any, Optional

import aiohttp

from jellyfin_sync import __version__
from jellyfin_sync.exceptions import NotFoundError, RemoteApiError
from jellyfin_sync.media.downloader import Downloader
from jellyfin_sync.models.library import RemoteItem

log = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


class JellyfinClient:
    """
    Stateless wrapper around the Jellyfin REST API.

    The access token is passed to every call rather than stored, so the
    caller decides which credential a request runs under.
    """

    def __init__(
        self,
        server_url: str,
        client_name: str = "jellyfin-sync",
        device_name: str = "jellyfin-sync",
        device_id: str = "",
        app_version: str = __version__,
        downloader: Optional[Downloader] = None,
    ):
        """
        Initializes the API client.

        Args:
            server_url: Base URL of the Jellyfin server, without a trailing slash.
            client_name: Client name reported in the authorization header.
            device_name: Human-readable device name shown in the server dashboard.
            device_id: Stable identifier for this installation.
            app_version: Version reported to the server.
            downloader: Writer used for byte-stream endpoints.
        """
        self.server_url = server_url.rstrip("/")
        self.client_name = client_name
        self.device_name = device_name
        self.device_id = device_id
        self.app_version = app_version
        self.downloader = downloader or Downloader()
        self._session: Optional[aiohttp.ClientSession] = None

    def _authorization_header(self, token: Optional[str] = None) -> dict[str, str]:
        parts = []
        if token:
            parts.append(f'Token="{token}"')
        parts.extend(
            [
                f'Client="{self.client_name}"',
                f'Device="{self.device_name}"',
                f'DeviceId="{self.device_id}"',
                f'Version="{self.app_version}"',
            ]
        )
        return {"Authorization": "MediaBrowser " + ", ".join(parts)}

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=4,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=60),
            )
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def api_call(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Makes a single API call and returns the decoded JSON body.

        Raises:
            RemoteApiError: For any non-2xx response, carrying the status and body.
        """
        session = await self._initialize_session()
        url = self.server_url + path
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        start_time = time.monotonic()
        async with session.request(
            method,
            url,
            params=query,
            json=json_body,
            headers=self._authorization_header(token),
        ) as r:
            duration_ms = (time.monotonic() - start_time) * 1000
            log.debug(f"{method} {path} -> {r.status} ({duration_ms:.0f} ms)")

            if not 200 <= r.status < 300:
                message = await r.text(errors="replace")
                raise RemoteApiError(r.status, message or r.reason or "No error message")

            if r.status == 204:
                return None
            return await r.json(content_type=None)

    def _items_path(self, user_id: Optional[str]) -> str:
        return f"/Users/{user_id}/Items" if user_id else "/Items"

    # Public API Methods
    async def authenticate_by_name(self, username: str, password: str) -> dict[str, Any]:
        return await self.api_call(
            "POST",
            "/Users/AuthenticateByName",
            json_body={"Username": username, "Pw": password},
        )

    async def get_item(
        self, item_id: str, token: str, user_id: Optional[str] = None
    ) -> RemoteItem:
        """Fetches one item's metadata. Raises NotFoundError if the server has no such item."""
        try:
            response = await self.api_call(
                "GET",
                self._items_path(user_id),
                token,
                params={"ids": item_id, "recursive": "true"},
            )
        except RemoteApiError as e:
            if e.status == 404:
                raise NotFoundError(f"Item '{item_id}' not found on server.") from e
            raise

        items = (response or {}).get("Items") or []
        if not items:
            raise NotFoundError(f"Item '{item_id}' not found on server.")
        return RemoteItem.from_api(items[0])

    async def list_children(self, parent_id: str, token: str) -> list[RemoteItem]:
        """Lists an item's children (an album's tracks), ordered by index number."""
        response = await self.api_call(
            "GET",
            "/Items",
            token,
            params={"parentId": parent_id, "recursive": "true", "sortBy": "IndexNumber"},
        )
        children = [RemoteItem.from_api(i) for i in (response or {}).get("Items", [])]
        children.sort(key=lambda item: item.index_number or 0)
        return children

    async def search_items(
        self,
        token: str,
        item_types: str,
        search: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        artist_ids: Optional[list[str]] = None,
        user_id: Optional[str] = None,
    ) -> tuple[int, list[RemoteItem]]:
        """Generic item search. Returns the server's total count and one page of items."""
        params: dict[str, Any] = {
            "includeItemTypes": item_types,
            "recursive": "true",
            "limit": limit,
            "startIndex": offset,
            "sortBy": "Album,AlbumArtist",
            "searchTerm": search or None,
            "artistIds": ",".join(artist_ids) if artist_ids else None,
        }
        response = await self.api_call("GET", self._items_path(user_id), token, params=params)
        response = response or {}
        items = [RemoteItem.from_api(i) for i in response.get("Items", [])]
        return response.get("TotalRecordCount", len(items)), items

    async def search_albums(
        self, search: str, token: str, user_id: Optional[str] = None
    ) -> list[RemoteItem]:
        _, items = await self.search_items(token, "MusicAlbum", search, user_id=user_id)
        return items

    async def search_artists(
        self, search: str, token: str, user_id: Optional[str] = None
    ) -> list[RemoteItem]:
        _, items = await self.search_items(token, "MusicArtist", search, user_id=user_id)
        return items

    async def search_albums_by_artist(
        self, artist_ids: list[str], token: str, user_id: Optional[str] = None
    ) -> list[RemoteItem]:
        if not artist_ids:
            return []
        _, items = await self.search_items(
            token, "MusicAlbum", artist_ids=artist_ids, user_id=user_id
        )
        return items

    async def get_latest_albums(
        self,
        token: str,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        user_id: Optional[str] = None,
    ) -> list[RemoteItem]:
        path = f"/Users/{user_id}/Items/Latest" if user_id else "/Items/Latest"
        response = await self.api_call(
            "GET",
            path,
            token,
            params={"includeItemTypes": "MusicAlbum", "limit": limit, "startIndex": offset},
        )
        return [RemoteItem.from_api(i) for i in response or []]

    async def download_item(self, item_id: str, destination: Path, token: str) -> int:
        """Streams an item's original file to `destination`. Returns bytes written."""
        session = await self._initialize_session()
        return await self.downloader.download_file(
            session,
            f"{self.server_url}/Items/{item_id}/Download",
            destination,
            headers=self._authorization_header(token),
        )

    async def download_image(
        self, item_id: str, image_tag: str, destination: Path, token: str
    ) -> int:
        """Streams an item's primary image to `destination`. Returns bytes written."""
        session = await self._initialize_session()
        return await self.downloader.download_file(
            session,
            f"{self.server_url}/Items/{item_id}/Images/Primary?tag={image_tag}",
            destination,
            headers=self._authorization_header(token),
        )
