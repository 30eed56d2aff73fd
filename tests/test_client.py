"""Tests for the Jellyfin HTTP client, the file downloader and login."""

import re
from pathlib import Path

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import aioresponses

from jellyfin_sync.api.auth import JellyfinAuthenticator
from jellyfin_sync.api.client import JellyfinClient
from jellyfin_sync.exceptions import (
    AuthenticationError,
    NotFoundError,
    RemoteApiError,
)
from jellyfin_sync.media.downloader import Downloader
from jellyfin_sync.storage.credentials import CredentialStore

SERVER = "http://jf.test"
ITEMS = re.compile(r"^http://jf\.test/Items(\?.*)?$")


@pytest_asyncio.fixture
async def client():
    client = JellyfinClient(
        SERVER + "/",
        client_name="jellyfin-sync",
        device_name="laptop",
        device_id="dev-1",
        app_version="1.0",
        downloader=Downloader(chunk_size=4, max_attempts=2, base_delay=0),
    )
    yield client
    await client.close()


class TestAuthorizationHeader:
    def test_header_with_token(self) -> None:
        client = JellyfinClient(SERVER, "app", "laptop", "dev-1", app_version="1.0")
        header = client._authorization_header("abc")["Authorization"]
        assert header == (
            'MediaBrowser Token="abc", Client="app", Device="laptop",'
            ' DeviceId="dev-1", Version="1.0"'
        )

    def test_header_without_token(self) -> None:
        client = JellyfinClient(SERVER, "app", "laptop", "dev-1", app_version="1.0")
        assert "Token=" not in client._authorization_header()["Authorization"]


class TestItems:
    @pytest.mark.asyncio
    async def test_get_item_parses_album(self, client) -> None:
        with aioresponses() as m:
            m.get(
                ITEMS,
                payload={
                    "Items": [
                        {
                            "Id": "A1",
                            "Name": "Bar",
                            "AlbumArtist": "Foo",
                            "ImageTags": {"Primary": "tag-1"},
                        }
                    ],
                    "TotalRecordCount": 1,
                },
            )
            item = await client.get_item("A1", "tok")

        assert item.id == "A1"
        assert item.album_artist == "Foo"
        assert item.primary_image_tag == "tag-1"

    @pytest.mark.asyncio
    async def test_get_item_uses_user_scoped_path(self, client) -> None:
        with aioresponses() as m:
            m.get(
                re.compile(r"^http://jf\.test/Users/u1/Items\?.*$"),
                payload={"Items": [{"Id": "A1", "Name": "Bar"}]},
            )
            item = await client.get_item("A1", "tok", user_id="u1")

        assert item.album_artist is None

    @pytest.mark.asyncio
    async def test_get_item_empty_result_is_not_found(self, client) -> None:
        with aioresponses() as m:
            m.get(ITEMS, payload={"Items": [], "TotalRecordCount": 0})
            with pytest.raises(NotFoundError):
                await client.get_item("missing", "tok")

    @pytest.mark.asyncio
    async def test_get_item_404_is_not_found(self, client) -> None:
        with aioresponses() as m:
            m.get(ITEMS, status=404, body="no such item")
            with pytest.raises(NotFoundError):
                await client.get_item("missing", "tok")

    @pytest.mark.asyncio
    async def test_server_error_carries_status(self, client) -> None:
        with aioresponses() as m:
            m.get(ITEMS, status=503, body="maintenance")
            with pytest.raises(RemoteApiError) as exc_info:
                await client.get_item("A1", "tok")

        assert exc_info.value.status == 503
        assert exc_info.value.message == "maintenance"

    @pytest.mark.asyncio
    async def test_list_children_sorted_by_index(self, client) -> None:
        with aioresponses() as m:
            m.get(
                ITEMS,
                payload={
                    "Items": [
                        {"Id": "T2", "Name": "Two", "IndexNumber": 2, "Container": "flac"},
                        {"Id": "T1", "Name": "One", "IndexNumber": 1, "Container": "flac"},
                    ]
                },
            )
            tracks = await client.list_children("A1", "tok")

        assert [t.id for t in tracks] == ["T1", "T2"]
        assert tracks[0].container == "flac"

    @pytest.mark.asyncio
    async def test_search_items_returns_total_and_page(self, client) -> None:
        with aioresponses() as m:
            m.get(
                ITEMS,
                payload={"Items": [{"Id": "A1", "Name": "Bar"}], "TotalRecordCount": 42},
            )
            total, items = await client.search_items("tok", "MusicAlbum", "bar", limit=1)

        assert total == 42
        assert [i.id for i in items] == ["A1"]

    @pytest.mark.asyncio
    async def test_albums_by_no_artists_makes_no_request(self, client) -> None:
        with aioresponses():
            assert await client.search_albums_by_artist([], "tok") == []

    @pytest.mark.asyncio
    async def test_latest_albums(self, client) -> None:
        with aioresponses() as m:
            m.get(
                re.compile(r"^http://jf\.test/Items/Latest\?.*$"),
                payload=[{"Id": "A9", "Name": "Newest"}],
            )
            items = await client.get_latest_albums("tok", limit=5)

        assert [i.id for i in items] == ["A9"]


class TestDownloads:
    @pytest.mark.asyncio
    async def test_download_item_writes_file(self, client, tmp_path: Path) -> None:
        destination = tmp_path / "1 - Intro.flac"
        with aioresponses() as m:
            m.get(f"{SERVER}/Items/T1/Download", body=b"0123456789")
            written = await client.download_item("T1", destination, "tok")

        assert written == 10
        assert destination.read_bytes() == b"0123456789"
        assert not (tmp_path / "1 - Intro.flac.part").exists()

    @pytest.mark.asyncio
    async def test_download_retries_network_errors(self, client, tmp_path: Path) -> None:
        destination = tmp_path / "cover.jpg"
        url = f"{SERVER}/Items/A1/Images/Primary?tag=tag-1"
        with aioresponses() as m:
            m.get(url, exception=aiohttp.ClientConnectionError("reset"))
            m.get(url, body=b"jpeg")
            written = await client.download_image("A1", "tag-1", destination, "tok")

        assert written == 4
        assert destination.read_bytes() == b"jpeg"

    @pytest.mark.asyncio
    async def test_download_gives_up_and_leaves_no_file(
        self, client, tmp_path: Path
    ) -> None:
        destination = tmp_path / "1 - Intro.flac"
        url = f"{SERVER}/Items/T1/Download"
        with aioresponses() as m:
            m.get(url, exception=aiohttp.ClientConnectionError("reset"))
            m.get(url, exception=aiohttp.ClientConnectionError("reset"))
            with pytest.raises(aiohttp.ClientConnectionError):
                await client.download_item("T1", destination, "tok")

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_download_http_error_is_not_retried(
        self, client, tmp_path: Path
    ) -> None:
        destination = tmp_path / "1 - Intro.flac"
        with aioresponses() as m:
            m.get(f"{SERVER}/Items/T1/Download", status=401, body="unauthorized")
            with pytest.raises(RemoteApiError) as exc_info:
                await client.download_item("T1", destination, "tok")

        assert exc_info.value.status == 401
        assert not destination.exists()


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_stores_token(self, client, tmp_path: Path) -> None:
        store = CredentialStore(tmp_path / "session.json")
        authenticator = JellyfinAuthenticator(client, store)
        with aioresponses() as m:
            m.post(
                f"{SERVER}/Users/AuthenticateByName",
                payload={"AccessToken": "tok-1", "User": {"Id": "u1", "Name": "alice"}},
            )
            user = await authenticator.login("alice", "pw")

        assert user["Id"] == "u1"
        assert store.current_token() == "tok-1"
        assert CredentialStore(tmp_path / "session.json").user_id == "u1"

    @pytest.mark.asyncio
    async def test_login_rejected(self, client, tmp_path: Path) -> None:
        store = CredentialStore(tmp_path / "session.json")
        authenticator = JellyfinAuthenticator(client, store)
        with aioresponses() as m:
            m.post(f"{SERVER}/Users/AuthenticateByName", status=401, body="")
            with pytest.raises(AuthenticationError):
                await authenticator.login("alice", "wrong")

        assert store.current_token() is None

    @pytest.mark.asyncio
    async def test_logout_clears_token(self, client, tmp_path: Path) -> None:
        store = CredentialStore(tmp_path / "session.json")
        store.set_token("tok-1", "u1")

        JellyfinAuthenticator(client, store).logout()

        assert not store.authenticated
        assert CredentialStore(tmp_path / "session.json").current_token() is None
