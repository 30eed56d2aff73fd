"""Tests for the per-album download workflow."""

from pathlib import Path

import pytest

from jellyfin_sync.core.album_sync import AlbumSynchronizer
from jellyfin_sync.core.notifications import (
    ALBUM_DOWNLOAD_COMPLETED,
    ALBUM_DOWNLOAD_STARTED,
    TRACK_DOWNLOAD_COMPLETED,
    TRACK_DOWNLOAD_STARTED,
)
from jellyfin_sync.exceptions import NotFoundError, UnauthenticatedError
from jellyfin_sync.models.library import AlbumDownloadRequest, TrackDownloadRequest
from jellyfin_sync.models.stats import SyncStats
from tests.conftest import StaticCredentials


@pytest.fixture
def synchronizer(repository, catalog, credentials, notifier, downloads_dir):
    return AlbumSynchronizer(
        repository, catalog, credentials, notifier, downloads_dir, stats=SyncStats()
    )


class TestSyncAlbum:
    @pytest.mark.asyncio
    async def test_downloads_album_cover_and_tracks(
        self, synchronizer, catalog, repository, notifier, downloads_dir
    ) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["Intro", "Song", "Outro"])

        album = await synchronizer.sync_album("A1")

        album_dir = downloads_dir / "Foo" / "Bar"
        assert album.local_directory == str(album_dir)
        assert album.local_cover_path == str(album_dir / "cover.jpg")
        assert (album_dir / "cover.jpg").is_file()
        assert sorted(p.name for p in album_dir.iterdir()) == [
            "1 - Intro.flac",
            "2 - Song.flac",
            "3 - Outro.flac",
            "cover.jpg",
        ]

        tracks = await repository.list_tracks_for_album(album.id)
        assert [t.name for t in tracks] == ["Intro", "Song", "Outro"]
        assert all(t.local_path and Path(t.local_path).is_file() for t in tracks)
        assert notifier.names() == [ALBUM_DOWNLOAD_STARTED, ALBUM_DOWNLOAD_COMPLETED]
        assert synchronizer.stats.tracks_downloaded == 3
        assert synchronizer.stats.albums_completed == 1

    @pytest.mark.asyncio
    async def test_tracks_are_downloaded_in_index_order(
        self, synchronizer, catalog
    ) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["One", "Two", "Three"])

        await synchronizer.sync_album("A1")

        downloads = [item for call, item in catalog.calls if call == "download_item"]
        assert downloads == ["A1-t1", "A1-t2", "A1-t3"]

    @pytest.mark.asyncio
    async def test_already_downloaded_album_makes_no_network_calls(
        self, synchronizer, catalog, notifier
    ) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["Intro"])
        await synchronizer.sync_album("A1")
        calls_before = catalog.call_count
        notifier.events.clear()

        album = await synchronizer.sync_album("A1")

        assert catalog.call_count == calls_before
        assert album.is_downloaded
        assert notifier.names() == [ALBUM_DOWNLOAD_STARTED, ALBUM_DOWNLOAD_COMPLETED]
        assert synchronizer.stats.albums_already_downloaded == 1

    @pytest.mark.asyncio
    async def test_missing_artist_uses_placeholder_directory(
        self, synchronizer, catalog, downloads_dir
    ) -> None:
        catalog.add_album("A1", "Bar", None, ["Intro"])

        album = await synchronizer.sync_album("A1")

        assert album.artist == "Unknown Artist"
        assert album.local_directory == str(downloads_dir / "Unknown Artist" / "Bar")

    @pytest.mark.asyncio
    async def test_album_without_cover_art_has_no_cover_path(
        self, synchronizer, catalog, downloads_dir
    ) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["Intro"], image_tag=None)

        album = await synchronizer.sync_album("A1")

        assert album.local_cover_path is None
        assert not (downloads_dir / "Foo" / "Bar" / "cover.jpg").exists()
        assert ("download_image", "A1") not in catalog.calls

    @pytest.mark.asyncio
    async def test_track_failure_leaves_album_not_downloaded(
        self, synchronizer, catalog, repository, downloads_dir
    ) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["One", "Two", "Three", "Four"])
        catalog.fail_downloads.add("A1-t3")

        with pytest.raises(ConnectionError):
            await synchronizer.sync_album("A1")

        album = await repository.find_album_by_remote_id("A1")
        assert album.local_directory is None
        tracks = await repository.list_tracks_for_album(album.id)
        assert [(t.name, t.local_path is not None) for t in tracks] == [
            ("One", True),
            ("Two", True),
            ("Three", False),
        ]
        assert synchronizer.stats.tracks_failed == 1
        assert (downloads_dir / "Foo" / "Bar" / "2 - Two.flac").is_file()

    @pytest.mark.asyncio
    async def test_retry_after_failure_completes_without_refetching(
        self, synchronizer, catalog, repository
    ) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["One", "Two", "Three"])
        catalog.fail_downloads.add("A1-t2")
        with pytest.raises(ConnectionError):
            await synchronizer.sync_album("A1")

        catalog.fail_downloads.clear()
        catalog.calls.clear()
        album = await synchronizer.sync_album("A1")

        assert album.is_downloaded
        downloads = [item for call, item in catalog.calls if call == "download_item"]
        assert downloads == ["A1-t2", "A1-t3"]
        assert ("get_item", "A1") not in catalog.calls
        tracks = await repository.list_tracks_for_album(album.id)
        assert len(tracks) == 3

    @pytest.mark.asyncio
    async def test_cover_failure_aborts_album(
        self, synchronizer, catalog, repository
    ) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["Intro"])
        catalog.fail_images = True

        with pytest.raises(ConnectionError):
            await synchronizer.sync_album("A1")

        album = await repository.find_album_by_remote_id("A1")
        assert album.local_directory is None
        assert ("download_item", "A1-t1") not in catalog.calls

    @pytest.mark.asyncio
    async def test_unauthenticated_request_changes_nothing(
        self, repository, catalog, notifier, downloads_dir
    ) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["Intro"])
        synchronizer = AlbumSynchronizer(
            repository, catalog, StaticCredentials(None), notifier, downloads_dir
        )

        with pytest.raises(UnauthenticatedError):
            await synchronizer.sync_album("A1")

        assert catalog.call_count == 0
        assert await repository.find_album_by_remote_id("A1") is None
        assert not downloads_dir.exists()

    @pytest.mark.asyncio
    async def test_unknown_remote_album_raises_not_found(self, synchronizer) -> None:
        with pytest.raises(NotFoundError):
            await synchronizer.sync_album("missing")


class TestProcess:
    @pytest.mark.asyncio
    async def test_track_request_writes_to_destination(
        self, synchronizer, catalog, notifier, tmp_path
    ) -> None:
        destination = tmp_path / "singles" / "song.flac"

        await synchronizer.process(TrackDownloadRequest("T9", destination))

        assert destination.read_bytes() == b"audio:T9"
        assert notifier.names() == [TRACK_DOWNLOAD_STARTED, TRACK_DOWNLOAD_COMPLETED]

    @pytest.mark.asyncio
    async def test_album_request_is_dispatched(self, synchronizer, catalog) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["Intro"])

        await synchronizer.process(AlbumDownloadRequest("A1"))

        assert ("list_children", "A1") in catalog.calls

    @pytest.mark.asyncio
    async def test_unknown_request_type_raises(self, synchronizer) -> None:
        with pytest.raises(TypeError):
            await synchronizer.process("A1")


class TestDeleteAlbum:
    @pytest.mark.asyncio
    async def test_delete_removes_files_rows_and_empty_artist_dir(
        self, synchronizer, catalog, repository, downloads_dir
    ) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["Intro"])
        album = await synchronizer.sync_album("A1")

        await synchronizer.delete_album("A1")

        assert not (downloads_dir / "Foo").exists()
        assert await repository.find_album_by_remote_id("A1") is None
        assert await repository.list_tracks_for_album(album.id) == []

    @pytest.mark.asyncio
    async def test_delete_keeps_artist_dir_with_other_albums(
        self, synchronizer, catalog, downloads_dir
    ) -> None:
        catalog.add_album("A1", "Bar", "Foo", ["Intro"])
        catalog.add_album("A2", "Baz", "Foo", ["Intro"])
        await synchronizer.sync_album("A1")
        await synchronizer.sync_album("A2")

        await synchronizer.delete_album("A1")

        assert not (downloads_dir / "Foo" / "Bar").exists()
        assert (downloads_dir / "Foo" / "Baz").is_dir()

    @pytest.mark.asyncio
    async def test_albums_sharing_a_directory_each_get_their_cover(
        self, synchronizer, catalog
    ) -> None:
        catalog.add_album("A1", "Greatest Hits", "Foo", ["One"], image_tag="tag-a")
        catalog.add_album("A2", "Greatest Hits", "Foo", ["One"], image_tag="tag-b")

        await synchronizer.sync_album("A1")
        await synchronizer.sync_album("A2")

        images = [item for call, item in catalog.calls if call == "download_image"]
        assert images == ["A1", "A2"]

    @pytest.mark.asyncio
    async def test_delete_keeps_files_of_album_in_same_directory(
        self, synchronizer, catalog, repository, downloads_dir
    ) -> None:
        catalog.add_album("A1", "Greatest Hits", "Foo", ["One", "Two"])
        catalog.add_album("A2", "Greatest Hits", "Foo", ["One", "Bonus", "Three"])
        await synchronizer.sync_album("A1")
        await synchronizer.sync_album("A2")
        album_dir = downloads_dir / "Foo" / "Greatest Hits"

        await synchronizer.delete_album("A1")

        assert await repository.find_album_by_remote_id("A1") is None
        remaining = await repository.find_album_by_remote_id("A2")
        assert remaining.is_downloaded
        assert remaining.local_directory == str(album_dir)
        assert sorted(p.name for p in album_dir.iterdir()) == [
            "1 - One.flac",
            "2 - Bonus.flac",
            "3 - Three.flac",
            "cover.jpg",
        ]
        tracks = await repository.list_tracks_for_album(remaining.id)
        assert all(Path(t.local_path).is_file() for t in tracks)

        await synchronizer.delete_album("A2")

        assert not (downloads_dir / "Foo").exists()

    @pytest.mark.asyncio
    async def test_delete_not_downloaded_album_raises(
        self, synchronizer, repository
    ) -> None:
        await repository.create_album("A1", "Bar", "Foo")

        with pytest.raises(NotFoundError):
            await synchronizer.delete_album("A1")
        with pytest.raises(NotFoundError):
            await synchronizer.delete_album("never-seen")
        assert await repository.find_album_by_remote_id("A1") is not None
