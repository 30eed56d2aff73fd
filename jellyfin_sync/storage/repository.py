"""
SQLite cache of albums and tracks mirrored from the Jellyfin server.
"""

import asyncio
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from jellyfin_sync.exceptions import RepositoryError
from jellyfin_sync.models.library import Album, Track

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

_ALBUM_COLUMNS = (
    "id, remote_id, title, artist, cover_image_id, local_directory,"
    " local_cover_path, created_at, updated_at"
)
_TRACK_COLUMNS = "id, remote_id, album_id, name, track_index, local_path"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class LibraryRepository:
    """
    Data access for the `albums` and `tracks` tables.

    Every public method is a coroutine that runs a short synchronous SQLite
    routine in a worker thread, bounded by a small semaphore. No method spans
    more than one logical write; callers order their writes instead.
    """

    def __init__(self, db_path: Path, pool_size: int = 5):
        self.db_path = db_path
        self._pool_size = pool_size
        self._connection_semaphore = asyncio.Semaphore(pool_size)
        self._initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Gets a new database connection with optimized PRAGMA settings."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA foreign_keys=ON;")
            return conn
        except sqlite3.Error as e:
            log.error(f"Failed to connect to library database: {e}")
            raise RepositoryError(f"Cannot open library database: {e}") from e

    def _initialize_db(self) -> None:
        """Creates the tables and indexes if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS albums (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        remote_id TEXT NOT NULL UNIQUE,
                        title TEXT NOT NULL,
                        artist TEXT NOT NULL,
                        cover_image_id TEXT,
                        local_directory TEXT,
                        local_cover_path TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS tracks (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        remote_id TEXT NOT NULL UNIQUE,
                        album_id INTEGER NOT NULL
                            REFERENCES albums(id) ON DELETE CASCADE,
                        name TEXT NOT NULL,
                        track_index INTEGER NOT NULL DEFAULT 0,
                        local_path TEXT
                    );
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_tracks_album ON tracks(album_id);"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_albums_updated ON albums(updated_at);"
                )
                conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(
                f"Failed to initialize library database at '{self.db_path}': {e}"
            ) from e

    async def _run_in_executor(self, func: Callable[..., Any], *args: Any) -> Any:
        """Runs a synchronous database function within the connection pool semaphore."""
        async with self._connection_semaphore:
            try:
                return await asyncio.to_thread(func, *args)
            except sqlite3.Error as e:
                log.debug(f"Library query {func.__name__} failed: {e}")
                raise RepositoryError(str(e)) from e

    @staticmethod
    def _to_album(row: sqlite3.Row) -> Album:
        return Album(**dict(row))

    @staticmethod
    def _to_track(row: sqlite3.Row) -> Track:
        return Track(**dict(row))

    # Albums
    def _find_album_sync(self, remote_id: str) -> Optional[Album]:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT {_ALBUM_COLUMNS} FROM albums WHERE remote_id = ?",  # noqa: S608
                (remote_id,),
            ).fetchone()
        return self._to_album(row) if row else None

    async def find_album_by_remote_id(self, remote_id: str) -> Optional[Album]:
        return await self._run_in_executor(self._find_album_sync, remote_id)

    def _create_album_sync(
        self, remote_id: str, title: str, artist: str, cover_image_id: Optional[str]
    ) -> Album:
        now = _utcnow()
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO albums (remote_id, title, artist, cover_image_id,"
                " created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)"
                " ON CONFLICT(remote_id) DO NOTHING",
                (remote_id, title, artist, cover_image_id, now, now),
            )
            conn.commit()
        album = self._find_album_sync(remote_id)
        if album is None:
            raise RepositoryError(f"Album '{remote_id}' not found after insertion.")
        return album

    async def create_album(
        self,
        remote_id: str,
        title: str,
        artist: str,
        cover_image_id: Optional[str] = None,
    ) -> Album:
        """Inserts an album without a local directory. An existing row is returned as-is."""
        return await self._run_in_executor(
            self._create_album_sync, remote_id, title, artist, cover_image_id
        )

    def _finalize_album_sync(
        self, remote_id: str, directory: str, cover_path: Optional[str]
    ) -> None:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE albums SET local_directory = ?, local_cover_path = ?,"
                " updated_at = ? WHERE remote_id = ?",
                (directory, cover_path, _utcnow(), remote_id),
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise RepositoryError(f"Cannot finalize unknown album '{remote_id}'.")

    async def finalize_album(
        self, remote_id: str, directory: Path, cover_path: Optional[Path] = None
    ) -> None:
        """Marks an album as downloaded in a single update. Must be the workflow's last write."""
        await self._run_in_executor(
            self._finalize_album_sync,
            remote_id,
            str(directory),
            str(cover_path) if cover_path else None,
        )

    def _delete_album_sync(self, album_id: int) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM tracks WHERE album_id = ?", (album_id,))
            conn.execute("DELETE FROM albums WHERE id = ?", (album_id,))
            conn.commit()

    async def delete_album_cascade(self, album_id: int) -> None:
        """Deletes an album's tracks, then the album itself."""
        await self._run_in_executor(self._delete_album_sync, album_id)

    def _other_album_files_sync(self, album_id: int, directory: str) -> set[str]:
        prefix = f"{_escape_like(directory.rstrip(os.sep) + os.sep)}%"
        with self._get_connection() as conn:
            track_rows = conn.execute(
                "SELECT local_path AS path FROM tracks"
                " WHERE album_id != ? AND local_path LIKE ? ESCAPE '\\'",
                (album_id, prefix),
            ).fetchall()
            album_rows = conn.execute(
                "SELECT local_directory, local_cover_path FROM albums"
                " WHERE id != ? AND local_directory = ?",
                (album_id, directory),
            ).fetchall()
        paths = {row["path"] for row in track_rows}
        for row in album_rows:
            # A finalized album without files still claims the directory.
            paths.add(row["local_cover_path"] or row["local_directory"])
        return paths

    async def other_album_files(self, album_id: int, directory: Path) -> set[str]:
        """
        Paths that other albums keep inside `directory`: their downloaded tracks
        and covers. Non-empty when two albums sanitize to the same directory.
        """
        return await self._run_in_executor(
            self._other_album_files_sync, album_id, str(directory)
        )

    def _search_sync(self, substring: str, limit: int, offset: int) -> list[Album]:
        pattern = f"%{_escape_like(substring)}%"
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT {_ALBUM_COLUMNS} FROM albums"  # noqa: S608
                " WHERE title LIKE ? ESCAPE '\\' OR artist LIKE ? ESCAPE '\\'"
                " ORDER BY title ASC LIMIT ? OFFSET ?",
                (pattern, pattern, limit, offset),
            ).fetchall()
        return [self._to_album(row) for row in rows]

    async def search_offline(
        self, substring: str, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> list[Album]:
        """Case-insensitive substring match on title or artist, ordered by title."""
        return await self._run_in_executor(self._search_sync, substring, limit, offset)

    def _count_sync(self, substring: Optional[str]) -> int:
        with self._get_connection() as conn:
            if not substring:
                row = conn.execute("SELECT COUNT(*) FROM albums").fetchone()
            else:
                pattern = f"%{_escape_like(substring)}%"
                row = conn.execute(
                    "SELECT COUNT(*) FROM albums"
                    " WHERE title LIKE ? ESCAPE '\\' OR artist LIKE ? ESCAPE '\\'",
                    (pattern, pattern),
                ).fetchone()
        return row[0]

    async def count_offline(self, substring: Optional[str] = None) -> int:
        """Total matches of `search_offline` across all pages, or all albums."""
        return await self._run_in_executor(self._count_sync, substring)

    def _recent_sync(self, limit: int, offset: int) -> list[Album]:
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT {_ALBUM_COLUMNS} FROM albums"  # noqa: S608
                " ORDER BY updated_at DESC, id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [self._to_album(row) for row in rows]

    async def recent_offline(
        self, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> list[Album]:
        return await self._run_in_executor(self._recent_sync, limit, offset)

    def _downloaded_ids_sync(self, remote_ids: list[str]) -> set[str]:
        if not remote_ids:
            return set()

        BATCH_SIZE = 999  # SQLite's default limit on variables prior to 3.32.0
        found: set[str] = set()
        with self._get_connection() as conn:
            for i in range(0, len(remote_ids), BATCH_SIZE):
                chunk = remote_ids[i : i + BATCH_SIZE]
                placeholders = ",".join("?" * len(chunk))
                rows = conn.execute(
                    "SELECT remote_id FROM albums WHERE local_directory IS NOT NULL"  # noqa: S608
                    f" AND remote_id IN ({placeholders})",
                    chunk,
                ).fetchall()
                found.update(row["remote_id"] for row in rows)
        return found

    async def downloaded_remote_ids(self, remote_ids: list[str]) -> set[str]:
        """Returns the subset of `remote_ids` whose albums are fully downloaded."""
        return await self._run_in_executor(self._downloaded_ids_sync, list(remote_ids))

    # Tracks
    def _insert_track_sync(
        self, album_id: int, remote_id: str, name: str, track_index: int
    ) -> Track:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO tracks (remote_id, album_id, name, track_index)"
                " VALUES (?, ?, ?, ?) ON CONFLICT(remote_id) DO NOTHING",
                (remote_id, album_id, name, track_index),
            )
            conn.commit()
            row = conn.execute(
                f"SELECT {_TRACK_COLUMNS} FROM tracks WHERE remote_id = ?",  # noqa: S608
                (remote_id,),
            ).fetchone()
        if row is None:
            raise RepositoryError(f"Track '{remote_id}' not found after insertion.")
        return self._to_track(row)

    async def insert_track(
        self, album_id: int, remote_id: str, name: str, track_index: int
    ) -> Track:
        """
        Inserts a track row with no local path. A row that already exists for
        `remote_id` (left by an earlier, interrupted attempt) is returned unchanged.
        """
        return await self._run_in_executor(
            self._insert_track_sync, album_id, remote_id, name, track_index
        )

    def _mark_track_sync(self, track_id: int, path: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE tracks SET local_path = ? WHERE id = ?", (path, track_id)
            )
            conn.commit()

    async def mark_track_downloaded(self, track_id: int, path: Path) -> None:
        await self._run_in_executor(self._mark_track_sync, track_id, str(path))

    def _list_tracks_sync(self, album_id: int, order_by_index: bool) -> list[Track]:
        order = "track_index ASC, id ASC" if order_by_index else "id ASC"
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT {_TRACK_COLUMNS} FROM tracks WHERE album_id = ?"  # noqa: S608
                f" ORDER BY {order}",
                (album_id,),
            ).fetchall()
        return [self._to_track(row) for row in rows]

    async def list_tracks_for_album(
        self, album_id: int, order_by_index: bool = True
    ) -> list[Track]:
        return await self._run_in_executor(
            self._list_tracks_sync, album_id, order_by_index
        )

    # Maintenance
    def _stats_sync(self) -> dict[str, Any]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            total_albums = cur.execute("SELECT COUNT(*) FROM albums").fetchone()[0]
            downloaded_albums = cur.execute(
                "SELECT COUNT(*) FROM albums WHERE local_directory IS NOT NULL"
            ).fetchone()[0]
            downloaded_tracks = cur.execute(
                "SELECT COUNT(*) FROM tracks WHERE local_path IS NOT NULL"
            ).fetchone()[0]
            top_artists = cur.execute(
                """
                SELECT artist, COUNT(*) as count
                FROM albums
                WHERE local_directory IS NOT NULL
                GROUP BY artist
                ORDER BY count DESC, artist ASC
                LIMIT 10
                """
            ).fetchall()
        return {
            "total_albums": total_albums,
            "downloaded_albums": downloaded_albums,
            "downloaded_tracks": downloaded_tracks,
            "top_artists": [(row["artist"], row["count"]) for row in top_artists],
        }

    async def stats(self) -> dict[str, Any]:
        """Counts cached albums, downloaded albums/tracks and the top artists."""
        return await self._run_in_executor(self._stats_sync)

    def _vacuum_sync(self) -> None:
        with self._get_connection() as conn:
            conn.execute("VACUUM;")
            conn.execute("ANALYZE;")
            conn.commit()
        log.info("Library database optimized successfully.")

    async def vacuum(self) -> None:
        """Optimizes the database file by rebuilding it."""
        await self._run_in_executor(self._vacuum_sync)
