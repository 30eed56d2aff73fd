"""
Utilities for building deterministic album/track paths and managing album directories.
"""

import logging
import shutil
from pathlib import Path
from typing import Iterable, Optional

from pathvalidate import sanitize_filename

log = logging.getLogger(__name__)

COVER_FILENAME = "cover.jpg"
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"
UNKNOWN_TRACK = "Unknown Track"


def sanitize_component(name: Optional[str], fallback: str) -> str:
    """
    Makes a single path component safe on every filesystem.

    The "universal" platform applies the union of Windows, macOS and Linux
    rules, so a library synced on one OS keeps the same paths on another.
    Names made only of dots ("." and "..") are not valid components.
    """
    cleaned = sanitize_filename(name or "", platform="universal").strip()
    if not cleaned.strip("."):
        return fallback
    return cleaned


def album_directory(downloads_dir: Path, artist: str, title: str) -> Path:
    """Returns `<downloads>/<artist>/<title>` with both components sanitized."""
    return (
        downloads_dir
        / sanitize_component(artist, UNKNOWN_ARTIST)
        / sanitize_component(title, UNKNOWN_ALBUM)
    )


def index_width(total_tracks: int) -> int:
    """Zero-padding width for track numbers: the digit count of the track total."""
    if total_tracks <= 0:
        return 2
    return len(str(total_tracks))


def track_filename(
    name: str, index: Optional[int], total_tracks: int, container: Optional[str]
) -> str:
    """
    Builds `"<padded index> - <name>.<container>"`.

    Padding to the digit count of the total keeps lexical and numeric order
    identical (`1..8` for eight tracks, `01..10` for ten).
    """
    width = index_width(total_tracks)
    number = f"{index or 0:0{width}d}"
    extension = f".{container.strip('.')}" if container else ""
    return f"{number} - {sanitize_component(name, UNKNOWN_TRACK)}{extension}"


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def remove_album_tree(album_dir: Path) -> bool:
    """
    Removes an album directory and, if it is left empty, its artist directory.

    Errors removing the album directory propagate. The artist directory
    cleanup is best effort. Returns True when the artist directory was removed.
    """
    if album_dir.exists():
        shutil.rmtree(album_dir)
    return _remove_if_empty(album_dir.parent)


def remove_album_files(album_dir: Path, files: Iterable[Path]) -> bool:
    """
    Removes only `files` from an album directory that other albums also use.

    The album directory is removed once nothing else is left in it, and then
    the artist directory likewise. Returns True when the artist directory
    was removed.
    """
    for path in files:
        path.unlink(missing_ok=True)
        path.with_name(path.name + ".part").unlink(missing_ok=True)

    if album_dir.is_dir() and not any(album_dir.iterdir()):
        album_dir.rmdir()
        return _remove_if_empty(album_dir.parent)
    return False


def _remove_if_empty(artist_dir: Path) -> bool:
    try:
        if artist_dir.is_dir() and not any(artist_dir.iterdir()):
            artist_dir.rmdir()
            return True
    except OSError as e:
        log.warning(f"[yellow]Could not remove empty artist directory '{artist_dir}':[/] {e}")
    return False
