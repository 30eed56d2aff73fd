"""
Core download engine.

`LibraryManager` is the facade used by callers. It feeds a `DownloadQueue`,
whose single worker hands each request to the `AlbumSynchronizer`.
"""

from .album_sync import AlbumSynchronizer
from .download_queue import DownloadQueue
from .library_manager import LibraryManager

__all__ = ["AlbumSynchronizer", "DownloadQueue", "LibraryManager"]
