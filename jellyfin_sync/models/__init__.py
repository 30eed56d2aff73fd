"""
Data Models Layer.

This package contains the pydantic configuration model, the dataclasses that
mirror the local library tables, and the download session statistics.
"""

from .config import SyncConfig
from .library import (
    Album,
    AlbumDetails,
    AlbumDownloadRequest,
    AlbumSearchItem,
    AlbumSearchResult,
    DownloadRequest,
    RemoteItem,
    Track,
    TrackDownloadRequest,
)
from .stats import SyncStats

__all__ = [
    "Album",
    "AlbumDetails",
    "AlbumDownloadRequest",
    "AlbumSearchItem",
    "AlbumSearchResult",
    "DownloadRequest",
    "RemoteItem",
    "SyncConfig",
    "SyncStats",
    "Track",
    "TrackDownloadRequest",
]
