"""
Media Processing Layer.

This package is responsible for writing remote byte streams (tracks and cover
art) to the local filesystem.
"""

from .downloader import Downloader

__all__ = ["Downloader"]
