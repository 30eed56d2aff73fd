"""
Storage Layer.

This package handles all data persistence: the configuration file, the stored
access token, and the SQLite library database of albums and tracks.
"""

from .config_manager import ConfigManager
from .credentials import CredentialStore
from .repository import LibraryRepository

__all__ = ["ConfigManager", "CredentialStore", "LibraryRepository"]
