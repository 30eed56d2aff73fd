"""
Jellyfin API Layer.

This package handles all communication with the Jellyfin server.
"""

from .auth import JellyfinAuthenticator
from .client import JellyfinClient

__all__ = ["JellyfinAuthenticator", "JellyfinClient"]
