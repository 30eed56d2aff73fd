"""
jellyfin-sync: keeps albums from a Jellyfin server available for offline playback.
"""

__version__ = "0.3.0"
