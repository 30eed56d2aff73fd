"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class JellyfinSyncError(Exception):
    """Base exception for all application-specific errors."""


class UnauthenticatedError(JellyfinSyncError):
    """Raised when an operation needs a bearer token and none is stored."""


class AuthenticationError(JellyfinSyncError):
    """Raised when the server rejects a username/password login."""


class RemoteApiError(JellyfinSyncError):
    """Raised when the Jellyfin server answers with a non-2xx status."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"Jellyfin API error (status {status}): {message}")


class NotFoundError(JellyfinSyncError):
    """Raised when an album or track is absent locally or on the server."""


class LocalIOError(JellyfinSyncError):
    """Raised when creating, writing or deleting local files fails."""


class RepositoryError(JellyfinSyncError):
    """Raised when the local library database cannot be read or written."""


class QueueClosedError(JellyfinSyncError):
    """Raised when a request is submitted after the download queue shut down."""


class ConfigurationError(JellyfinSyncError):
    """Raised for issues related to configuration loading or validation."""
