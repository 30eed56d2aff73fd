"""
Handles authentication with the Jellyfin server and keeps the resulting token
in the credential store.
"""

import logging
from typing import TYPE_CHECKING, Any

from jellyfin_sync.exceptions import AuthenticationError, RemoteApiError
from jellyfin_sync.storage.credentials import CredentialStore

if TYPE_CHECKING:
    from .client import JellyfinClient

log = logging.getLogger(__name__)


class JellyfinAuthenticator:
    """
    Manages the login flow for the Jellyfin API client.
    """

    def __init__(self, api_client: "JellyfinClient", credentials: CredentialStore):
        """
        Initializes the authenticator.

        Args:
            api_client: The client used to reach the server.
            credentials: Where the access token is stored for the download worker.
        """
        self._api_client = api_client
        self._credentials = credentials

    async def login(self, username: str, password: str) -> dict[str, Any]:
        """
        Authenticates by username/password and stores the returned access token.

        Returns:
            The user information dictionary from the API.
        """
        log.info(f"Authenticating as: {username}")
        try:
            response = await self._api_client.authenticate_by_name(username, password)
        except RemoteApiError as e:
            if e.status in (400, 401, 403):
                raise AuthenticationError("Invalid username or password.") from e
            raise

        token = (response or {}).get("AccessToken")
        if not token:
            raise AuthenticationError("Server response did not contain an access token.")

        user = response.get("User") or {}
        self._credentials.set_token(token, user.get("Id"))
        log.info(f"Successfully authenticated as: {user.get('Name', username)}")
        return user

    def logout(self) -> None:
        """Forgets the stored access token."""
        self._credentials.clear()
        log.info("Stored access token removed.")
