"""
Persists the Jellyfin access token between runs and hands it to the download worker.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

log = logging.getLogger(__name__)


class CredentialStore:
    """
    A single shared, mutable token cell backed by a small JSON file.

    The download worker reads the token before each album's network calls,
    so a login or logout takes effect for the next queued request.
    """

    def __init__(self, session_file_path: Path):
        self.session_file_path = session_file_path
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._user_id: Optional[str] = None
        self._load()

    def _load(self) -> None:
        if not self.session_file_path.is_file():
            return
        try:
            with open(self.session_file_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            log.warning(f"[yellow]Ignoring unreadable session file:[/] {e}")
            return
        self._token = data.get("access_token") or None
        self._user_id = data.get("user_id") or None

    def _save(self) -> None:
        payload = {"access_token": self._token, "user_id": self._user_id}
        self.session_file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.session_file_path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f)
        os.replace(tmp_path, self.session_file_path)

    def current_token(self) -> Optional[str]:
        with self._lock:
            return self._token

    @property
    def user_id(self) -> Optional[str]:
        with self._lock:
            return self._user_id

    @property
    def authenticated(self) -> bool:
        return bool(self.current_token())

    def set_token(self, token: str, user_id: Optional[str] = None) -> None:
        with self._lock:
            self._token = token
            self._user_id = user_id
            self._save()
        log.debug("Stored new access token.")

    def clear(self) -> None:
        with self._lock:
            self._token = None
            self._user_id = None
            self._save()
