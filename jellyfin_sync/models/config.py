"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

MIN_CHUNK_SIZE = 4 * 1024
MAX_CHUNK_SIZE = 8 * 1024 * 1024


class SyncConfig(BaseModel):
    """A validated configuration model for the application."""

    # Server & identity
    server_url: str
    username: str = ""
    user_id: str = ""
    device_id: str = ""
    device_name: str = "jellyfin-sync"
    client_name: str = "jellyfin-sync"

    # Storage
    data_root: str

    # Download Settings
    poll_interval: float = 1.0
    chunk_size: int = 256 * 1024
    download_cover: bool = True

    # Internal fields not loaded from INI file
    config_path: str = Field(..., repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Ensures the server URL is an absolute http(s) URL without a trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Server URL must start with http:// or https://.")
        return v.rstrip("/")

    @field_validator("data_root")
    @classmethod
    def validate_data_root(cls, v: str) -> str:
        if not v:
            raise ValueError("Data root cannot be empty.")
        return str(Path(v).expanduser())

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        """Keeps the worker's bounded wait within a sane range."""
        if v <= 0 or v > 60:
            raise ValueError("Poll interval must be greater than 0 and at most 60 seconds.")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v < MIN_CHUNK_SIZE or v > MAX_CHUNK_SIZE:
            raise ValueError(
                f"Chunk size must be between {MIN_CHUNK_SIZE} and {MAX_CHUNK_SIZE} bytes."
            )
        return v

    @property
    def downloads_dir(self) -> Path:
        return Path(self.data_root) / "downloads"

    @property
    def database_path(self) -> Path:
        return Path(self.data_root) / "library.sqlite"

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
