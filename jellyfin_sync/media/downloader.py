"""
Handles the low-level streaming of HTTP responses to disk in chunks, with retries
for transient network failures.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import aiofiles
import aiohttp

from jellyfin_sync.exceptions import LocalIOError, RemoteApiError

log = logging.getLogger(__name__)

PART_SUFFIX = ".part"


class Downloader:
    """
    A sequential file downloader.

    Bytes are written to `<destination>.part`, flushed and synced, then
    renamed onto the destination. A file at the destination path is therefore
    always complete; an interrupted transfer leaves at most a `.part` file.
    """

    def __init__(
        self,
        chunk_size: int = 256 * 1024,
        max_attempts: int = 3,
        base_delay: float = 1.5,
    ):
        self.chunk_size = chunk_size
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    async def download_file(
        self,
        session: aiohttp.ClientSession,
        url: str,
        destination: Path,
        headers: Optional[dict[str, str]] = None,
    ) -> int:
        """
        Streams `url` into `destination` and returns the number of bytes written.

        Raises:
            RemoteApiError: The server answered with a non-2xx status (not retried).
            LocalIOError: The file could not be written or moved into place.
            aiohttp.ClientError / asyncio.TimeoutError: The network failed on
            every attempt.
        """
        part_path = destination.with_name(destination.name + PART_SUFFIX)

        try:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    written = await self._stream_once(session, url, part_path, headers)
                    os.replace(part_path, destination)
                    return written
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    if attempt >= self.max_attempts:
                        log.debug(f"Giving up on '{destination.name}' after {attempt} attempts.")
                        raise
                    log.debug(
                        f"Download attempt {attempt}/{self.max_attempts} for "
                        f"'{destination.name}' failed: {e}. Retrying..."
                    )
                    await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))
                except OSError as e:
                    raise LocalIOError(
                        f"Failed to write '{destination}': {e.strerror or e}"
                    ) from e
        finally:
            if part_path.exists():
                try:
                    os.remove(part_path)
                except OSError as e:
                    log.debug(f"Could not remove partial file '{part_path}': {e}")

        raise LocalIOError(f"No download attempts were made for '{destination}'.")

    async def _stream_once(
        self,
        session: aiohttp.ClientSession,
        url: str,
        part_path: Path,
        headers: Optional[dict[str, str]],
    ) -> int:
        async with session.get(url, headers=headers, allow_redirects=True) as response:
            if not 200 <= response.status < 300:
                body = await response.text(errors="replace")
                raise RemoteApiError(response.status, body or response.reason or "")

            bytes_downloaded = 0
            async with aiofiles.open(part_path, "wb") as f:
                async for chunk in response.content.iter_chunked(self.chunk_size):
                    await f.write(chunk)
                    bytes_downloaded += len(chunk)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())

        log.debug(f"Wrote {bytes_downloaded} bytes to '{part_path.name}'.")
        return bytes_downloaded
