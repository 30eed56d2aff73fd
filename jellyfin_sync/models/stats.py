"""
Dataclass for tracking download session statistics.
"""

import time
from dataclasses import dataclass, field


@dataclass
class SyncStats:
    """Tracks what the download worker did during one session."""

    albums_completed: int = 0
    albums_already_downloaded: int = 0
    albums_failed: int = 0
    tracks_downloaded: int = 0
    tracks_failed: int = 0
    covers_downloaded: int = 0
    total_size_downloaded: int = 0
    failed_ids: list[str] = field(default_factory=list)
    _start_time: float = field(default_factory=time.monotonic, repr=False)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start_time

    @property
    def average_speed_bps(self) -> float:
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return 0.0
        return self.total_size_downloaded / elapsed

    def record_failure(self, request_id: str) -> None:
        self.albums_failed += 1
        self.failed_ids.append(request_id)
