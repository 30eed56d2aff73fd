"""
Renders download engine events on a Rich console: a spinner while the queue is
occupied, and one line per album lifecycle event.
"""

import logging
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.status import Status

from jellyfin_sync.core.notifications import (
    ALBUM_DOWNLOAD_COMPLETED,
    ALBUM_DOWNLOAD_STARTED,
    DOWNLOAD_FAILED,
    QUEUE_EMPTY,
    QUEUE_OCCUPIED,
    TRACK_DOWNLOAD_COMPLETED,
    TRACK_DOWNLOAD_STARTED,
)

log = logging.getLogger("jellyfin_sync")


class ProgressManager:
    """
    A notification sink for the CLI.

    Tracks how many requests completed or failed so the summary panel can be
    printed once the queue is drained.
    """

    def __init__(self, console: Console):
        self.console = console
        self._status: Optional[Status] = None
        self._stats = {
            "started": 0,
            "completed": 0,
            "failed": 0,
            "occupied_transitions": 0,
        }
        self.failures: dict[str, str] = {}

    def __enter__(self) -> "ProgressManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._stop_status()

    def _start_status(self) -> None:
        if self._status is None:
            self._status = self.console.status(
                "[bold cyan]Downloading...[/bold cyan]", spinner="dots"
            )
            self._status.start()

    def _stop_status(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        item_id = escape(str(payload.get("id", "")))

        if event == QUEUE_OCCUPIED:
            self._stats["occupied_transitions"] += 1
            self._start_status()
        elif event == QUEUE_EMPTY:
            self._stop_status()
        elif event in (ALBUM_DOWNLOAD_STARTED, TRACK_DOWNLOAD_STARTED):
            self._stats["started"] += 1
            if self._status is not None:
                self._status.update(f"[bold cyan]Downloading[/bold cyan] {item_id}...")
        elif event in (ALBUM_DOWNLOAD_COMPLETED, TRACK_DOWNLOAD_COMPLETED):
            self._stats["completed"] += 1
            self.console.print(f"[green]✓ Completed[/green] [dim]{item_id}[/dim]")
        elif event == DOWNLOAD_FAILED:
            self._stats["failed"] += 1
            error = str(payload.get("error", "Unknown error"))
            self.failures[str(payload.get("id", ""))] = error
            self.console.print(f"[red]✗ Failed[/red] [dim]{item_id}[/dim]: {escape(error)}")
        else:
            log.debug(f"Unhandled event {event}: {payload}")

    def get_statistics(self) -> dict[str, int]:
        return dict(self._stats)
