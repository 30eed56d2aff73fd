"""
Event names emitted by the download engine and the sinks that receive them.
"""

import logging
from typing import Any, Protocol

log = logging.getLogger(__name__)

QUEUE_OCCUPIED = "queue-occupied"
QUEUE_EMPTY = "queue-empty"
ALBUM_DOWNLOAD_STARTED = "album-download-started"
ALBUM_DOWNLOAD_COMPLETED = "album-download-completed"
TRACK_DOWNLOAD_STARTED = "track-download-started"
TRACK_DOWNLOAD_COMPLETED = "track-download-completed"
DOWNLOAD_FAILED = "download-failed"


class NotificationSink(Protocol):
    """Fire-and-forget receiver of engine events. Must not block or raise."""

    def emit(self, event: str, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Writes every event to the application log."""

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        if event == DOWNLOAD_FAILED:
            log.error(f"[red]✗ {event}[/red] {payload.get('id')}: {payload.get('error')}")
        elif payload:
            log.info(f"{event} {payload.get('id', '')}".rstrip())
        else:
            log.debug(event)


class FanoutNotifier:
    """Forwards each event to several sinks, isolating them from each other."""

    def __init__(self, *sinks: NotificationSink):
        self.sinks = list(sinks)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        for sink in self.sinks:
            try:
                sink.emit(event, payload)
            except Exception as e:
                log.debug(f"Notification sink {type(sink).__name__} failed: {e}")
