"""
The download queue: a non-blocking submission channel drained by exactly one
background worker task.
"""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Optional

from jellyfin_sync.exceptions import QueueClosedError
from jellyfin_sync.models.library import DownloadRequest

from .notifications import (
    DOWNLOAD_FAILED,
    QUEUE_EMPTY,
    QUEUE_OCCUPIED,
    NotificationSink,
)

log = logging.getLogger(__name__)

RequestHandler = Callable[[DownloadRequest], Awaitable[None]]

_SHUTDOWN = object()


class DownloadQueue:
    """
    Accepts album/track download requests and processes them one at a time.

    There is never more than one worker, so at most one filesystem mutation
    touches any album directory at a time. Requests are handled in strict
    submission order. The queue reports its occupancy to the notification
    sink: `queue-occupied` when it goes from empty to non-empty (emitted
    before the request is visible to the worker) and `queue-empty` once the
    worker has drained it.
    """

    def __init__(
        self,
        handler: RequestHandler,
        notifier: NotificationSink,
        poll_interval: float = 1.0,
    ):
        """
        Args:
            handler: Coroutine that fully processes one request. Any exception
                it raises is reported as a `download-failed` event.
            notifier: Receives occupancy and failure events.
            poll_interval: Bounded wait, in seconds, for the next request.
        """
        self._handler = handler
        self._notifier = notifier
        self.poll_interval = poll_interval

        self._queue: asyncio.Queue = asyncio.Queue()
        self._in_hand: deque[DownloadRequest] = deque()
        self._worker: Optional[asyncio.Task] = None
        self._occupied = False
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Requests accepted but not yet finished, including the in-flight one."""
        return self._queue.qsize() + len(self._in_hand)

    def start(self) -> None:
        """Spawns the worker task on the running event loop. Idempotent."""
        if self._closed:
            raise QueueClosedError("Download queue has been shut down.")
        if self.is_running:
            return
        self._worker = asyncio.get_running_loop().create_task(
            self._run(), name="download-queue-worker"
        )

    def enqueue(self, request: DownloadRequest) -> None:
        """
        Submits a request without blocking.

        Raises:
            QueueClosedError: If `shutdown()` has been called.
        """
        if self._closed:
            raise QueueClosedError("Download queue has been shut down.")

        if not self._occupied:
            self._occupied = True
            self._notifier.emit(QUEUE_OCCUPIED, {})
        self._queue.put_nowait(request)
        log.debug(f"Queued {type(request).__name__} for '{request.remote_id}'.")

    def shutdown(self) -> None:
        """
        Stops accepting requests. The worker lets an in-flight request finish,
        then exits. Requests still waiting are resolved as failed.
        """
        if self._closed:
            return
        self._closed = True
        log.debug("Download queue shutting down.")
        if self.is_running:
            self._queue.put_nowait(_SHUTDOWN)
        else:
            self._fail_backlog()

    async def join(self) -> None:
        """Waits until every accepted request has been processed or rejected."""
        await self._queue.join()

    async def wait_closed(self) -> None:
        """Waits for the worker task to exit after `shutdown()`."""
        if self._worker is not None:
            await asyncio.gather(self._worker, return_exceptions=True)

    async def _run(self) -> None:
        log.debug("Download worker started.")
        try:
            while not self._closed:
                try:
                    first = await asyncio.wait_for(
                        self._queue.get(), timeout=self.poll_interval
                    )
                except asyncio.TimeoutError:
                    self._emit_empty_if_drained()
                    continue

                if first is _SHUTDOWN:
                    self._queue.task_done()
                    break

                self._in_hand.append(first)
                self._drain_into_batch()
                await self._process_batch()
                self._emit_empty_if_drained()
        except asyncio.CancelledError:
            log.debug("Download worker cancelled.")
            raise
        finally:
            self._closed = True
            self._fail_backlog()
            log.debug("Download worker stopped.")

    def _drain_into_batch(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            if item is _SHUTDOWN:
                self._queue.task_done()
                return
            self._in_hand.append(item)

    async def _process_batch(self) -> None:
        while self._in_hand and not self._closed:
            request = self._in_hand[0]
            try:
                await self._handler(request)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.debug(
                    f"Request for '{request.remote_id}' failed.",
                    exc_info=log.getEffectiveLevel() == logging.DEBUG,
                )
                self._report_failure(request, str(e) or type(e).__name__)
            self._in_hand.popleft()
            self._queue.task_done()

    def _report_failure(self, request: DownloadRequest, error: str) -> None:
        self._notifier.emit(DOWNLOAD_FAILED, {"id": request.remote_id, "error": error})

    def _fail_backlog(self) -> None:
        """Resolves every request that will never be processed as failed."""
        while self._in_hand:
            request = self._in_hand.popleft()
            self._report_failure(request, "Download queue has been shut down.")
            self._queue.task_done()
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is not _SHUTDOWN:
                self._report_failure(item, "Download queue has been shut down.")
            self._queue.task_done()
        self._emit_empty_if_drained()

    def _emit_empty_if_drained(self) -> None:
        if self._occupied and self._queue.empty() and not self._in_hand:
            self._occupied = False
            self._notifier.emit(QUEUE_EMPTY, {})
