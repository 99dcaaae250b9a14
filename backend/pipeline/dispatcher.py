"""
Segment handoff queue.

Decouples ingestion from downstream work: the scheduler calls submit()
(non-blocking) and worker tasks run SegmentPipeline.process() in the
background. A slow recognizer or disk never stalls frame ingestion.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from audio.frames import Segment
from constants import SEGMENT_WORKERS_DEFAULT
from observability.logger import log_event
from pipeline.processor import SegmentPipeline, SegmentResult


class SegmentDispatcher:
    """
    Unbounded FIFO of segments drained by `workers` asyncio tasks.

    With a single worker, segments are processed in submission order.
    """

    def __init__(
        self,
        pipeline: SegmentPipeline,
        *,
        workers: int = SEGMENT_WORKERS_DEFAULT,
        on_result: Optional[Callable[[SegmentResult], None]] = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")

        self._pipeline = pipeline
        self._workers = workers
        self._on_result = on_result
        self._queue: asyncio.Queue[Segment] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []
        self._closed = False

        self.processed: int = 0
        self.failed: int = 0

    # -------------------------
    # Lifecycle
    # -------------------------

    def start(self) -> None:
        """Spawn worker tasks on the running loop. Idempotent."""
        if self._tasks:
            return
        self._closed = False
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"segment-worker-{i}")
            for i in range(self._workers)
        ]

    async def close(self, *, drain: bool = True) -> None:
        """
        Stop accepting segments; optionally finish the backlog first.
        """
        self._closed = True
        if drain and self._tasks:
            await self._queue.join()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    # -------------------------
    # Handoff
    # -------------------------

    def submit(self, segment: Segment) -> None:
        """Enqueue a segment without waiting for processing."""
        if self._closed:
            log_event({
                "event_type": "SEGMENT_REJECTED_CLOSED",
                "session_id": segment.session_id,
                "segment_index": segment.index,
            })
            return
        self._queue.put_nowait(segment)

    @property
    def pending(self) -> int:
        """Segments queued but not yet picked up by a worker."""
        return self._queue.qsize()

    # -------------------------
    # Workers
    # -------------------------

    async def _worker(self, worker_id: int) -> None:
        while True:
            segment = await self._queue.get()
            try:
                result = await self._pipeline.process(segment)
                self.processed += 1
                if self._on_result is not None:
                    self._on_result(result)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self.failed += 1
                log_event({
                    "event_type": "SEGMENT_PROCESSING_FAILED",
                    "session_id": segment.session_id,
                    "segment_index": segment.index,
                    "worker": worker_id,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
            finally:
                self._queue.task_done()
