"""
Segmentation scheduler.

Decides when the frames pending in a session's reassembly buffer become a
Segment and hands that Segment downstream.

State machine (one instance per session):

    IDLE ──first frame──> ACCUMULATING ──close()──> CLOSED
                           │      ▲
                           └tick──┘  flush if gated conditions hold

Tick gating (both must hold, otherwise the tick is skipped as FLUSH_SKIPPED):
- frame_count() >= policy.min_frames
- now - last_flush >= policy.min_gap_ms

close() cancels the timer synchronously and then flushes unconditionally,
so trailing audio below min_frames is never discarded.

Ticks are produced either by an asyncio timer task (use_timer=True) or by
an explicit caller poll via tick(now_ms). Both share the same gating.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Callable, Optional

from audio.frames import Segment
from audio.reassembly import FrameReassemblyBuffer
from constants import DEFAULT_FLUSH_POLICY, FlushPolicy, mulaw_bytes_to_seconds
from observability.logger import log_event


def _monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class SchedulerState(str, Enum):
    """Lifecycle state of a session's scheduler."""
    IDLE = "IDLE"
    ACCUMULATING = "ACCUMULATING"
    CLOSED = "CLOSED"


class TickOutcome(str, Enum):
    """Result of evaluating one tick."""
    FLUSH = "flush"
    TOO_SOON = "too_soon"
    TOO_FEW_FRAMES = "too_few_frames"
    NOT_ACCUMULATING = "not_accumulating"


def evaluate_tick(
    *,
    state: SchedulerState,
    frame_count: int,
    now_ms: int,
    last_flush_ms: Optional[int],
    policy: FlushPolicy,
) -> TickOutcome:
    """
    Pure gating decision for a single tick.

    No side effects; the scheduler acts on the returned outcome.
    """
    if state is not SchedulerState.ACCUMULATING:
        return TickOutcome.NOT_ACCUMULATING

    if last_flush_ms is not None and now_ms - last_flush_ms < policy.min_gap_ms:
        return TickOutcome.TOO_SOON

    if frame_count < policy.min_frames:
        return TickOutcome.TOO_FEW_FRAMES

    return TickOutcome.FLUSH


class SegmentationScheduler:
    """
    Time + size flush policy for one session.

    on_segment:
        Non-blocking handoff (e.g. SegmentDispatcher.submit). Called only
        with non-empty segments. Must not await downstream work.
    """

    def __init__(
        self,
        *,
        session_id: str,
        buffer: FrameReassemblyBuffer,
        on_segment: Callable[[Segment], None],
        policy: FlushPolicy = DEFAULT_FLUSH_POLICY,
        clock: Callable[[], int] = _monotonic_ms,
        use_timer: bool = True,
    ) -> None:
        self._session_id = session_id
        self._buffer = buffer
        self._on_segment = on_segment
        self._policy = policy
        self._clock = clock
        self._use_timer = use_timer

        self._state = SchedulerState.IDLE
        self._timer: asyncio.Task[None] | None = None
        self._last_flush_ms: Optional[int] = None
        self.flush_count: int = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def policy(self) -> FlushPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def on_frame_added(self) -> None:
        """
        Notify that a frame was appended to the buffer.

        IDLE -> ACCUMULATING on the first frame (starts the timer).
        """
        if self._state is SchedulerState.CLOSED:
            log_event({
                "event_type": "FRAME_AFTER_CLOSE",
                "session_id": self._session_id,
            })
            return

        if self._state is SchedulerState.IDLE:
            self._state = SchedulerState.ACCUMULATING
            if self._use_timer:
                self._timer = asyncio.get_running_loop().create_task(
                    self._run_timer(),
                    name=f"flush-timer-{self._session_id}",
                )
            log_event({
                "event_type": "SEGMENTATION_STARTED",
                "session_id": self._session_id,
                "interval_ms": self._policy.interval_ms,
                "min_frames": self._policy.min_frames,
                "timer": self._use_timer,
            })

    def tick(self, now_ms: Optional[int] = None) -> Optional[Segment]:
        """
        Evaluate one tick; flush and hand off when gating allows.

        Returns the flushed segment, or None when the tick was skipped.
        """
        now = self._clock() if now_ms is None else now_ms
        outcome = evaluate_tick(
            state=self._state,
            frame_count=self._buffer.frame_count(),
            now_ms=now,
            last_flush_ms=self._last_flush_ms,
            policy=self._policy,
        )

        if outcome is not TickOutcome.FLUSH:
            if outcome is not TickOutcome.NOT_ACCUMULATING:
                log_event({
                    "event_type": "FLUSH_SKIPPED",
                    "session_id": self._session_id,
                    "reason": outcome.value,
                    "pending_frames": self._buffer.frame_count(),
                })
            return None

        self._last_flush_ms = now
        segment = self._buffer.flush(self._session_id)
        if segment.is_empty():
            return None
        self._hand_off(segment)
        return segment

    def close(self) -> Optional[Segment]:
        """
        Terminal transition: cancel timer, flush everything that is left.

        Idempotent. Returns the final segment if it carried audio.
        """
        if self._state is SchedulerState.CLOSED:
            return None

        # Cancel before touching the buffer so a late tick cannot interleave
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        self._state = SchedulerState.CLOSED

        segment = self._buffer.flush(self._session_id, is_final=True)
        if segment.is_empty():
            log_event({
                "event_type": "FINAL_FLUSH_EMPTY",
                "session_id": self._session_id,
                "segments_flushed": self.flush_count,
            })
            return None

        self._last_flush_ms = self._clock()
        self._hand_off(segment)
        return segment

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_timer(self) -> None:
        interval_s = self._policy.interval_ms / 1000.0
        while self._state is SchedulerState.ACCUMULATING:
            await asyncio.sleep(interval_s)
            self.tick()

    def _hand_off(self, segment: Segment) -> None:
        self.flush_count += 1

        log_event({
            "event_type": "SEGMENT_FLUSHED",
            "session_id": self._session_id,
            "segment_index": segment.index,
            "frames": segment.frame_count,
            "bytes": len(segment.mulaw_bytes),
            "duration_s": round(mulaw_bytes_to_seconds(len(segment.mulaw_bytes)), 3),
            "gap_count": segment.gap_count,
            "final": segment.is_final,
        })

        try:
            self._on_segment(segment)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "SEGMENT_HANDOFF_FAILED",
                "session_id": self._session_id,
                "segment_index": segment.index,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
