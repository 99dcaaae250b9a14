"""
Timing helpers for pipeline observability.

- Durations use monotonic time
- One measurement = one METRIC_TIMER log event, never aggregated
- `timed()` guarantees the metric is emitted even when the block raises
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


class Stopwatch:
    """Monotonic stopwatch; `elapsed_ms` is readable mid-flight."""

    def __init__(self) -> None:
        self._start_ns = time.monotonic_ns()

    @property
    def elapsed_ms(self) -> int:
        return (time.monotonic_ns() - self._start_ns) // 1_000_000


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[Stopwatch]:
    """
    Measure a block and emit a METRIC_TIMER event on exit.

    Usage:
        with timed("asr_recognize", session_id=segment.session_id):
            await recognizer.recognize(...)

    `ok` in the event records whether the block raised.
    """
    watch = Stopwatch()
    ok = False
    try:
        yield watch
        ok = True
    finally:
        log_event({
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": watch.elapsed_ms,
            "session_id": session_id,
            "ok": ok,
            "details": details or {},
        })
