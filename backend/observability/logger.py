"""
JSONL event logger.

- One JSON object per line on stdout
- Flushed per event; no buffering, no batching
- `ts_ms` is stamped when the caller did not supply one
- Never raises
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Callable, Mapping


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


def now_ms() -> int:
    """Wall-clock milliseconds for event timestamps."""
    return time.time_ns() // 1_000_000


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single pipeline event as one JSONL line.

    The caller supplies `event_type` plus context (session_id, seq, ...).
    Values that JSON cannot encode (bytes, numpy scalars) are rendered
    with repr() rather than failing the whole line.
    """
    record: dict[str, Any] = dict(event)
    record.setdefault("ts_ms", now_ms())

    try:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        try:
            line = json.dumps(record, ensure_ascii=False, separators=(",", ":"), default=repr)
        except (TypeError, ValueError):
            # Last-resort fallback; logging must never crash ingestion
            line = json.dumps({
                "ts_ms": record.get("ts_ms"),
                "event_type": "LOGGER_SERIALIZATION_ERROR",
                "error": str(e),
                "original_event_repr": repr(event),
            }, ensure_ascii=False, separators=(",", ":"))

    _print(line)
