"""
Audio frame primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class AudioFrame:
    """
    One chunk of telephony audio as delivered by the transport.

    sequence_number:
        Sender-assigned ordering key. Frames may arrive out of order,
        duplicated, or with gaps.

    timestamp_ms:
        Sender media timestamp in milliseconds. Observability only;
        ordering is decided by sequence_number.

    payload:
        Raw G.711 mu-law bytes, one byte per sample.

    track_id:
        Optional track label (e.g. "inbound").
    """
    sequence_number: int
    timestamp_ms: int
    payload: bytes
    track_id: str | None = None


@dataclass(frozen=True)
class Segment:
    """
    Time-ordered mu-law audio flushed from a reassembly buffer.

    Consumed exactly once by the segment pipeline, then discarded.
    An empty segment (no bytes) is a valid no-op.
    """
    session_id: str
    mulaw_bytes: bytes
    frame_count: int
    created_at: float = field(default_factory=time.time)
    index: int = 0
    is_final: bool = False
    gap_count: int = 0

    def is_empty(self) -> bool:
        """True when the segment carries no audio."""
        return not self.mulaw_bytes
