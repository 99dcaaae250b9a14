# backend/audio/reassembly.py
"""
Frame reassembly buffer.

Holds the frames of the currently open segment until flushed.

Rules:
- add_frame() is append-only; no sorting on the ingest path
- flush() sorts once by sequence_number (stable: duplicates keep arrival order)
- Duplicates are retained, never dropped
- Gaps never block: missing sequence numbers are counted, not waited for
- Deterministic, synchronous behavior
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from audio.frames import AudioFrame, Segment


@dataclass
class ReassemblyCounters:
    """
    Lifetime counters for observability.
    """
    frames_added: int = 0
    bytes_added: int = 0
    segments_flushed: int = 0


def count_sequence_gaps(ordered: List[AudioFrame]) -> int:
    """
    Number of sequence numbers missing between consecutive sorted frames.

    Duplicates contribute nothing.
    """
    gaps = 0
    for prev, current in zip(ordered, ordered[1:]):
        step = current.sequence_number - prev.sequence_number
        if step > 1:
            gaps += step - 1
    return gaps


class FrameReassemblyBuffer:
    """
    Unbounded, single-writer buffer of pending AudioFrames.

    Memory is bounded by the flush cadence: every flush releases all
    pending frames.
    """

    def __init__(self) -> None:
        self._pending: List[AudioFrame] = []
        self._pending_bytes: int = 0
        self._segment_index: int = 0
        self.counters: ReassemblyCounters = ReassemblyCounters()

    # -------------------------
    # Core operations
    # -------------------------

    def add_frame(self, frame: AudioFrame) -> None:
        """Append a frame. O(1); ordering is resolved at flush time."""
        self._pending.append(frame)
        self._pending_bytes += len(frame.payload)
        self.counters.frames_added += 1
        self.counters.bytes_added += len(frame.payload)

    def flush(self, session_id: str, *, is_final: bool = False) -> Segment:
        """
        Drain all pending frames into a time-ordered Segment.

        Always succeeds; with nothing pending the Segment is empty.
        """
        # sorted() is stable: equal sequence numbers keep arrival order
        ordered = sorted(self._pending, key=lambda f: f.sequence_number)

        segment = Segment(
            session_id=session_id,
            mulaw_bytes=b"".join(f.payload for f in ordered),
            frame_count=len(ordered),
            index=self._segment_index,
            is_final=is_final,
            gap_count=count_sequence_gaps(ordered),
        )

        self._pending = []
        self._pending_bytes = 0
        self._segment_index += 1
        self.counters.segments_flushed += 1
        return segment

    def clear(self) -> None:
        """
        Drop all pending frames without producing a segment.

        Used only when a session is discarded after its final flush.
        """
        self._pending = []
        self._pending_bytes = 0

    # -------------------------
    # Introspection helpers
    # -------------------------

    def frame_count(self) -> int:
        """Number of frames pending for the open segment."""
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def pending_bytes(self) -> int:
        """Total payload bytes pending."""
        return self._pending_bytes

    def snapshot(self) -> dict[str, int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        return {
            "pending_frames": len(self._pending),
            "pending_bytes": self._pending_bytes,
            "frames_added": self.counters.frames_added,
            "segments_flushed": self.counters.segments_flushed,
        }
