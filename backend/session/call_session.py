"""
Call session container.

- Owns exactly one reassembly buffer + scheduler pair
- Owned and mutated by SessionLifecycleManager
- Contains no lifecycle policy of its own
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional

from audio.frames import AudioFrame, Segment
from audio.reassembly import FrameReassemblyBuffer
from pipeline.scheduler import SegmentationScheduler


# ---------------------------------------------------------------------
# CallSession
# ---------------------------------------------------------------------


@dataclass
class CallSession:
    """Mutable runtime container for a single call."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    buffer: FrameReassemblyBuffer
    scheduler: SegmentationScheduler
    started_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Ingest bookkeeping (gateway-controlled)
    # ------------------------------------------------------------------

    last_sequence_number: int | None = None
    frames_rejected: int = 0

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def add_frame(self, frame: AudioFrame) -> None:
        """Append to the open segment and let the scheduler react."""
        self.buffer.add_frame(frame)
        self.scheduler.on_frame_added()

    def close(self) -> Optional[Segment]:
        """Run the scheduler's terminal flush and release buffered frames."""
        segment = self.scheduler.close()
        self.buffer.clear()
        return segment

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "scheduler_state": self.scheduler.state.value,
            "age_s": round(time.time() - self.started_at, 3),
            **self.buffer.snapshot(),
        }
