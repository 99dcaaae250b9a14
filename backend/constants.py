"""
BEHAVIORAL CONSTANTS
--------------------
Single source of truth for all behavioral invariants in the pipeline.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Tuple

# =============================================================================
# Telephony Audio Format (G.711 mu-law mono @ 8kHz)
# =============================================================================

TELEPHONY_SAMPLE_RATE_HZ: Final[int] = 8_000
TELEPHONY_CHANNELS: Final[int] = 1
MULAW_BYTES_PER_SAMPLE: Final[int] = 1
TELEPHONY_ENCODING: Final[str] = "MULAW"

# Twilio announces this in the `start` message
MEDIA_STREAM_ENCODING: Final[str] = "audio/x-mulaw"

# =============================================================================
# G.711 mu-law
# =============================================================================

MULAW_BIAS: Final[int] = 0x84
MULAW_CLIP: Final[int] = 32_635
MULAW_SILENCE_BYTE: Final[int] = 0xFF

PCM16_MIN: Final[int] = -32_768
PCM16_MAX: Final[int] = 32_767

# =============================================================================
# WAV Container (canonical 44-byte RIFF/WAVE header)
# =============================================================================

WAV_HEADER_BYTES: Final[int] = 44
WAV_FMT_CHUNK_SIZE: Final[int] = 16
WAV_FORMAT_PCM: Final[int] = 1
WAV_BITS_PER_SAMPLE: Final[int] = 16

# RIFF size field = header bytes after the first 8 + data bytes
WAV_RIFF_SIZE_OVERHEAD: Final[int] = WAV_HEADER_BYTES - 8

# =============================================================================
# Segmentation Policy
# =============================================================================

FLUSH_INTERVAL_MS: Final[int] = 4_000
FLUSH_MIN_FRAMES: Final[int] = 100  # ~2s of 20ms telephony frames
FLUSH_MIN_GAP_MS: Final[int] = 3_000

# =============================================================================
# Segment Processing
# =============================================================================

SEGMENT_WORKERS_DEFAULT: Final[int] = 1
WAV_GAIN_DEFAULT: Final[float] = 1.0

# =============================================================================
# Speech Recognition
# =============================================================================

ASR_MODEL_DEFAULT: Final[str] = "whisper-1"
ASR_PROVIDERS: Final[Tuple[str, ...]] = ("openai", "none")

# =============================================================================
# Observability
# =============================================================================

FRAME_PROGRESS_LOG_EVERY: Final[int] = 100
LOG_PAYLOAD_PREVIEW_CHARS: Final[int] = 100

# =============================================================================
# Helper Functions
# =============================================================================

def mulaw_bytes_to_seconds(num_bytes: int) -> float:
    """
    Convert a count of mu-law bytes to audio duration in seconds.

    Edge cases:
    - Non-positive input returns 0.0.
    """
    if num_bytes <= 0:
        return 0.0
    return num_bytes / float(TELEPHONY_SAMPLE_RATE_HZ * MULAW_BYTES_PER_SAMPLE)


# =============================================================================
# Convenience Bundles
# =============================================================================

@dataclass(frozen=True)
class FlushPolicy:
    """
    Time + size gating for segment flushes.

    A tick flushes only when BOTH hold:
    - at least `min_frames` frames are pending
    - at least `min_gap_ms` elapsed since the previous flush
    """
    interval_ms: int = FLUSH_INTERVAL_MS
    min_frames: int = FLUSH_MIN_FRAMES
    min_gap_ms: int = FLUSH_MIN_GAP_MS

    def __post_init__(self) -> None:
        if self.interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        if self.min_frames < 0:
            raise ValueError("min_frames must be >= 0")
        if self.min_gap_ms < 0:
            raise ValueError("min_gap_ms must be >= 0")


DEFAULT_FLUSH_POLICY: Final[FlushPolicy] = FlushPolicy()
