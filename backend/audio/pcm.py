"""PCM16 buffer and sample utilities."""

from __future__ import annotations

from dataclasses import dataclass
from math import gcd

import numpy as np
from scipy import signal

from audio.frames import Segment
from audio.mulaw import decode_bytes
from constants import (
    PCM16_MAX,
    PCM16_MIN,
    TELEPHONY_CHANNELS,
    TELEPHONY_SAMPLE_RATE_HZ,
)


@dataclass(frozen=True)
class PcmBuffer:
    """
    Linear PCM16 samples plus format metadata.

    Derived one-to-one from a Segment: one mu-law byte -> one sample.
    """
    samples: np.ndarray
    sample_rate_hz: int = TELEPHONY_SAMPLE_RATE_HZ
    channels: int = TELEPHONY_CHANNELS

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    def to_bytes(self) -> bytes:
        """Little-endian PCM16 bytes."""
        return self.samples.astype("<i2", copy=False).tobytes()

    def duration_seconds(self) -> float:
        """Playback duration of the buffer."""
        if len(self) == 0:
            return 0.0
        return len(self) / float(self.sample_rate_hz * self.channels)

    @staticmethod
    def from_segment(segment: Segment) -> PcmBuffer:
        """Decode a segment's mu-law bytes at telephony rate."""
        return PcmBuffer(samples=decode_bytes(segment.mulaw_bytes))


def apply_gain(samples: np.ndarray, gain: float) -> np.ndarray:
    """
    Multiply samples by `gain`, round, and clip to the int16 range.

    Returns a new array; the input is never mutated.
    """
    if gain < 0:
        raise ValueError("gain must be >= 0")
    scaled = np.round(samples.astype(np.float64) * gain)
    return np.clip(scaled, PCM16_MIN, PCM16_MAX).astype(np.int16)


def resample_pcm16(samples: np.ndarray, src_rate_hz: int, dst_rate_hz: int) -> np.ndarray:
    """
    Polyphase resample int16 samples between integer rates.

    8kHz -> 16kHz is an exact 2x upsample.
    """
    if src_rate_hz <= 0 or dst_rate_hz <= 0:
        raise ValueError("sample rates must be > 0")
    if src_rate_hz == dst_rate_hz or samples.size == 0:
        return samples.astype(np.int16, copy=True)

    divisor = gcd(src_rate_hz, dst_rate_hz)
    up = dst_rate_hz // divisor
    down = src_rate_hz // divisor

    resampled = signal.resample_poly(samples.astype(np.float64), up, down)

    # Clip and convert back to int16
    return np.clip(np.round(resampled), PCM16_MIN, PCM16_MAX).astype(np.int16)
