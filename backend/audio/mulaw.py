"""
G.711 mu-law codec.

Decoding is driven by a single 256-entry lookup table built once at import,
so the scalar and vectorized paths can never disagree.

Expansion formula (ITU-T G.711, Sun reference implementation):

    b        = ~code & 0xFF
    exponent = (b >> 4) & 0x07
    mantissa = b & 0x0F
    mag      = (((mantissa << 3) + BIAS) << exponent) - BIAS
    sample   = -mag if b & 0x80 else mag

Output range is +/-32124. Code 0xFF (line silence) decodes to 0.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np

from constants import MULAW_BIAS, MULAW_CLIP, PCM16_MAX, PCM16_MIN


class CodecDomainError(ValueError):
    """
    Raised when a value outside the codec domain reaches the codec.

    Never occurs for bytes (0..255) or int16 samples.
    """


# Segment lower bounds (biased magnitude) for exponents 1..7
_EXPONENT_THRESHOLDS = np.array(
    [256, 512, 1024, 2048, 4096, 8192, 16384], dtype=np.int32
)


def _expand(code: int) -> int:
    b = ~code & 0xFF
    exponent = (b >> 4) & 0x07
    mantissa = b & 0x0F
    magnitude = (((mantissa << 3) + MULAW_BIAS) << exponent) - MULAW_BIAS
    return -magnitude if b & 0x80 else magnitude


def _build_decode_table() -> np.ndarray:
    table = np.array([_expand(code) for code in range(256)], dtype=np.int16)
    table.setflags(write=False)
    return table


DECODE_TABLE: np.ndarray = _build_decode_table()


# -------------------------
# Scalar API
# -------------------------

def decode(code: int) -> int:
    """Expand one mu-law byte to a signed 16-bit sample."""
    if not 0 <= code <= 0xFF:
        raise CodecDomainError(f"mu-law code out of range: {code}")
    return int(DECODE_TABLE[code])


def encode(sample: int) -> int:
    """Compress one signed 16-bit sample to a mu-law byte."""
    if not PCM16_MIN <= sample <= PCM16_MAX:
        raise CodecDomainError(f"PCM16 sample out of range: {sample}")

    sign = 0x80 if sample < 0 else 0x00
    magnitude = min(abs(sample), MULAW_CLIP) + MULAW_BIAS

    # Biased magnitude is in [132, 32767]: bit_length 8..15 -> exponent 0..7
    exponent = magnitude.bit_length() - 8
    mantissa = (magnitude >> (exponent + 3)) & 0x0F

    return ~(sign | (exponent << 4) | mantissa) & 0xFF


# -------------------------
# Vectorized API
# -------------------------

def decode_bytes(mulaw_bytes: bytes) -> np.ndarray:
    """
    Decode a mu-law byte string to int16 samples.

    Length is preserved: one byte in, one sample out.
    """
    if not mulaw_bytes:
        return np.zeros((0,), dtype=np.int16)
    codes = np.frombuffer(mulaw_bytes, dtype=np.uint8)
    return DECODE_TABLE[codes]


def encode_samples(samples: np.ndarray | Iterable[int]) -> bytes:
    """Encode int16 samples to mu-law bytes (one byte per sample)."""
    pcm = np.asarray(samples)
    if pcm.size == 0:
        return b""
    if pcm.dtype != np.int16:
        if pcm.min() < PCM16_MIN or pcm.max() > PCM16_MAX:
            raise CodecDomainError("samples exceed the PCM16 range")

    values = pcm.astype(np.int32)
    sign = np.where(values < 0, 0x80, 0x00).astype(np.int32)
    magnitude = np.minimum(np.abs(values), MULAW_CLIP) + MULAW_BIAS

    exponent = np.searchsorted(_EXPONENT_THRESHOLDS, magnitude, side="right")
    exponent = exponent.astype(np.int32)
    mantissa = (magnitude >> (exponent + 3)) & 0x0F

    codes = ~(sign | (exponent << 4) | mantissa) & 0xFF
    return codes.astype(np.uint8).tobytes()
