"""
Canonical RIFF/WAVE container writer.

Layout (44-byte header, all integers little-endian):

    0   "RIFF"
    4   u32  chunk size = 36 + data size
    8   "WAVE"
    12  "fmt "
    16  u32  16 (fmt sub-chunk size)
    20  u16  1 (PCM)
    22  u16  channels
    24  u32  sample rate
    28  u32  byte rate = sample_rate * channels * bits / 8
    32  u16  block align = channels * bits / 8
    34  u16  bits per sample
    36  "data"
    40  u32  data size
    44  PCM payload

PCM16 payloads are always even-length, so no pad byte is ever written.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

import numpy as np

from audio.pcm import PcmBuffer, apply_gain
from constants import (
    WAV_BITS_PER_SAMPLE,
    WAV_FMT_CHUNK_SIZE,
    WAV_FORMAT_PCM,
    WAV_HEADER_BYTES,
    WAV_RIFF_SIZE_OVERHEAD,
)

_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")


class WavFormatError(ValueError):
    """Raised for unsupported formats or a malformed header on read."""


@dataclass(frozen=True)
class WavHeader:
    """Decoded fields of a canonical 44-byte header."""
    chunk_size: int
    audio_format: int
    channels: int
    sample_rate_hz: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int


@dataclass(frozen=True)
class WavArtifact:
    """
    A complete WAV file: 44-byte header + PCM data.

    bytes(artifact) yields the playable file.
    """
    header: bytes
    data: bytes

    def __bytes__(self) -> bytes:
        return self.header + self.data

    def __len__(self) -> int:
        return len(self.header) + len(self.data)


def build_header(
    data_size: int,
    *,
    sample_rate_hz: int,
    channels: int,
    bits_per_sample: int = WAV_BITS_PER_SAMPLE,
) -> bytes:
    """Build the canonical header for `data_size` bytes of PCM."""
    if data_size < 0:
        raise WavFormatError(f"data_size must be >= 0, got {data_size}")
    if channels < 1:
        raise WavFormatError(f"channels must be >= 1, got {channels}")
    if sample_rate_hz <= 0:
        raise WavFormatError(f"sample_rate_hz must be > 0, got {sample_rate_hz}")
    if bits_per_sample <= 0 or bits_per_sample % 8 != 0:
        raise WavFormatError(f"bits_per_sample must be a multiple of 8, got {bits_per_sample}")

    block_align = channels * bits_per_sample // 8
    byte_rate = sample_rate_hz * block_align

    return _HEADER_STRUCT.pack(
        b"RIFF",
        WAV_RIFF_SIZE_OVERHEAD + data_size,
        b"WAVE",
        b"fmt ",
        WAV_FMT_CHUNK_SIZE,
        WAV_FORMAT_PCM,
        channels,
        sample_rate_hz,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_size,
    )


def write(
    pcm: PcmBuffer | np.ndarray,
    sample_rate_hz: int,
    channels: int,
    bits_per_sample: int = WAV_BITS_PER_SAMPLE,
    *,
    gain: float | None = None,
) -> WavArtifact:
    """
    Wrap PCM16 samples in a WAV container.

    Gain (if any) is applied to the samples before the header is sized.
    An empty buffer yields a valid 44-byte file.
    """
    if bits_per_sample != WAV_BITS_PER_SAMPLE:
        raise WavFormatError(
            f"only {WAV_BITS_PER_SAMPLE}-bit PCM payloads are supported, got {bits_per_sample}"
        )

    if channels < 1:
        raise WavFormatError(f"channels must be >= 1, got {channels}")

    samples = pcm.samples if isinstance(pcm, PcmBuffer) else np.asarray(pcm, dtype=np.int16)

    if samples.shape[0] % channels != 0:
        raise WavFormatError(
            f"{samples.shape[0]} samples do not divide into {channels} channels"
        )

    if gain is not None and gain != 1.0:
        samples = apply_gain(samples, gain)

    data = samples.astype("<i2", copy=False).tobytes()
    header = build_header(
        len(data),
        sample_rate_hz=sample_rate_hz,
        channels=channels,
        bits_per_sample=bits_per_sample,
    )
    return WavArtifact(header=header, data=data)


def write_buffer(pcm: PcmBuffer, *, gain: float | None = None) -> WavArtifact:
    """Write a PcmBuffer using its own rate and channel count."""
    return write(
        pcm,
        pcm.sample_rate_hz,
        pcm.channels,
        WAV_BITS_PER_SAMPLE,
        gain=gain,
    )


def parse_header(blob: bytes) -> WavHeader:
    """Read back a canonical 44-byte header."""
    if len(blob) < WAV_HEADER_BYTES:
        raise WavFormatError(f"need {WAV_HEADER_BYTES} bytes, got {len(blob)}")

    (
        riff, chunk_size, wave, fmt, fmt_size, audio_format, channels,
        sample_rate_hz, byte_rate, block_align, bits_per_sample, data_id, data_size,
    ) = _HEADER_STRUCT.unpack_from(blob, 0)

    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_id != b"data":
        raise WavFormatError("not a canonical RIFF/WAVE header")
    if fmt_size != WAV_FMT_CHUNK_SIZE:
        raise WavFormatError(f"unexpected fmt chunk size {fmt_size}")

    return WavHeader(
        chunk_size=chunk_size,
        audio_format=audio_format,
        channels=channels,
        sample_rate_hz=sample_rate_hz,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits_per_sample,
        data_size=data_size,
    )
