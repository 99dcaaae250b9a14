"""
Call capture and offline conversion.

A capture is a JSON array of the raw media-stream messages of one call,
in arrival order. Captures can be replayed into a WAV file through the
same reassembly buffer, codec and writer used live.
"""

from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from audio import wav
from audio.mulaw import decode_bytes
from audio.pcm import resample_pcm16
from audio.reassembly import FrameReassemblyBuffer
from constants import (
    MULAW_SILENCE_BYTE,
    TELEPHONY_CHANNELS,
    TELEPHONY_SAMPLE_RATE_HZ,
    mulaw_bytes_to_seconds,
)
from observability.logger import log_event
from protocol.twilio import MalformedFrame, MediaMessage, TwilioProtocolError, media_to_frame, parse_event

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class CaptureError(Exception):
    """Raised when a capture file cannot be read or holds no usable audio."""


# ---------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------

class CaptureRecorder:
    """
    Collects raw messages per session and writes them on save().

    With output_dir=None messages are still collected (useful in tests)
    but nothing touches the filesystem.
    """

    def __init__(self, output_dir: str | Path | None = None) -> None:
        self._output_dir = Path(output_dir) if output_dir is not None else None
        self._messages: Dict[str, List[Any]] = {}

    def record(self, session_id: str, text: str) -> None:
        try:
            message = json.loads(text)
        except json.JSONDecodeError:
            return
        self._messages.setdefault(session_id, []).append(message)

    def messages(self, session_id: str) -> List[Any]:
        return list(self._messages.get(session_id, ()))

    def path_for(self, session_id: str) -> Optional[Path]:
        if self._output_dir is None:
            return None
        safe_id = _UNSAFE_CHARS.sub("_", session_id) or "session"
        return self._output_dir / f"capture_{safe_id}.json"

    def save(self, session_id: str) -> Optional[Path]:
        """
        Write and forget the session's messages.

        Returns the written path, or None when nothing was written.
        """
        messages = self._messages.pop(session_id, None)
        path = self.path_for(session_id)
        if not messages or path is None:
            return None

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(messages, indent=2), encoding="utf-8")
        except OSError as e:
            log_event({
                "event_type": "CAPTURE_WRITE_FAILED",
                "session_id": session_id,
                "path": str(path),
                "error": str(e),
            })
            return None

        log_event({
            "event_type": "CAPTURE_SAVED",
            "session_id": session_id,
            "path": str(path),
            "messages": len(messages),
        })
        return path


def load_capture(path: str | Path) -> List[Any]:
    """
    Read a capture file.

    Raises:
        CaptureError if the file is not a JSON array.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise CaptureError(f"cannot read capture {path}: {e}") from e
    if not isinstance(data, list):
        raise CaptureError(f"capture {path} is not a JSON array")
    return data


# ---------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------

def _media_messages(messages: Iterable[Any], track: str | None) -> Iterable[MediaMessage]:
    for raw in messages:
        try:
            message = parse_event(raw)
        except TwilioProtocolError:
            continue
        if not isinstance(message, MediaMessage):
            continue
        if track is not None and message.track is not None and message.track != track:
            continue
        yield message


@dataclass(frozen=True)
class CaptureConversion:
    artifact: wav.WavArtifact
    frames: int
    malformed: int
    gap_count: int

    @property
    def duration_seconds(self) -> float:
        header = wav.parse_header(self.artifact.header)
        if header.byte_rate == 0:
            return 0.0
        return header.data_size / header.byte_rate


def capture_to_wav(
    messages: Iterable[Any],
    *,
    gain: float = 1.0,
    sample_rate_hz: int = TELEPHONY_SAMPLE_RATE_HZ,
    track: str | None = None,
) -> CaptureConversion:
    """
    Reassemble every media payload of a capture into one WAV artifact.

    Frames are ordered by sequence number; malformed payloads are skipped
    and counted. Output other than 8kHz is resampled after decoding.

    Raises:
        CaptureError if no media frame could be decoded.
    """
    buffer = FrameReassemblyBuffer()
    malformed = 0

    for message in _media_messages(messages, track):
        try:
            buffer.add_frame(media_to_frame(message))
        except MalformedFrame:
            malformed += 1

    if buffer.frame_count() == 0:
        raise CaptureError(f"no decodable media frames ({malformed} malformed)")

    segment = buffer.flush("capture", is_final=True)
    samples = decode_bytes(segment.mulaw_bytes)
    if sample_rate_hz != TELEPHONY_SAMPLE_RATE_HZ:
        samples = resample_pcm16(samples, TELEPHONY_SAMPLE_RATE_HZ, sample_rate_hz)

    artifact = wav.write(samples, sample_rate_hz, TELEPHONY_CHANNELS, gain=gain)
    return CaptureConversion(
        artifact=artifact,
        frames=segment.frame_count,
        malformed=malformed,
        gap_count=segment.gap_count,
    )


# ---------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------

@dataclass
class CaptureAnalysis:
    """Summary of a capture's contents."""

    total_messages: int = 0
    event_counts: Dict[str, int] = field(default_factory=dict)
    media_messages: int = 0
    malformed: int = 0
    total_bytes: int = 0
    silence_bytes: int = 0
    tracks: Dict[str, int] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        return mulaw_bytes_to_seconds(self.total_bytes)

    @property
    def silence_ratio(self) -> float:
        if self.total_bytes == 0:
            return 0.0
        return self.silence_bytes / self.total_bytes

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_messages": self.total_messages,
            "event_counts": dict(self.event_counts),
            "media_messages": self.media_messages,
            "malformed": self.malformed,
            "total_bytes": self.total_bytes,
            "duration_s": round(self.duration_seconds, 3),
            "silence_ratio": round(self.silence_ratio, 4),
            "tracks": dict(self.tracks),
        }


def analyze_capture(messages: Iterable[Any]) -> CaptureAnalysis:
    """Count events and decode every media payload without writing audio."""
    messages = list(messages)
    analysis = CaptureAnalysis()
    events: Counter[str] = Counter()
    tracks: Counter[str] = Counter()

    for raw in messages:
        analysis.total_messages += 1
        event = raw.get("event") if isinstance(raw, dict) else None
        events[event if isinstance(event, str) else "<invalid>"] += 1

    for message in _media_messages(messages, None):
        analysis.media_messages += 1
        tracks[message.track or "<none>"] += 1
        try:
            payload = media_to_frame(message).payload
        except MalformedFrame:
            analysis.malformed += 1
            continue
        analysis.total_bytes += len(payload)
        analysis.silence_bytes += payload.count(MULAW_SILENCE_BYTE)

    analysis.event_counts = dict(events)
    analysis.tracks = dict(tracks)
    return analysis
