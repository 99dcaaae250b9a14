# backend/protocol/twilio.py
"""
Twilio Media Streams message parsing.

Inbound messages are JSON text frames:

    {"event": "connected", "protocol": "Call", "version": "1.0.0"}
    {"event": "start", "sequenceNumber": "1", "streamSid": "MZ...",
     "start": {"callSid": "CA...", "tracks": ["inbound"],
               "mediaFormat": {"encoding": "audio/x-mulaw",
                               "sampleRate": 8000, "channels": 1}}}
    {"event": "media", "sequenceNumber": "3", "streamSid": "MZ...",
     "media": {"track": "inbound", "chunk": "2", "timestamp": "5",
               "payload": "<base64 mu-law>"}}
    {"event": "stop", "sequenceNumber": "5", "streamSid": "MZ...",
     "stop": {"callSid": "CA..."}}

Usage example:

    msg = parse_message(text)
    if isinstance(msg, MediaMessage):
        frame = media_to_frame(msg)   # raises MalformedFrame

Numeric fields arrive as strings and are coerced here.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from audio.frames import AudioFrame


# -------------------------
# Exceptions
# -------------------------

class TwilioProtocolError(Exception):
    """Base class for media-stream protocol errors."""


class InvalidMessage(TwilioProtocolError):
    """
    Raised when a text frame is not a JSON object with a string `event`,
    or when one of its nested sections is not an object.

    The message is unsafe to route and must be dropped.
    """


class MalformedFrame(TwilioProtocolError):
    """
    Raised for a media message whose payload cannot become an AudioFrame
    (bad base64, empty payload, missing/invalid sequence number).

    Frame-scoped: drop the frame, log, keep the session.
    """


# -------------------------
# Message types
# -------------------------

@dataclass(frozen=True)
class ConnectedMessage:
    protocol: str | None = None
    version: str | None = None


@dataclass(frozen=True)
class StartMessage:
    stream_sid: str
    call_sid: str | None = None
    tracks: tuple[str, ...] = ()
    encoding: str | None = None
    sample_rate_hz: int | None = None
    channels: int | None = None


@dataclass(frozen=True)
class MediaMessage:
    stream_sid: str | None
    sequence_number: int | None
    timestamp_ms: int
    payload_b64: str
    track: str | None = None
    chunk: int | None = None


@dataclass(frozen=True)
class StopMessage:
    stream_sid: str | None
    call_sid: str | None = None


@dataclass(frozen=True)
class OtherMessage:
    """Events this pipeline does not act on (mark, dtmf, ...)."""
    event: str
    stream_sid: str | None = None


TwilioMessage = Union[ConnectedMessage, StartMessage, MediaMessage, StopMessage, OtherMessage]


# -------------------------
# Low-level helpers
# -------------------------

def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    """Return a nested object field; absent or null reads as empty."""
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidMessage(f"'{key}' is not an object")
    return value


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def decode_payload(payload_b64: str) -> bytes:
    """
    Strict standard-base64 decode of a media payload.

    Raises:
        MalformedFrame on invalid base64 or an empty result.
    """
    if not isinstance(payload_b64, str) or not payload_b64:
        raise MalformedFrame("missing or empty media payload")
    try:
        payload = base64.b64decode(payload_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedFrame(f"invalid base64 payload: {e}") from e
    if not payload:
        raise MalformedFrame("media payload decoded to zero bytes")
    return payload


# -------------------------
# Parsing
# -------------------------

def parse_event(data: Any) -> TwilioMessage:
    """
    Convert an already-decoded JSON object into a typed message.

    Raises:
        InvalidMessage if the event or a nested section has the wrong shape.
    """
    if not isinstance(data, dict) or not isinstance(data.get("event"), str):
        raise InvalidMessage("message is not an object with a string 'event'")

    event = data["event"]
    stream_sid = _as_str(data.get("streamSid"))

    if event == "connected":
        return ConnectedMessage(
            protocol=_as_str(data.get("protocol")),
            version=_as_str(data.get("version")),
        )

    if event == "start":
        start = _section(data, "start")
        stream_sid = stream_sid or _as_str(start.get("streamSid"))
        if not stream_sid:
            raise InvalidMessage("start message without streamSid")
        media_format = _section(start, "mediaFormat")
        tracks = start.get("tracks")
        return StartMessage(
            stream_sid=stream_sid,
            call_sid=_as_str(start.get("callSid")),
            tracks=tuple(t for t in tracks if isinstance(t, str)) if isinstance(tracks, list) else (),
            encoding=_as_str(media_format.get("encoding")),
            sample_rate_hz=_as_int(media_format.get("sampleRate")),
            channels=_as_int(media_format.get("channels")),
        )

    if event == "media":
        media = _section(data, "media")
        return MediaMessage(
            stream_sid=stream_sid,
            sequence_number=_as_int(data.get("sequenceNumber")),
            timestamp_ms=_as_int(media.get("timestamp")) or 0,
            # non-string payloads fail later in decode_payload, per frame
            payload_b64=_as_str(media.get("payload")) or "",
            track=_as_str(media.get("track")),
            chunk=_as_int(media.get("chunk")),
        )

    if event == "stop":
        stop = _section(data, "stop")
        return StopMessage(stream_sid=stream_sid, call_sid=_as_str(stop.get("callSid")))

    return OtherMessage(event=event, stream_sid=stream_sid)


def parse_message(text: str) -> TwilioMessage:
    """Parse one JSON text frame."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidMessage(f"invalid JSON: {e}") from e
    return parse_event(data)


def media_to_frame(message: MediaMessage) -> AudioFrame:
    """
    Build an AudioFrame from a media message.

    Raises:
        MalformedFrame
    """
    if message.sequence_number is None:
        raise MalformedFrame("media message without a numeric sequenceNumber")
    return AudioFrame(
        sequence_number=message.sequence_number,
        timestamp_ms=message.timestamp_ms,
        payload=decode_payload(message.payload_b64),
        track_id=message.track,
    )


# -------------------------
# Sequence continuity (observability only)
# -------------------------

@dataclass(frozen=True)
class SeqCheckResult:
    """
    Result of a sequence continuity check.

    Gaps and reordering are reported, never waited for.
    """
    gap: bool
    out_of_order: bool
    expected: int
    actual: int

    @property
    def gap_size(self) -> int:
        """Number of sequence numbers skipped (0 if no forward gap)."""
        if not self.gap:
            return 0
        return self.actual - self.expected


def check_sequence_gap(
    *,
    last_seq: Optional[int],
    current_seq: int,
) -> SeqCheckResult:
    """
    Compare `current_seq` against the previous arrival.

    Pure function; never raises.
    """
    if last_seq is None:
        return SeqCheckResult(gap=False, out_of_order=False, expected=current_seq, actual=current_seq)

    expected = last_seq + 1
    return SeqCheckResult(
        gap=current_seq > expected,
        out_of_order=current_seq <= last_seq,
        expected=expected,
        actual=current_seq,
    )
