"""
Media-stream gateway.

Responsibilities:
- Transport -> core boundary: on_session_start / on_frame /
  on_session_stop / on_disconnect
- Base64 decoding of frame payloads (failures are per-frame)
- Sequence gap / reordering detection (logged only)
- Routing of Twilio Media Streams text frames onto the boundary methods
- Optional raw-message capture per stream

NOT responsible for:
- Ordering or segmentation (reassembly buffer + scheduler)
- Decoding audio or talking to recognizers (segment pipeline)
- Socket IO (server.routes)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from audio.frames import AudioFrame
from constants import (
    FRAME_PROGRESS_LOG_EVERY,
    LOG_PAYLOAD_PREVIEW_CHARS,
    MEDIA_STREAM_ENCODING,
    TELEPHONY_SAMPLE_RATE_HZ,
)
from observability.logger import log_event
from protocol.twilio import (
    ConnectedMessage,
    MalformedFrame,
    MediaMessage,
    OtherMessage,
    StartMessage,
    StopMessage,
    TwilioProtocolError,
    check_sequence_gap,
    decode_payload,
    parse_message,
)
from session.capture import CaptureRecorder
from session.lifecycle import DuplicateSession, SessionLifecycleManager, SessionNotFound


# ------------------------------------------------------------------
# Boundary results
# ------------------------------------------------------------------

@dataclass(frozen=True)
class FrameAck:
    """
    Per-frame outcome reported back to the transport.

    reason is None when accepted.
    """
    accepted: bool
    reason: str | None = None


@dataclass
class StreamBinding:
    """
    Per-connection state for one media-stream websocket.

    stream_sid is learned from the `start` message; it doubles as the
    session id.
    """
    stream_sid: str | None = None
    stopped: bool = False


# ------------------------------------------------------------------
# MediaStreamGateway
# ------------------------------------------------------------------

class MediaStreamGateway:
    """
    One gateway per process; sessions are keyed by id in the manager.
    """

    def __init__(
        self,
        *,
        sessions: SessionLifecycleManager,
        capture: CaptureRecorder | None = None,
    ) -> None:
        self._sessions = sessions
        self._capture = capture

    @property
    def sessions(self) -> SessionLifecycleManager:
        return self._sessions

    # ------------------------------------------------------------------
    # Transport -> core boundary
    # ------------------------------------------------------------------

    def on_session_start(self, session_id: str) -> bool:
        """Open a session. A duplicate start is logged and refused."""
        try:
            self._sessions.start(session_id)
        except DuplicateSession as e:
            log_event({
                "event_type": "DUPLICATE_SESSION",
                "session_id": session_id,
                "error": str(e),
            })
            return False
        return True

    def on_frame(
        self,
        session_id: str,
        sequence_number: int,
        timestamp_ms: int,
        base64_payload: str,
        track_id: str | None = None,
    ) -> FrameAck:
        """
        Decode and route one frame.

        Malformed payloads and unknown sessions reject only this frame.
        """
        try:
            session = self._sessions.get(session_id)
        except SessionNotFound:
            log_event({
                "event_type": "FRAME_WITHOUT_SESSION",
                "session_id": session_id,
                "seq": sequence_number,
            })
            return FrameAck(accepted=False, reason="session_not_found")

        try:
            payload = decode_payload(base64_payload)
        except MalformedFrame as e:
            session.frames_rejected += 1
            log_event({
                "event_type": "FRAME_MALFORMED",
                "session_id": session_id,
                "seq": sequence_number,
                "error": str(e),
                "payload_preview": str(base64_payload or "")[:LOG_PAYLOAD_PREVIEW_CHARS],
            })
            return FrameAck(accepted=False, reason="malformed_frame")

        gap_result = check_sequence_gap(
            last_seq=session.last_sequence_number,
            current_seq=sequence_number,
        )
        if gap_result.gap:
            log_event({
                "event_type": "SEQ_GAP_DETECTED",
                "session_id": session_id,
                "expected": gap_result.expected,
                "actual": gap_result.actual,
                "gap_size": gap_result.gap_size,
            })
        elif gap_result.out_of_order:
            log_event({
                "event_type": "SEQ_OUT_OF_ORDER",
                "session_id": session_id,
                "expected": gap_result.expected,
                "actual": gap_result.actual,
            })

        if session.last_sequence_number is None or sequence_number > session.last_sequence_number:
            session.last_sequence_number = sequence_number

        session.add_frame(
            AudioFrame(
                sequence_number=sequence_number,
                timestamp_ms=timestamp_ms,
                payload=payload,
                track_id=track_id,
            )
        )

        frames_added = session.buffer.counters.frames_added
        if frames_added % FRAME_PROGRESS_LOG_EVERY == 0:
            log_event({
                "event_type": "FRAMES_RECEIVED",
                **session.log_context(),
            })

        return FrameAck(accepted=True)

    def on_session_stop(self, session_id: str) -> None:
        """Explicit stop signal: terminal flush, then removal."""
        self._sessions.stop(session_id)
        self._save_capture(session_id)

    def on_disconnect(self, session_id: str) -> None:
        """Transport dropped; behaves exactly like a stop."""
        self._sessions.on_disconnect(session_id)
        self._save_capture(session_id)

    # ------------------------------------------------------------------
    # Twilio Media Streams routing
    # ------------------------------------------------------------------

    def on_media_stream_message(self, binding: StreamBinding, text: str) -> Optional[FrameAck]:
        """
        Route one Twilio text frame.

        Returns the FrameAck for media messages, None otherwise.
        """
        try:
            message = parse_message(text)
        except TwilioProtocolError as e:
            log_event({
                "event_type": "MEDIA_STREAM_INVALID_MESSAGE",
                "session_id": binding.stream_sid,
                "error": str(e),
                "payload_preview": text[:LOG_PAYLOAD_PREVIEW_CHARS],
            })
            return None

        if (
            self._capture is not None
            and binding.stream_sid is not None
            and not isinstance(message, StartMessage)
        ):
            self._capture.record(binding.stream_sid, text)

        if isinstance(message, MediaMessage):
            session_id = message.stream_sid or binding.stream_sid
            if session_id is None or binding.stopped:
                log_event({
                    "event_type": "MEDIA_BEFORE_START",
                    "session_id": session_id,
                })
                return FrameAck(accepted=False, reason="session_not_found")
            if message.sequence_number is None:
                log_event({
                    "event_type": "FRAME_MALFORMED",
                    "session_id": session_id,
                    "error": "missing sequenceNumber",
                })
                return FrameAck(accepted=False, reason="malformed_frame")
            return self.on_frame(
                session_id,
                message.sequence_number,
                message.timestamp_ms,
                message.payload_b64,
                track_id=message.track,
            )

        if isinstance(message, StartMessage):
            previous = binding.stream_sid
            if previous is not None and previous != message.stream_sid and not binding.stopped:
                # one live stream per socket
                log_event({
                    "event_type": "MEDIA_STREAM_REBOUND",
                    "session_id": previous,
                    "new_session_id": message.stream_sid,
                })
                self.on_disconnect(previous)
            binding.stream_sid = message.stream_sid
            binding.stopped = False
            self._check_media_format(message)
            if self._capture is not None:
                self._capture.record(message.stream_sid, text)
            self.on_session_start(message.stream_sid)
            return None

        if isinstance(message, StopMessage):
            session_id = message.stream_sid or binding.stream_sid
            binding.stopped = True
            if session_id is not None:
                self.on_session_stop(session_id)
            return None

        if isinstance(message, ConnectedMessage):
            log_event({
                "event_type": "MEDIA_STREAM_CONNECTED",
                "protocol": message.protocol,
                "version": message.version,
            })
            return None

        if isinstance(message, OtherMessage):
            log_event({
                "event_type": "MEDIA_STREAM_EVENT_IGNORED",
                "session_id": message.stream_sid or binding.stream_sid,
                "event": message.event,
            })
        return None

    def on_media_stream_closed(self, binding: StreamBinding, reason: str | None = None) -> None:
        """Websocket closed; tear down the session unless stop already did."""
        log_event({
            "event_type": "MEDIA_STREAM_CLOSED",
            "session_id": binding.stream_sid,
            "reason": reason,
        })
        if binding.stream_sid is not None and not binding.stopped:
            binding.stopped = True
            self.on_disconnect(binding.stream_sid)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_media_format(self, message: StartMessage) -> None:
        details: dict[str, Any] = {
            "encoding": message.encoding,
            "sample_rate_hz": message.sample_rate_hz,
            "channels": message.channels,
        }
        mismatch = (
            (message.encoding is not None and message.encoding != MEDIA_STREAM_ENCODING)
            or (message.sample_rate_hz is not None and message.sample_rate_hz != TELEPHONY_SAMPLE_RATE_HZ)
        )
        log_event({
            "event_type": "MEDIA_FORMAT_UNEXPECTED" if mismatch else "MEDIA_STREAM_STARTED",
            "session_id": message.stream_sid,
            "call_sid": message.call_sid,
            "tracks": list(message.tracks),
            **details,
        })

    def _save_capture(self, session_id: str) -> None:
        if self._capture is None:
            return
        self._capture.save(session_id)
