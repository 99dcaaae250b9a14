"""
Session lifecycle manager.

Maps session_id -> CallSession and drives each session's terminal flush.

Concurrency:
- One coarse lock guards the session map (insert / remove / lookup only)
- Per-session work (add_frame, ticks, close) runs outside the lock; each
  session is single-writer on the event loop
- Sessions share no mutable state besides the map
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Optional

from audio.frames import AudioFrame, Segment
from audio.reassembly import FrameReassemblyBuffer
from constants import DEFAULT_FLUSH_POLICY, FlushPolicy
from observability.logger import log_event
from pipeline.scheduler import SegmentationScheduler
from session.call_session import CallSession


class SessionError(Exception):
    """Base class for session lifecycle errors."""


class DuplicateSession(SessionError):
    """Raised when start() is called for a session id that is already active."""


class SessionNotFound(SessionError):
    """
    Raised when a frame targets an unknown session.

    stop() / on_disconnect() never raise this; they are idempotent no-ops.
    """


class SessionLifecycleManager:
    """
    Owns every active CallSession in the process.

    Lifecycle:
        manager = SessionLifecycleManager(on_segment=dispatcher.submit)
        manager.start("CA123")
        manager.add_frame("CA123", frame)
        manager.stop("CA123")        # or on_disconnect("CA123")
        manager.shutdown()           # process exit: stops everything
    """

    def __init__(
        self,
        *,
        on_segment: Callable[[Segment], None],
        policy: FlushPolicy = DEFAULT_FLUSH_POLICY,
        use_timer: bool = True,
    ) -> None:
        self._on_segment = on_segment
        self._policy = policy
        self._use_timer = use_timer
        self._sessions: Dict[str, CallSession] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, session_id: str) -> CallSession:
        """
        Create a fresh buffer + scheduler pair for `session_id`.

        Raises:
            DuplicateSession if the id is already active.
        """
        buffer = FrameReassemblyBuffer()
        session = CallSession(
            session_id=session_id,
            buffer=buffer,
            scheduler=SegmentationScheduler(
                session_id=session_id,
                buffer=buffer,
                on_segment=self._on_segment,
                policy=self._policy,
                use_timer=self._use_timer,
            ),
        )

        with self._lock:
            if session_id in self._sessions:
                raise DuplicateSession(f"session already active: {session_id}")
            self._sessions[session_id] = session
            active = len(self._sessions)

        log_event({
            "event_type": "SESSION_STARTED",
            "session_id": session_id,
            "active_sessions": active,
        })
        return session

    def stop(self, session_id: str, *, reason: str = "stop") -> Optional[Segment]:
        """
        Terminal flush + removal. Unknown ids are a logged no-op.

        Returns the final segment if trailing audio was flushed.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
            active = len(self._sessions)

        if session is None:
            log_event({
                "event_type": "SESSION_NOT_FOUND",
                "session_id": session_id,
                "operation": reason,
            })
            return None

        context = session.log_context()
        segment = session.close()

        log_event({
            "event_type": "SESSION_ENDED",
            "reason": reason,
            "final_segment_frames": segment.frame_count if segment else 0,
            "segments_flushed": session.scheduler.flush_count,
            "frames_rejected": session.frames_rejected,
            "active_sessions": active,
            **context,
        })
        return segment

    def on_disconnect(self, session_id: str) -> Optional[Segment]:
        """Transport went away without a stop signal; same as stop()."""
        return self.stop(session_id, reason="disconnect")

    def shutdown(self) -> int:
        """Stop every active session. Returns how many were stopped."""
        with self._lock:
            session_ids = list(self._sessions)

        for session_id in session_ids:
            self.stop(session_id, reason="shutdown")
        return len(session_ids)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> CallSession:
        """
        Look up an active session.

        Raises:
            SessionNotFound
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"no active session: {session_id}")
        return session

    def add_frame(self, session_id: str, frame: AudioFrame) -> CallSession:
        """Route a frame to its session's buffer."""
        session = self.get(session_id)
        session.add_frame(frame)
        return session

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    @property
    def active_count(self) -> int:
        """Number of active sessions."""
        with self._lock:
            return len(self._sessions)
