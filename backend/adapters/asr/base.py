"""
Speech recognition contract.

This module defines the *interface only*. Implementations receive one
flushed segment of telephony audio and return a best-effort transcript.

Key invariants:
- One recognize() call per flushed segment; no streaming, no run IDs
- No retries here or in callers: a failed segment is logged and dropped
- Failures surface as DownstreamUnavailable, never as provider exceptions
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from constants import TELEPHONY_ENCODING, TELEPHONY_SAMPLE_RATE_HZ


class DownstreamUnavailable(RuntimeError):
    """
    A downstream collaborator (recognizer, storage) failed for one segment.

    The segment is not retried or requeued; ingestion continues.
    """


@dataclass(frozen=True)
class Transcript:
    """
    Recognition result for one segment.

    confidence:
        Provider confidence normalized to [0, 1].
    """
    text: str
    confidence: float
    language: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class SpeechRecognizer(ABC):
    """
    Abstract batch speech recognizer.

    Non-responsibilities:
    - No buffering or segmentation (the scheduler owns that)
    - No language auto-detection heuristics
    - No dialogue state
    """

    @abstractmethod
    async def recognize(
        self,
        mulaw_bytes: bytes,
        *,
        sample_rate_hz: int = TELEPHONY_SAMPLE_RATE_HZ,
        encoding: str = TELEPHONY_ENCODING,
    ) -> Transcript:
        """
        Transcribe one segment of audio.

        Raises:
            DownstreamUnavailable on any provider failure.
        """
        raise NotImplementedError
