"""
WAV consumer contract.

A sink receives one finished WavArtifact per flushed segment. Sinks may
persist, forward, or play the audio; they never see partial containers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from audio.frames import Segment
from audio.wav import WavArtifact


class WavSink(ABC):
    """Abstract consumer of completed WAV artifacts."""

    name: str = "wav_sink"

    @abstractmethod
    async def consume(self, artifact: WavArtifact, segment: Segment) -> None:
        """
        Accept one artifact.

        Raises:
            DownstreamUnavailable (or any exception) on failure; the caller
            logs it and moves on without retrying.
        """
        raise NotImplementedError
