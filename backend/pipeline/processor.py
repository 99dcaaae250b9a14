"""
Segment processing pipeline.

Per flushed segment:
    mu-law bytes -> PcmBuffer (codec) -> WavArtifact (writer)
        -> speech recognizer (raw mu-law, 8kHz, "MULAW")
        -> every WAV sink

Rules:
- Empty segments are a no-op
- Each collaborator failure is logged as DOWNSTREAM_UNAVAILABLE and does
  not prevent the remaining collaborators from running
- Nothing is retried or requeued
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from adapters.asr.base import SpeechRecognizer, Transcript
from adapters.storage.base import WavSink
from audio import wav
from audio.frames import Segment
from audio.pcm import PcmBuffer
from constants import TELEPHONY_ENCODING, TELEPHONY_SAMPLE_RATE_HZ
from observability.logger import log_event
from observability.metrics import timed

TranscriptCallback = Callable[[Segment, Transcript], Awaitable[None]]


@dataclass(frozen=True)
class SegmentResult:
    """
    Outcome of processing one segment.

    failures:
        Names of collaborators that failed for this segment.
    """
    session_id: str
    segment_index: int
    samples: int
    wav_bytes: int
    transcript: Optional[Transcript] = None
    failures: tuple[str, ...] = ()

    @property
    def skipped(self) -> bool:
        return self.samples == 0


class SegmentPipeline:
    """Decode, containerize, and fan a segment out to collaborators."""

    def __init__(
        self,
        *,
        recognizer: Optional[SpeechRecognizer] = None,
        sinks: Sequence[WavSink] = (),
        gain: float = 1.0,
        on_transcript: Optional[TranscriptCallback] = None,
    ) -> None:
        self._recognizer = recognizer
        self._sinks = tuple(sinks)
        self._gain = gain
        self._on_transcript = on_transcript

    async def process(self, segment: Segment) -> SegmentResult:
        """Run one segment through codec, writer, and collaborators."""
        if segment.is_empty():
            log_event({
                "event_type": "SEGMENT_EMPTY_SKIPPED",
                "session_id": segment.session_id,
                "segment_index": segment.index,
            })
            return SegmentResult(
                session_id=segment.session_id,
                segment_index=segment.index,
                samples=0,
                wav_bytes=0,
            )

        pcm = PcmBuffer.from_segment(segment)
        artifact = wav.write_buffer(pcm, gain=self._gain)

        failures: list[str] = []
        transcript: Optional[Transcript] = None

        if self._recognizer is not None:
            transcript = await self._recognize(self._recognizer, segment, failures)

        for sink in self._sinks:
            try:
                await sink.consume(artifact, segment)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                failures.append(sink.name)
                self._log_downstream_failure(segment, sink.name, exc)

        log_event({
            "event_type": "SEGMENT_PROCESSED",
            "session_id": segment.session_id,
            "segment_index": segment.index,
            "samples": len(pcm),
            "duration_s": round(pcm.duration_seconds(), 3),
            "wav_bytes": len(artifact),
            "failures": failures,
            "final": segment.is_final,
        })

        return SegmentResult(
            session_id=segment.session_id,
            segment_index=segment.index,
            samples=len(pcm),
            wav_bytes=len(artifact),
            transcript=transcript,
            failures=tuple(failures),
        )

    async def _recognize(
        self,
        recognizer: SpeechRecognizer,
        segment: Segment,
        failures: list[str],
    ) -> Optional[Transcript]:
        try:
            with timed(
                "asr_recognize",
                session_id=segment.session_id,
                details={"segment_index": segment.index, "bytes": len(segment.mulaw_bytes)},
            ):
                transcript = await recognizer.recognize(
                    segment.mulaw_bytes,
                    sample_rate_hz=TELEPHONY_SAMPLE_RATE_HZ,
                    encoding=TELEPHONY_ENCODING,
                )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            failures.append("recognizer")
            self._log_downstream_failure(segment, "recognizer", exc)
            return None

        log_event({
            "event_type": "TRANSCRIPTION_RESULT" if not transcript.is_empty else "TRANSCRIPTION_EMPTY",
            "session_id": segment.session_id,
            "segment_index": segment.index,
            "text": transcript.text,
            "confidence": round(transcript.confidence, 3),
            "language": transcript.language,
        })

        if self._on_transcript is not None:
            try:
                await self._on_transcript(segment, transcript)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                failures.append("transcript_callback")
                self._log_downstream_failure(segment, "transcript_callback", exc)

        return transcript

    @staticmethod
    def _log_downstream_failure(segment: Segment, collaborator: str, exc: BaseException) -> None:
        log_event({
            "event_type": "DOWNSTREAM_UNAVAILABLE",
            "session_id": segment.session_id,
            "segment_index": segment.index,
            "collaborator": collaborator,
            "exception": type(exc).__name__,
            "message": str(exc),
        })
