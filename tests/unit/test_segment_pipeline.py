# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from pathlib import Path
from typing import Any

import pytest

import observability.metrics as metrics_mod
import pipeline.processor as processor_mod
from adapters.asr.base import DownstreamUnavailable, SpeechRecognizer, Transcript
from adapters.storage.base import WavSink
from adapters.storage.wav_file import WavFileSink
from audio import wav
from audio.frames import Segment
from audio.wav import WavArtifact
from pipeline.processor import SegmentPipeline


@pytest.fixture(name="emitted")
def fixture_emitted(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(processor_mod, "log_event", events.append)
    monkeypatch.setattr(metrics_mod, "log_event", events.append)
    return events


class FakeRecognizer(SpeechRecognizer):
    def __init__(self, text: str = "hello") -> None:
        self.calls: list[tuple[bytes, int, str]] = []
        self.text = text

    async def recognize(self, mulaw_bytes: bytes, *, sample_rate_hz: int = 8000, encoding: str = "MULAW") -> Transcript:
        self.calls.append((mulaw_bytes, sample_rate_hz, encoding))
        return Transcript(text=self.text, confidence=0.9)


class FailingRecognizer(SpeechRecognizer):
    async def recognize(self, mulaw_bytes: bytes, *, sample_rate_hz: int = 8000, encoding: str = "MULAW") -> Transcript:
        raise DownstreamUnavailable("asr down")


class MemorySink(WavSink):
    name = "memory"

    def __init__(self) -> None:
        self.artifacts: list[WavArtifact] = []

    async def consume(self, artifact: WavArtifact, segment: Segment) -> None:
        self.artifacts.append(artifact)


class BrokenSink(WavSink):
    name = "broken"

    async def consume(self, artifact: WavArtifact, segment: Segment) -> None:
        raise OSError("disk full")


def segment(payload: bytes, index: int = 0) -> Segment:
    return Segment(session_id="s1", mulaw_bytes=payload, frame_count=1, index=index)


def test_segment_reaches_recognizer_and_sinks(emitted: list[dict[str, Any]]):
    recognizer = FakeRecognizer()
    sink = MemorySink()
    pipeline = SegmentPipeline(recognizer=recognizer, sinks=[sink])

    result = asyncio.run(pipeline.process(segment(b"\xff\x00\x00")))

    assert recognizer.calls == [(b"\xff\x00\x00", 8000, "MULAW")]
    assert len(sink.artifacts) == 1
    assert len(sink.artifacts[0]) == 50
    assert result.samples == 3
    assert result.wav_bytes == 50
    assert result.transcript is not None and result.transcript.text == "hello"
    assert result.failures == ()

    kinds = [e["event_type"] for e in emitted]
    assert "TRANSCRIPTION_RESULT" in kinds
    assert "METRIC_TIMER" in kinds
    assert kinds[-1] == "SEGMENT_PROCESSED"


def test_empty_segment_is_a_noop(emitted: list[dict[str, Any]]):
    recognizer = FakeRecognizer()
    sink = MemorySink()

    result = asyncio.run(SegmentPipeline(recognizer=recognizer, sinks=[sink]).process(segment(b"")))

    assert result.skipped
    assert recognizer.calls == []
    assert sink.artifacts == []
    assert emitted[-1]["event_type"] == "SEGMENT_EMPTY_SKIPPED"


def test_recognizer_failure_does_not_block_sinks(emitted: list[dict[str, Any]]):
    sink = MemorySink()
    pipeline = SegmentPipeline(recognizer=FailingRecognizer(), sinks=[sink])

    result = asyncio.run(pipeline.process(segment(b"\x01\x02")))

    assert result.failures == ("recognizer",)
    assert result.transcript is None
    assert len(sink.artifacts) == 1
    failure = next(e for e in emitted if e["event_type"] == "DOWNSTREAM_UNAVAILABLE")
    assert failure["collaborator"] == "recognizer"
    assert failure["exception"] == "DownstreamUnavailable"


def test_sink_failure_is_isolated(emitted: list[dict[str, Any]]):  # pylint: disable=unused-argument
    good = MemorySink()
    pipeline = SegmentPipeline(sinks=[BrokenSink(), good])

    result = asyncio.run(pipeline.process(segment(b"\x01")))

    assert result.failures == ("broken",)
    assert len(good.artifacts) == 1


def test_transcript_callback_receives_result(emitted: list[dict[str, Any]]):  # pylint: disable=unused-argument
    received: list[tuple[Segment, Transcript]] = []

    async def on_transcript(seg: Segment, transcript: Transcript) -> None:
        received.append((seg, transcript))

    pipeline = SegmentPipeline(recognizer=FakeRecognizer("hi"), on_transcript=on_transcript)
    asyncio.run(pipeline.process(segment(b"\x01")))

    assert received[0][1].text == "hi"


def test_empty_transcript_is_logged_as_such(emitted: list[dict[str, Any]]):
    pipeline = SegmentPipeline(recognizer=FakeRecognizer("  "))
    asyncio.run(pipeline.process(segment(b"\x01")))

    assert "TRANSCRIPTION_EMPTY" in [e["event_type"] for e in emitted]


def test_gain_is_applied_to_sink_output(emitted: list[dict[str, Any]]):  # pylint: disable=unused-argument
    sink = MemorySink()
    # 0x80 decodes to +32124; doubling clips
    asyncio.run(SegmentPipeline(sinks=[sink], gain=2.0).process(segment(b"\x80")))

    assert sink.artifacts[0].data == (32767).to_bytes(2, "little", signed=True)


def test_wav_file_sink_writes_named_files(tmp_path: Path, emitted: list[dict[str, Any]]):  # pylint: disable=unused-argument
    sink = WavFileSink(tmp_path / "out")
    pipeline = SegmentPipeline(sinks=[sink])

    asyncio.run(pipeline.process(segment(b"\xff\xff", index=3)))

    path = tmp_path / "out" / "s1_0003.wav"
    assert sink.written == [path]
    header = wav.parse_header(path.read_bytes())
    assert header.data_size == 4
    assert header.sample_rate_hz == 8000
