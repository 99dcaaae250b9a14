# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import base64
import json
from typing import Any

import numpy as np
import pytest

from adapters.storage.base import WavSink
from audio import wav
from audio.frames import Segment
from audio.mulaw import decode
from audio.wav import WavArtifact
from observability import logger
from pipeline.dispatcher import SegmentDispatcher
from pipeline.processor import SegmentPipeline
from session.gateway import MediaStreamGateway
from session.lifecycle import SessionLifecycleManager


class MemorySink(WavSink):
    name = "memory"

    def __init__(self) -> None:
        self.items: list[tuple[WavArtifact, Segment]] = []

    async def consume(self, artifact: WavArtifact, segment: Segment) -> None:
        self.items.append((artifact, segment))


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def test_out_of_order_frames_become_one_wav(monkeypatch: pytest.MonkeyPatch):
    lines: list[str] = []
    monkeypatch.setattr(logger, "_print", lines.append)
    sink = MemorySink()

    async def scenario() -> None:
        dispatcher = SegmentDispatcher(SegmentPipeline(sinks=[sink]))
        dispatcher.start()
        gateway = MediaStreamGateway(
            sessions=SessionLifecycleManager(on_segment=dispatcher.submit),
        )

        gateway.on_session_start("call-1")
        gateway.on_frame("call-1", 1, 20, b64(b"\x00\x00"))
        gateway.on_frame("call-1", 0, 0, b64(b"\xff"))
        gateway.on_session_stop("call-1")

        await dispatcher.close(drain=True)

    asyncio.run(scenario())

    assert len(sink.items) == 1
    artifact, segment = sink.items[0]
    assert segment.mulaw_bytes == b"\xff\x00\x00"
    assert segment.is_final

    blob = bytes(artifact)
    assert len(blob) == 44 + 6
    header = wav.parse_header(blob)
    assert header.data_size == 6
    assert header.sample_rate_hz == 8000

    samples = np.frombuffer(blob[44:], dtype="<i2")
    assert abs(int(samples[0])) <= 8
    assert int(samples[1]) == int(samples[2]) == decode(0x00)

    assert lines, "pipeline should log through the JSONL sink"


def test_session_logs_carry_session_id(monkeypatch: pytest.MonkeyPatch):
    lines: list[str] = []
    monkeypatch.setattr(logger, "_print", lines.append)
    segments: list[Segment] = []

    async def scenario() -> None:
        manager = SessionLifecycleManager(on_segment=segments.append)
        gateway = MediaStreamGateway(sessions=manager)
        gateway.on_session_start("call-2")
        gateway.on_frame("call-2", 0, 0, b64(b"\xff" * 160))
        gateway.on_disconnect("call-2")

    asyncio.run(scenario())

    events: list[dict[str, Any]] = [json.loads(line) for line in lines]
    session_events = [e for e in events if e["event_type"].startswith("SESSION_")]

    assert [e["event_type"] for e in session_events] == ["SESSION_STARTED", "SESSION_ENDED"]
    assert all(e["session_id"] == "call-2" for e in session_events)
    assert all("ts_ms" in e for e in events)
    assert len(segments) == 1
