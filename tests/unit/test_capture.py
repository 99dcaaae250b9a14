# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import json
from pathlib import Path
from typing import Any

import numpy as np
import pytest

import session.capture as capture_mod
from audio import wav
from audio.mulaw import decode
from session.capture import (
    CaptureError,
    CaptureRecorder,
    analyze_capture,
    capture_to_wav,
    load_capture,
)


@pytest.fixture(autouse=True)
def _quiet_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(capture_mod, "log_event", lambda event: None)


def media(seq: int, payload: bytes | str, track: str = "inbound") -> dict[str, Any]:
    encoded = payload if isinstance(payload, str) else base64.b64encode(payload).decode()
    return {
        "event": "media",
        "sequenceNumber": str(seq),
        "streamSid": "MZ1",
        "media": {"track": track, "timestamp": str(seq * 20), "payload": encoded},
    }


CAPTURE: list[Any] = [
    {"event": "connected", "protocol": "Call"},
    {"event": "start", "streamSid": "MZ1", "start": {"callSid": "CA1"}},
    media(2, b"\x00\x00"),
    media(1, b"\xff"),
    media(3, "%%%bad%%%"),
    media(4, b"\x80", track="outbound"),
    {"event": "stop", "streamSid": "MZ1"},
]


def test_capture_to_wav_orders_and_skips_malformed():
    conversion = capture_to_wav(CAPTURE, track="inbound")
    samples = np.frombuffer(conversion.artifact.data, dtype="<i2")

    assert conversion.frames == 2
    assert conversion.malformed == 1
    assert [int(s) for s in samples] == [decode(0xFF), decode(0x00), decode(0x00)]


def test_capture_to_wav_keeps_all_tracks_by_default():
    conversion = capture_to_wav(CAPTURE)

    assert conversion.frames == 3
    assert len(conversion.artifact) == 44 + 2 * 4


def test_capture_to_wav_resamples():
    conversion = capture_to_wav(CAPTURE, sample_rate_hz=16000, track="inbound")
    header = wav.parse_header(bytes(conversion.artifact))

    assert header.sample_rate_hz == 16000
    assert header.data_size == 2 * 6
    assert conversion.duration_seconds == pytest.approx(3 / 8000)


def test_conversion_duration_matches_written_audio():
    conversion = capture_to_wav([media(1, b"\xff" * 160), media(2, b"\xff" * 80)])

    assert conversion.duration_seconds == pytest.approx(0.03)


def test_capture_to_wav_skips_misshapen_media_messages():
    messages = [
        {"event": "media", "sequenceNumber": "1", "media": "not-an-object"},
        {"event": "media", "sequenceNumber": "2", "media": {"payload": 12345}},
        media(3, b"\x7f"),
    ]

    conversion = capture_to_wav(messages)

    assert conversion.frames == 1
    assert conversion.malformed == 1


def test_capture_without_audio_raises():
    with pytest.raises(CaptureError):
        capture_to_wav([{"event": "connected"}])


def test_analyze_capture_counts_everything():
    analysis = analyze_capture(CAPTURE)

    assert analysis.total_messages == 7
    assert analysis.event_counts["media"] == 4
    assert analysis.media_messages == 4
    assert analysis.malformed == 1
    assert analysis.total_bytes == 4
    assert analysis.silence_bytes == 1
    assert analysis.tracks == {"inbound": 3, "outbound": 1}
    assert analysis.as_dict()["silence_ratio"] == 0.25


def test_recorder_saves_and_loads(tmp_path: Path):
    recorder = CaptureRecorder(tmp_path)
    for message in CAPTURE:
        recorder.record("MZ1", json.dumps(message))

    path = recorder.save("MZ1")

    assert path == tmp_path / "capture_MZ1.json"
    assert load_capture(path) == CAPTURE
    assert recorder.messages("MZ1") == []
    assert recorder.save("MZ1") is None


def test_recorder_without_directory_writes_nothing(tmp_path: Path):
    recorder = CaptureRecorder()
    recorder.record("MZ1", json.dumps(CAPTURE[0]))

    assert recorder.save("MZ1") is None
    assert list(tmp_path.iterdir()) == []


def test_load_capture_rejects_non_arrays(tmp_path: Path):
    path = tmp_path / "bad.json"
    path.write_text('{"event": "media"}', encoding="utf-8")

    with pytest.raises(CaptureError):
        load_capture(path)
