# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger, metrics


@pytest.fixture(name="captured")
def fixture_captured(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []

    def fake_print(line: str) -> None:
        lines.append(line)

    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", fake_print)
    return lines


def test_log_event_emits_valid_jsonl(captured: list[str]) -> None:
    """
    Contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is, plus a ts_ms stamp
    - output sink is patchable
    """
    payload: dict[str, Any] = {
        "event_type": "TEST",
        "session_id": "s1",
        "value": 123,
    }

    logger.log_event(payload)

    assert len(captured) == 1
    assert "\n" not in captured[0]

    decoded = json.loads(captured[0])
    ts_ms = decoded.pop("ts_ms")
    assert isinstance(ts_ms, int)
    assert decoded == payload


def test_log_event_keeps_caller_timestamp(captured: list[str]) -> None:
    logger.log_event({"event_type": "TEST", "ts_ms": 42})

    assert json.loads(captured[0])["ts_ms"] == 42


def test_log_event_does_not_mutate_input(captured: list[str]) -> None:
    payload = {"event_type": "TEST"}

    logger.log_event(payload)

    assert payload == {"event_type": "TEST"}
    assert len(captured) == 1


def test_log_event_renders_unserializable_values(captured: list[str]) -> None:
    logger.log_event({"event_type": "TEST", "raw": b"\x00\x01"})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "TEST"
    assert decoded["raw"] == repr(b"\x00\x01")


def test_timed_emits_metric_even_on_error(captured: list[str]) -> None:
    with pytest.raises(RuntimeError):
        with metrics.timed("asr_recognize", session_id="s1", details={"bytes": 3}):
            raise RuntimeError("boom")

    decoded = json.loads(captured[-1])
    assert decoded["event_type"] == "METRIC_TIMER"
    assert decoded["metric"] == "asr_recognize"
    assert decoded["session_id"] == "s1"
    assert decoded["ok"] is False
    assert decoded["details"] == {"bytes": 3}
    assert decoded["value_ms"] >= 0


def test_timed_yields_running_stopwatch(captured: list[str]) -> None:
    with metrics.timed("noop") as watch:
        assert watch.elapsed_ms >= 0

    assert json.loads(captured[-1])["ok"] is True
