# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import json

import pytest

from protocol.twilio import (
    ConnectedMessage,
    InvalidMessage,
    MalformedFrame,
    MediaMessage,
    OtherMessage,
    StartMessage,
    StopMessage,
    check_sequence_gap,
    decode_payload,
    media_to_frame,
    parse_message,
)


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


# ---------------------------------------------------------------------
# Payload decoding
# ---------------------------------------------------------------------

def test_decode_payload_roundtrips_bytes():
    assert decode_payload(b64(b"\x00\xff\x7f")) == b"\x00\xff\x7f"


@pytest.mark.parametrize("bad", ["", "not base64!!", "abc", "@@@@"])
def test_decode_payload_rejects_invalid_input(bad: str):
    with pytest.raises(MalformedFrame):
        decode_payload(bad)


# ---------------------------------------------------------------------
# Message parsing
# ---------------------------------------------------------------------

def test_parse_connected():
    msg = parse_message(json.dumps({"event": "connected", "protocol": "Call", "version": "1.0.0"}))
    assert msg == ConnectedMessage(protocol="Call", version="1.0.0")


def test_parse_start_reads_media_format():
    msg = parse_message(json.dumps({
        "event": "start",
        "sequenceNumber": "1",
        "streamSid": "MZ1",
        "start": {
            "callSid": "CA1",
            "tracks": ["inbound"],
            "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
        },
    }))

    assert isinstance(msg, StartMessage)
    assert msg.stream_sid == "MZ1"
    assert msg.call_sid == "CA1"
    assert msg.tracks == ("inbound",)
    assert msg.encoding == "audio/x-mulaw"
    assert msg.sample_rate_hz == 8000
    assert msg.channels == 1


def test_parse_start_without_stream_sid_is_invalid():
    with pytest.raises(InvalidMessage):
        parse_message(json.dumps({"event": "start", "start": {}}))


def test_parse_media_coerces_string_numbers():
    msg = parse_message(json.dumps({
        "event": "media",
        "sequenceNumber": "7",
        "streamSid": "MZ1",
        "media": {"track": "inbound", "chunk": "6", "timestamp": "120", "payload": b64(b"\xff")},
    }))

    assert isinstance(msg, MediaMessage)
    assert msg.sequence_number == 7
    assert msg.timestamp_ms == 120
    assert msg.chunk == 6

    frame = media_to_frame(msg)
    assert frame.sequence_number == 7
    assert frame.payload == b"\xff"
    assert frame.track_id == "inbound"


def test_media_without_sequence_number_is_malformed():
    msg = parse_message(json.dumps({"event": "media", "media": {"payload": b64(b"\xff")}}))

    with pytest.raises(MalformedFrame):
        media_to_frame(msg)


def test_parse_stop_and_other_events():
    stop = parse_message(json.dumps({"event": "stop", "streamSid": "MZ1", "stop": {"callSid": "CA1"}}))
    mark = parse_message(json.dumps({"event": "mark", "streamSid": "MZ1"}))

    assert stop == StopMessage(stream_sid="MZ1", call_sid="CA1")
    assert mark == OtherMessage(event="mark", stream_sid="MZ1")


@pytest.mark.parametrize("text", ["{not json", "[]", '{"event": 3}', '"media"'])
def test_parse_message_rejects_non_event_payloads(text: str):
    with pytest.raises(InvalidMessage):
        parse_message(text)


@pytest.mark.parametrize(
    "message",
    [
        {"event": "media", "sequenceNumber": "1", "media": "abc"},
        {"event": "start", "streamSid": "MZ1", "start": ["CA1"]},
        {"event": "start", "streamSid": "MZ1", "start": {"mediaFormat": 8000}},
        {"event": "stop", "streamSid": "MZ1", "stop": 1},
    ],
)
def test_non_object_sections_are_invalid(message: dict):
    with pytest.raises(InvalidMessage):
        parse_message(json.dumps(message))


def test_non_string_payload_becomes_malformed_frame():
    msg = parse_message(json.dumps({"event": "media", "sequenceNumber": "1", "media": {"payload": 12345}}))

    assert isinstance(msg, MediaMessage)
    with pytest.raises(MalformedFrame):
        media_to_frame(msg)


def test_non_string_fields_are_ignored():
    msg = parse_message(json.dumps({
        "event": "start",
        "streamSid": "MZ1",
        "start": {"callSid": 5, "tracks": "inbound", "mediaFormat": {"encoding": 1}},
    }))

    assert msg == StartMessage(stream_sid="MZ1")


# ---------------------------------------------------------------------
# Sequence continuity
# ---------------------------------------------------------------------

def test_first_frame_has_no_gap():
    result = check_sequence_gap(last_seq=None, current_seq=5)
    assert not result.gap
    assert not result.out_of_order


def test_forward_gap_is_reported():
    result = check_sequence_gap(last_seq=3, current_seq=7)
    assert result.gap
    assert result.expected == 4
    assert result.gap_size == 3


def test_reordering_is_reported():
    result = check_sequence_gap(last_seq=3, current_seq=2)
    assert result.out_of_order
    assert not result.gap
    assert result.gap_size == 0


def test_next_in_order_is_clean():
    result = check_sequence_gap(last_seq=3, current_seq=4)
    assert not result.gap
    assert not result.out_of_order
