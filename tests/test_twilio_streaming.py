from __future__ import annotations

import base64

import pytest

from integrations.twilio_streaming import TwilioEvent, build_media_frame, parse_twilio_ws_message, reencode_payload


def test_parse_start_and_media_events():
    start = parse_twilio_ws_message('{"event": "start", "start": {"streamSid": "ABC123"}}')
    media = parse_twilio_ws_message('{"event": "media", "media": {"payload": "Zm9v"}}')

    assert start.event is TwilioEvent.START
    assert start.stream_sid == "ABC123"
    assert media.event is TwilioEvent.MEDIA
    assert media.media_payload == "Zm9v"


def test_unknown_event_is_other():
    message = parse_twilio_ws_message('{"event": "transcription"}')
    assert message.event is TwilioEvent.OTHER
    assert message.name == "transcription"


def test_parse_rejects_non_objects():
    with pytest.raises(ValueError):
        parse_twilio_ws_message("garbage")
    with pytest.raises(ValueError):
        parse_twilio_ws_message("[]")


def test_reencode_is_byte_exact():
    raw = bytes(range(256)) * 3
    payload = base64.b64encode(raw).decode("ascii")

    assert reencode_payload(payload) == payload
    assert base64.b64decode(reencode_payload(payload)) == raw


def test_reencode_rejects_invalid_base64():
    with pytest.raises(ValueError):
        reencode_payload("***")


def test_media_frame_requires_stream_sid():
    assert build_media_frame("ABC123", "Zm9v") == {
        "event": "media",
        "streamSid": "ABC123",
        "media": {"payload": "Zm9v"},
    }
    with pytest.raises(ValueError):
        build_media_frame("", "Zm9v")


def test_wrongly_shaped_start_and_media_yield_nothing():
    start = parse_twilio_ws_message('{"event": "start", "start": "oops"}')
    media = parse_twilio_ws_message('{"event": "media", "media": "x"}')
    numeric_sid = parse_twilio_ws_message('{"event": "start", "start": {"streamSid": 7}}')

    assert start.stream_sid is None
    assert media.media_payload is None
    assert numeric_sid.stream_sid is None
