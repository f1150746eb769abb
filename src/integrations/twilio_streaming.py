"""Twilio Media Streams message parsing and outbound frame construction.

Audio is carried as base64 G.711 mu-law in both directions and is never
transcoded here.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class TwilioEvent(str, Enum):
    CONNECTED = "connected"
    START = "start"
    MEDIA = "media"
    MARK = "mark"
    DTMF = "dtmf"
    STOP = "stop"
    OTHER = "other"

    @classmethod
    def from_raw(cls, value: Any) -> TwilioEvent:
        try:
            return cls(str(value))
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True, slots=True)
class TwilioMessage:
    event: TwilioEvent
    name: str
    payload: dict[str, Any]

    @property
    def stream_sid(self) -> str | None:
        start = self.payload.get("start")
        sid = start.get("streamSid") if isinstance(start, dict) else None
        sid = sid or self.payload.get("streamSid")
        return sid if isinstance(sid, str) and sid else None

    @property
    def media_payload(self) -> str | None:
        media = self.payload.get("media")
        if not isinstance(media, dict):
            return None
        payload = media.get("payload")
        return payload if isinstance(payload, str) and payload else None


def parse_twilio_ws_message(text: str | bytes) -> TwilioMessage:
    """Parse one inbound WebSocket message.

    Raises:
        ValueError: the text is not a JSON object (json.JSONDecodeError included).
    """

    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Twilio message is not a JSON object")
    name = str(data.get("event") or "")
    return TwilioMessage(event=TwilioEvent.from_raw(name), name=name, payload=data)


def reencode_payload(payload_b64: str) -> str:
    """Decode and re-encode a base64 audio payload, byte for byte.

    Raises:
        ValueError: the payload is not valid base64.
    """

    try:
        raw = base64.b64decode(payload_b64, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 audio payload: {exc}") from exc
    return base64.b64encode(raw).decode("ascii")


def build_media_frame(stream_sid: str, payload_b64: str) -> dict[str, Any]:
    if not stream_sid:
        raise ValueError("Outbound media frames require a stream identifier")
    return {
        "event": "media",
        "streamSid": stream_sid,
        "media": {"payload": payload_b64},
    }
