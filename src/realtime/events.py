"""Realtime session wire messages.

Inbound messages are decoded once into a ``SessionEvent`` whose kind is a
member of the closed ``SessionEventKind`` enum. Outbound messages are built by
the helpers at the bottom of this module.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SessionEventKind(str, Enum):
    # Diagnostic events: logged, nothing else.
    RESPONSE_CONTENT_DONE = "response.content.done"
    RATE_LIMITS_UPDATED = "rate_limits.updated"
    RESPONSE_DONE = "response.done"
    INPUT_AUDIO_BUFFER_COMMITTED = "input_audio_buffer.committed"
    INPUT_AUDIO_BUFFER_SPEECH_STARTED = "input_audio_buffer.speech_started"
    INPUT_AUDIO_BUFFER_SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    SESSION_CREATED = "session.created"

    SESSION_UPDATED = "session.updated"
    RESPONSE_AUDIO_DELTA = "response.audio.delta"
    FUNCTION_CALL = "function_call"
    FUNCTION_CALL_ARGUMENTS_DONE = "response.function_call_arguments.done"
    ERROR = "error"
    UNHANDLED = "unhandled"

    @classmethod
    def from_type(cls, event_type: str) -> SessionEventKind:
        try:
            return cls(event_type)
        except ValueError:
            return cls.UNHANDLED


DIAGNOSTIC_KINDS = frozenset(
    {
        SessionEventKind.RESPONSE_CONTENT_DONE,
        SessionEventKind.RATE_LIMITS_UPDATED,
        SessionEventKind.RESPONSE_DONE,
        SessionEventKind.INPUT_AUDIO_BUFFER_COMMITTED,
        SessionEventKind.INPUT_AUDIO_BUFFER_SPEECH_STARTED,
        SessionEventKind.INPUT_AUDIO_BUFFER_SPEECH_STOPPED,
        SessionEventKind.SESSION_CREATED,
    }
)


class ResponseStyle(str, Enum):
    """How a function call must be answered, following the envelope it arrived in."""

    LEGACY = "function_call.response"
    CONVERSATION_ITEM = "conversation.item.create"


@dataclass(frozen=True, slots=True)
class FunctionCallRequest:
    name: str
    arguments: Any
    correlation_id: Any
    style: ResponseStyle
    malformed: bool = False


@dataclass(frozen=True, slots=True)
class SessionEvent:
    kind: SessionEventKind
    type: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def audio_delta(self) -> str | None:
        delta = self.payload.get("delta")
        return delta if isinstance(delta, str) and delta else None

    def function_call(self) -> FunctionCallRequest:
        """Extract the call; a missing or ill-typed name or arguments marks it malformed."""

        if self.kind is SessionEventKind.FUNCTION_CALL:
            function = self.payload.get("function")
            if not isinstance(function, dict):
                function = {}
            name, arguments = function.get("name"), function.get("arguments")
            correlation_id = self.payload.get("id")
            style = ResponseStyle.LEGACY
        elif self.kind is SessionEventKind.FUNCTION_CALL_ARGUMENTS_DONE:
            name, arguments = self.payload.get("name"), self.payload.get("arguments")
            correlation_id = self.payload.get("call_id")
            style = ResponseStyle.CONVERSATION_ITEM
        else:
            raise ValueError(f"{self.type} is not a function call event")

        malformed = not isinstance(name, str) or not name
        malformed = malformed or not (arguments is None or isinstance(arguments, (dict, str)))
        return FunctionCallRequest(
            name=name if isinstance(name, str) else "",
            arguments=arguments,
            correlation_id=correlation_id,
            style=style,
            malformed=malformed,
        )


def decode_session_event(raw: str | bytes) -> SessionEvent:
    """Decode one inbound session message.

    Raises:
        ValueError: the message is not a JSON object (json.JSONDecodeError included).
    """

    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Session message is not a JSON object")
    event_type = str(data.get("type") or "")
    return SessionEvent(kind=SessionEventKind.from_type(event_type), type=event_type, payload=data)


class TurnDetection(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "server_vad"


class SessionConfiguration(BaseModel):
    """Session parameters sent once, as the body of ``session.update``."""

    model_config = ConfigDict(frozen=True)

    turn_detection: TurnDetection = Field(default_factory=TurnDetection)
    input_audio_format: str = "g711_ulaw"
    output_audio_format: str = "g711_ulaw"
    voice: str
    instructions: str
    modalities: tuple[str, ...] = ("text", "audio")
    temperature: float = 0.8
    tools: tuple[dict[str, Any], ...] = ()
    tool_choice: str = "auto"


def session_update(config: SessionConfiguration) -> dict[str, Any]:
    return {"type": "session.update", "session": config.model_dump(mode="json")}


def input_audio_append(payload_b64: str) -> dict[str, Any]:
    return {"type": "input_audio_buffer.append", "audio": payload_b64}


def function_call_response(request: FunctionCallRequest, content: str) -> list[dict[str, Any]]:
    """Messages answering ``request``; ``content`` is the JSON-encoded result."""

    if request.style is ResponseStyle.LEGACY:
        return [
            {
                "type": "function_call.response",
                "id": request.correlation_id,
                "response": {"content": content},
            }
        ]
    return [
        {
            "type": "conversation.item.create",
            "item": {
                "type": "function_call_output",
                "call_id": request.correlation_id,
                "output": content,
            },
        },
        {"type": "response.create"},
    ]
