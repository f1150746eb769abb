"""Control channel to the Azure OpenAI realtime session.

Every message exchanged with the session passes through ``SessionTranslator``:
the one-time ``session.update`` handshake, audio appends from the caller,
classification of inbound events, audio deltas converted into Twilio media
frames, and function calls answered through the ``ToolRouter``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from websockets.protocol import State

from config.settings import Settings
from integrations.twilio_streaming import build_media_frame, reencode_payload
from realtime.events import (
    DIAGNOSTIC_KINDS,
    FunctionCallRequest,
    SessionConfiguration,
    SessionEvent,
    SessionEventKind,
    decode_session_event,
    function_call_response,
    input_audio_append,
    session_update,
)
from relay.call_session import CallSession
from relay.errors import RelayError, SessionConfigurationError, ToolArgumentsError
from tools.router import ToolRouter

LOGGER = logging.getLogger(__name__)


class SessionConnection(Protocol):
    state: State

    async def send(self, message: str) -> None:  # pragma: no cover - protocol stub
        ...

    async def close(self) -> None:  # pragma: no cover - protocol stub
        ...

    def __aiter__(self) -> Any:  # pragma: no cover - protocol stub
        ...


Connector = Callable[[str, dict[str, str]], Awaitable[SessionConnection]]
FrameSink = Callable[[dict[str, Any]], Awaitable[None]]
EventHandler = Callable[[SessionEvent], Awaitable[None]]


async def open_realtime_connection(url: str, headers: dict[str, str]) -> SessionConnection:
    return await connect(url, additional_headers=headers)


def build_session_configuration(
    settings: Settings, *, instructions: str, tools: list[dict[str, Any]]
) -> SessionConfiguration:
    return SessionConfiguration(
        voice=settings.voice,
        instructions=instructions,
        temperature=settings.temperature,
        tools=tuple(tools),
    )


class SessionTranslator:
    """Owns the realtime session socket for one call."""

    def __init__(
        self,
        settings: Settings,
        router: ToolRouter,
        call: CallSession,
        *,
        instructions: str,
        emit_frame: FrameSink,
        connector: Connector | None = None,
    ) -> None:
        self._url = settings.realtime_url
        self._headers = {
            "api-key": settings.azure_openai_api_key,
            "Content-Type": "application/json",
        }
        self._handshake_delay = settings.handshake_delay_seconds
        self._configuration = build_session_configuration(
            settings, instructions=instructions, tools=router.declarations()
        )
        self._router = router
        self._call = call
        self._emit_frame = emit_frame
        self._connector = connector or open_realtime_connection
        self._ws: SessionConnection | None = None
        self._configured = False
        self._pending: set[asyncio.Task[None]] = set()

        self._handlers: dict[SessionEventKind, EventHandler] = {kind: self._log_diagnostic for kind in DIAGNOSTIC_KINDS}
        self._handlers.update(
            {
                SessionEventKind.SESSION_UPDATED: self._on_session_updated,
                SessionEventKind.RESPONSE_AUDIO_DELTA: self._on_audio_delta,
                SessionEventKind.FUNCTION_CALL: self._on_function_call,
                SessionEventKind.FUNCTION_CALL_ARGUMENTS_DONE: self._on_function_call,
                SessionEventKind.ERROR: self._on_error,
                SessionEventKind.UNHANDLED: self._on_unhandled,
            }
        )

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    @property
    def pending_calls(self) -> int:
        return len(self._pending)

    async def connect(self) -> None:
        self._ws = await self._connector(self._url, self._headers)
        LOGGER.info("Connected to the realtime API (call=%s)", self._call.call_id)

    async def handshake(self) -> None:
        """Send the session configuration once the socket is open.

        The delay before sending is a stabilization workaround for the
        upstream endpoint. A transport failure of the send propagates.
        """

        if self._configured:
            raise SessionConfigurationError()
        if not self.is_open:
            raise SessionConfigurationError("Session socket is not open.")
        self._configured = True
        await asyncio.sleep(self._handshake_delay)

        message = session_update(self._configuration)
        LOGGER.info("Sending session update: %s", json.dumps(message))
        await self._send(message)

    async def send_audio_append(self, payload_b64: str) -> bool:
        """Forward caller audio; dropped unless the socket is open."""

        if not self.is_open:
            return False
        try:
            await self._send(input_audio_append(payload_b64))
        except ConnectionClosed:
            LOGGER.debug("Realtime socket closed while appending audio; frame dropped")
            return False
        return True

    async def receive_events(self) -> None:
        """Process inbound session messages until the socket closes."""

        if self._ws is None:
            return
        try:
            async for raw in self._ws:
                await self.handle_message(raw)
        except ConnectionClosedError as exc:
            LOGGER.error("Error in the realtime WebSocket: %s", exc)

    async def handle_message(self, raw: str | bytes) -> None:
        try:
            event = decode_session_event(raw)
        except ValueError as exc:
            LOGGER.error("Error processing realtime message: %s Raw message: %r", exc, raw)
            return
        try:
            await self._handlers[event.kind](event)
        except Exception:
            LOGGER.exception("Error handling realtime event %s. Raw message: %r", event.type or "<untyped>", raw)

    async def close(self) -> None:
        if self.is_open:
            await self._ws.close()

    async def _send(self, message: dict[str, Any]) -> None:
        await self._ws.send(json.dumps(message))

    async def _log_diagnostic(self, event: SessionEvent) -> None:
        LOGGER.info("Received event: %s %s", event.type, event.payload)

    async def _on_session_updated(self, event: SessionEvent) -> None:
        LOGGER.info("Session updated successfully: %s", event.payload)

    async def _on_error(self, event: SessionEvent) -> None:
        LOGGER.error("Realtime session reported an error: %s", event.payload.get("error") or event.payload)

    async def _on_unhandled(self, event: SessionEvent) -> None:
        LOGGER.debug("Ignoring realtime event: %s", event.type or "<untyped>")

    async def _on_audio_delta(self, event: SessionEvent) -> None:
        delta = event.audio_delta
        if delta is None:
            return
        stream_sid = self._call.stream_sid
        if not stream_sid:
            LOGGER.debug("Dropping audio delta received before the stream started")
            return
        try:
            payload = reencode_payload(delta)
        except ValueError as exc:
            LOGGER.error("Discarding audio delta: %s Raw message: %r", exc, event.payload)
            return
        await self._emit_frame(build_media_frame(stream_sid, payload))

    async def _on_function_call(self, event: SessionEvent) -> None:
        request = event.function_call()
        if request.malformed and request.correlation_id is None:
            LOGGER.error("Dropping malformed function call without an id: %s", event.payload)
            return
        LOGGER.info("Function call %s (id=%s)", request.name, request.correlation_id)
        task = asyncio.create_task(self._service_function_call(request))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _service_function_call(self, request: FunctionCallRequest) -> None:
        try:
            if request.malformed:
                raise ToolArgumentsError("Malformed function call.")
            result = await self._router.dispatch(request.name, request.arguments)
            content = json.dumps(result)
        except RelayError as exc:
            LOGGER.error("Function call %s (id=%s) failed: %s", request.name, request.correlation_id, exc)
            content = json.dumps({"error": exc.detail})
        except Exception:
            LOGGER.exception("Function call %s (id=%s) raised", request.name, request.correlation_id)
            content = json.dumps({"error": "Tool invocation failed."})

        for message in function_call_response(request, content):
            if not self.is_open:
                LOGGER.info("Realtime socket closed; discarding result for call id=%s", request.correlation_id)
                return
            try:
                await self._send(message)
            except ConnectionClosed:
                LOGGER.info("Realtime socket closed; discarding result for call id=%s", request.correlation_id)
                return
