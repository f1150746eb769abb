"""Per-call relay between a Twilio media stream and a realtime session."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from typing import Any, Protocol

from fastapi import WebSocketDisconnect
from websockets.exceptions import WebSocketException

from config.settings import Settings
from integrations.twilio_streaming import TwilioEvent, parse_twilio_ws_message
from realtime.translator import Connector, SessionTranslator
from relay.call_session import CallSession, CallState
from tools.router import ToolRouter

LOGGER = logging.getLogger(__name__)


class TelephonySocket(Protocol):
    async def receive_text(self) -> str:  # pragma: no cover - protocol stub
        ...

    async def send_text(self, data: str) -> None:  # pragma: no cover - protocol stub
        ...


class CallRelay:
    """Bridges one accepted telephony connection to one realtime session.

    Runs three coroutines for the lifetime of the call:

    - the telephony reader (the caller of ``run``), which decides call liveness;
    - the session task: connect, handshake, then consume session events;
    - the telephony writer, draining media frames queued by the session task.

    A telephony disconnect closes the session socket. A session disconnect is
    only logged; the call stays up without AI responses.
    """

    def __init__(
        self,
        telephony: TelephonySocket,
        settings: Settings,
        router: ToolRouter,
        *,
        instructions: str,
        connector: Connector | None = None,
        call_id: str | None = None,
    ) -> None:
        self._telephony = telephony
        self._call = CallSession(call_id=call_id or uuid.uuid4().hex)
        self._outbound: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._translator = SessionTranslator(
            settings,
            router,
            self._call,
            instructions=instructions,
            emit_frame=self._outbound.put,
            connector=connector,
        )

    @property
    def call(self) -> CallSession:
        return self._call

    @property
    def translator(self) -> SessionTranslator:
        return self._translator

    async def run(self) -> None:
        LOGGER.info("Client connected (call=%s)", self._call.call_id)
        session_task = asyncio.create_task(self._run_session_side())
        writer_task = asyncio.create_task(self._write_telephony())
        try:
            await self._read_telephony()
        finally:
            LOGGER.info("Client disconnected. (call=%s)", self._call.call_id)
            await self._shutdown(session_task, writer_task)

    async def handle_telephony_message(self, text: str) -> None:
        try:
            message = parse_twilio_ws_message(text)
        except ValueError as exc:
            LOGGER.error("Error parsing message: %s Message: %r", exc, text)
            return

        if message.event is TwilioEvent.MEDIA:
            payload = message.media_payload
            if payload is None:
                LOGGER.warning("Media event without a payload: %r", text)
                return
            await self._translator.send_audio_append(payload)
        elif message.event is TwilioEvent.START:
            stream_sid = message.stream_sid
            if stream_sid is None:
                LOGGER.error("Start event without a streamSid: %r", text)
                return
            self._call.stream_sid = stream_sid
            LOGGER.info("Incoming stream has started %s", stream_sid)
        else:
            LOGGER.info("Received non-media event: %s", message.name)

    async def _read_telephony(self) -> None:
        while True:
            try:
                text = await self._telephony.receive_text()
            except WebSocketDisconnect:
                return
            await self.handle_telephony_message(text)

    async def _write_telephony(self) -> None:
        while True:
            frame = await self._outbound.get()
            if frame is None:
                return
            try:
                await self._telephony.send_text(json.dumps(frame))
            except (WebSocketDisconnect, RuntimeError) as exc:
                LOGGER.info("Telephony socket unavailable, stopping writer: %s", exc)
                return

    async def _run_session_side(self) -> None:
        try:
            if await self._open_session():
                await self._translator.receive_events()
        finally:
            LOGGER.info("Disconnected from the realtime API (call=%s)", self._call.call_id)
            self._call.mark_session_closed()

    async def _open_session(self) -> bool:
        try:
            await self._translator.connect()
            self._advance(CallState.HANDSHAKING)
            await self._translator.handshake()
            self._advance(CallState.ACTIVE)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            LOGGER.error("Realtime session setup failed: %s", exc)
            await self._translator.close()
            return False
        return True

    def _advance(self, target: CallState) -> None:
        if self._call.can_transition(target):
            self._call.transition(target)

    async def _shutdown(self, session_task: asyncio.Task[None], writer_task: asyncio.Task[None]) -> None:
        self._call.mark_telephony_closed()
        try:
            await self._translator.close()
        except WebSocketException as exc:
            LOGGER.warning("Error closing the realtime socket: %s", exc)

        pending = self._translator.pending_calls
        if pending:
            LOGGER.info("Call %s ended with %d tool call(s) in flight; results will be discarded", self._call.call_id, pending)

        session_task.cancel()
        try:
            with contextlib.suppress(asyncio.CancelledError):
                await session_task
        finally:
            await self._outbound.put(None)
            await writer_task
