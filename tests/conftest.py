from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from websockets.exceptions import ConnectionClosedOK
from websockets.protocol import State

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

REQUIRED_ENV = {
    "AZURE_OPENAI_ENDPOINT": "https://example-openai.openai.azure.com",
    "AZURE_OPENAI_DEPLOYMENT": "gpt-4o-realtime-preview",
    "AZURE_OPENAI_API_KEY": "openai-key",
    "AZURE_SEARCH_ENDPOINT": "https://example-search.search.windows.net",
    "AZURE_SEARCH_INDEX": "menu",
    "AZURE_SEARCH_API_KEY": "search-key",
}

# Must be set before importing modules that read the settings at import time.
for _name, _value in REQUIRED_ENV.items():
    os.environ.setdefault(_name, _value)


async def drain(translator) -> None:
    """Wait for the translator's in-flight function calls to finish."""

    while translator._pending:
        await asyncio.gather(*list(translator._pending), return_exceptions=True)


class FakeKnowledge:
    def __init__(self, records: dict[str, tuple[str, str]] | None = None, *, fail: bool = False) -> None:
        self.records = records or {}
        self.fail = fail
        self.queries: list[tuple[str, Any]] = []

    async def search(self, query: str) -> str:
        from relay.errors import KnowledgeBackendError

        self.queries.append(("search", query))
        if self.fail:
            raise KnowledgeBackendError("index unavailable")
        return "".join(
            f"[{sid}]: {content}\n-----\n"
            for sid, (_title, content) in self.records.items()
            if query.lower() in content.lower()
        )

    async def report_grounding(self, sources: list[str]) -> dict[str, Any]:
        self.queries.append(("report_grounding", list(sources)))
        return {
            "sources": [
                {"identifier": sid, "title": self.records[sid][0], "content": self.records[sid][1]}
                for sid in sources
                if sid in self.records
            ]
        }


class FakeSessionConnection:
    """Stands in for the realtime websocket; records everything sent to it."""

    def __init__(self) -> None:
        self.state = State.OPEN
        self.sent: list[dict[str, Any]] = []
        self.close_calls = 0
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.state is not State.OPEN:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(message))

    async def close(self) -> None:
        self.close_calls += 1
        self.state = State.CLOSED
        self._incoming.put_nowait(None)

    def push(self, message: dict[str, Any] | str) -> None:
        self._incoming.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def __aiter__(self) -> FakeSessionConnection:
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item

    def sent_of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message.get("type") == message_type]

    async def wait_for(self, message_type: str, count: int = 1, timeout: float = 2.0) -> list[dict[str, Any]]:
        async def _poll() -> list[dict[str, Any]]:
            while len(self.sent_of_type(message_type)) < count:
                await asyncio.sleep(0.005)
            return self.sent_of_type(message_type)

        return await asyncio.wait_for(_poll(), timeout)


class FakeConnector:
    def __init__(self, connection: FakeSessionConnection | None = None, *, error: Exception | None = None) -> None:
        self.connection = connection
        self.error = error
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.connected = asyncio.Event()

    async def __call__(self, url: str, headers: dict[str, str]) -> FakeSessionConnection:
        self.calls.append((url, headers))
        if self.error is not None:
            raise self.error
        if self.connection is None:
            self.connection = FakeSessionConnection()
        self.connected.set()
        return self.connection


class FakeTelephonySocket:
    """Stands in for the Twilio-facing FastAPI WebSocket."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    async def receive_text(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise WebSocketDisconnect(code=1000)
        return item

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))

    def push(self, message: dict[str, Any] | str) -> None:
        self._incoming.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def disconnect(self) -> None:
        self._incoming.put_nowait(None)

    async def wait_for_frames(self, count: int = 1, timeout: float = 2.0) -> list[dict[str, Any]]:
        async def _poll() -> list[dict[str, Any]]:
            while len(self.sent) < count:
                await asyncio.sleep(0.005)
            return self.sent

        return await asyncio.wait_for(_poll(), timeout)


@pytest.fixture()
def settings():
    from config.settings import Settings

    return Settings(_env_file=None, handshake_delay_seconds=0.0, **{k.lower(): v for k, v in REQUIRED_ENV.items()})


@pytest.fixture()
def knowledge() -> FakeKnowledge:
    return FakeKnowledge(
        {
            "menu_1": ("Lattes", "Caffe Latte: espresso with steamed milk. Grande 4.45."),
            "menu_2": ("Cold Brew", "Cold Brew steeped for 20 hours."),
        }
    )


@pytest.fixture()
def tool_router(knowledge):
    from tools.router import ToolRouter

    return ToolRouter(knowledge)


@pytest.fixture(scope="session")
def app():
    import importlib

    return importlib.import_module("main").app


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
