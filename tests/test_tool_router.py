from __future__ import annotations

import asyncio

import pytest

from relay.errors import KnowledgeBackendError, ToolArgumentsError, UnknownToolError
from tools.router import ToolRouter
from conftest import FakeKnowledge


def test_search_dispatch_returns_text_block(tool_router, knowledge):
    result = asyncio.run(tool_router.dispatch("search", {"query": "latte"}))

    assert result == "[menu_1]: Caffe Latte: espresso with steamed milk. Grande 4.45.\n-----\n"
    assert knowledge.queries == [("search", "latte")]


def test_arguments_may_arrive_as_json_string(tool_router):
    result = asyncio.run(tool_router.dispatch("report_grounding", '{"sources": ["menu_2", "nope"]}'))

    assert result == {
        "sources": [{"identifier": "menu_2", "title": "Cold Brew", "content": "Cold Brew steeped for 20 hours."}]
    }


def test_unknown_tool_raises(tool_router, knowledge):
    with pytest.raises(UnknownToolError):
        asyncio.run(tool_router.dispatch("order_coffee", {}))
    assert knowledge.queries == []


def test_invalid_arguments_raise(tool_router):
    with pytest.raises(ToolArgumentsError):
        asyncio.run(tool_router.dispatch("search", {}))
    with pytest.raises(ToolArgumentsError):
        asyncio.run(tool_router.dispatch("search", "{not json"))


def test_backend_errors_propagate():
    router = ToolRouter(FakeKnowledge(fail=True))

    with pytest.raises(KnowledgeBackendError):
        asyncio.run(router.dispatch("search", {"query": "latte"}))


def test_concurrent_dispatch(tool_router):
    async def _run():
        return await asyncio.gather(
            tool_router.dispatch("search", {"query": "latte"}),
            tool_router.dispatch("search", {"query": "cold brew"}),
        )

    latte, cold_brew = asyncio.run(_run())
    assert latte.startswith("[menu_1]")
    assert cold_brew.startswith("[menu_2]")


def test_declarations_cover_every_tool(tool_router):
    names = [declaration["name"] for declaration in tool_router.declarations()]
    assert names == ["search", "report_grounding"]
