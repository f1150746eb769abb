"""Maps tool names issued by the realtime session onto knowledge lookups."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from pydantic import BaseModel, ValidationError

from relay.errors import ToolArgumentsError, UnknownToolError
from tools.schemas import REPORT_GROUNDING_TOOL, SEARCH_TOOL, ReportGroundingArguments, SearchArguments

LOGGER = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class KnowledgeBackend(Protocol):
    async def search(self, query: str) -> str:  # pragma: no cover - protocol stub
        ...

    async def report_grounding(self, sources: list[str]) -> dict[str, Any]:  # pragma: no cover - protocol stub
        ...


class ToolRouter:
    """Dispatches a named tool call to its handler.

    Handlers share no state, so several dispatches may be awaited at once.
    """

    def __init__(self, knowledge: KnowledgeBackend) -> None:
        self._knowledge = knowledge
        self._handlers: dict[str, ToolHandler] = {
            "search": self._search,
            "report_grounding": self._report_grounding,
        }
        self._declarations: dict[str, dict[str, Any]] = {
            "search": SEARCH_TOOL,
            "report_grounding": REPORT_GROUNDING_TOOL,
        }

    def declarations(self) -> list[dict[str, Any]]:
        return [self._declarations[name] for name in self._handlers]

    async def dispatch(self, name: str, arguments: dict[str, Any] | str | None) -> Any:
        """Run the tool called ``name`` and return its JSON-serializable result.

        Raises:
            UnknownToolError: no handler is registered under ``name``.
            ToolArgumentsError: the arguments do not match the tool's schema.
            KnowledgeBackendError: the backend query failed.
        """

        handler = self._handlers.get(name)
        if handler is None:
            LOGGER.warning("Function call for unknown tool '%s'", name)
            raise UnknownToolError(f"Unknown tool: {name}")

        return await handler(_coerce_arguments(arguments))

    async def _search(self, arguments: dict[str, Any]) -> str:
        args = _validate(SearchArguments, arguments)
        return await self._knowledge.search(args.query)

    async def _report_grounding(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args = _validate(ReportGroundingArguments, arguments)
        return await self._knowledge.report_grounding(args.sources)


def _coerce_arguments(arguments: dict[str, Any] | str | None) -> dict[str, Any]:
    # The session sends arguments either as an object or as a JSON-encoded string.
    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError as exc:
            raise ToolArgumentsError(f"Tool arguments are not valid JSON: {arguments}") from exc
    if not isinstance(arguments, dict):
        raise ToolArgumentsError("Tool arguments must be a JSON object.")
    return arguments


def _validate(model: type[BaseModel], arguments: dict[str, Any]) -> Any:
    try:
        return model.model_validate(arguments)
    except ValidationError as exc:
        raise ToolArgumentsError(str(exc)) from exc
