"""Azure AI Search client backing the search and report_grounding tools."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import httpx

from config.settings import Settings
from relay.errors import KnowledgeBackendError

LOGGER = logging.getLogger(__name__)

RESULT_DELIMITER = "-----"


@dataclass(frozen=True, slots=True)
class KnowledgeRecord:
    identifier: str
    title: str
    content: str

    def render(self) -> str:
        return f"[{self.identifier}]: {self.content}\n{RESULT_DELIMITER}\n"

    def as_dict(self) -> dict[str, str]:
        return {"identifier": self.identifier, "title": self.title, "content": self.content}


class KnowledgeClient:
    """Read-only query adapter for the knowledge index.

    Holds no per-call state, so a single instance is shared by every call.
    Each query opens its own HTTP client; nothing is retried.
    """

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._endpoint = settings.azure_search_endpoint.rstrip("/")
        self._index = settings.azure_search_index
        self._api_key = settings.azure_search_api_key
        self._api_version = settings.azure_search_api_version
        self._top = settings.search_top
        self._timeout = settings.search_timeout_seconds
        self._id_field = settings.search_identifier_field
        self._title_field = settings.search_title_field
        self._content_field = settings.search_content_field
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "api-key": self._api_key}

    @property
    def _select(self) -> str:
        return ",".join([self._id_field, self._title_field, self._content_field])

    async def search(self, query: str) -> str:
        """Full-text search, rendered as one delimited block per match.

        A blank query or an empty result set yields an empty string.
        """

        LOGGER.info("Searching for '%s' in the knowledge base.", query)
        if not query or not query.strip():
            return ""

        records = await self._query(
            {
                "search": query,
                "select": self._select,
                "top": self._top,
            }
        )
        return "".join(record.render() for record in records)

    async def report_grounding(self, sources: Iterable[str]) -> dict[str, Any]:
        """Resolve cited source identifiers back into full records.

        Identifiers missing from the index are omitted without error.
        """

        requested = list(dict.fromkeys(s for s in sources if s))
        LOGGER.info("Grounding source: %s", ", ".join(requested))
        if not requested:
            return {"sources": []}

        records = await self._query(
            {
                "search": " OR ".join(_quote(source) for source in requested),
                "searchFields": self._id_field,
                "select": self._select,
                "top": len(requested),
            }
        )
        wanted = set(requested)
        return {"sources": [record.as_dict() for record in records if record.identifier in wanted]}

    async def _query(self, payload: dict[str, Any]) -> list[KnowledgeRecord]:
        url = f"{self._endpoint}/indexes/{self._index}/docs/search"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    params={"api-version": self._api_version},
                    json=payload,
                    headers=self._headers(),
                )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            LOGGER.error("Knowledge backend query failed: %s", exc)
            raise KnowledgeBackendError(f"Knowledge backend query failed: {exc}") from exc
        except ValueError as exc:
            LOGGER.error("Knowledge backend returned invalid JSON: %s", exc)
            raise KnowledgeBackendError("Knowledge backend returned invalid JSON.") from exc

        docs = data.get("value", []) if isinstance(data, dict) else None
        if not isinstance(docs, list) or not all(isinstance(doc, dict) for doc in docs):
            LOGGER.error("Knowledge backend returned an unexpected response shape: %r", data)
            raise KnowledgeBackendError("Knowledge backend returned an unexpected response shape.")
        return [self._to_record(doc) for doc in docs]

    def _to_record(self, doc: dict[str, Any]) -> KnowledgeRecord:
        return KnowledgeRecord(
            identifier=str(doc.get(self._id_field) or ""),
            title=str(doc.get(self._title_field) or ""),
            content=str(doc.get(self._content_field) or ""),
        )


def _quote(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
