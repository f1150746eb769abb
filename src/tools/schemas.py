"""Tool declarations advertised to the realtime session and their argument models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

SEARCH_TOOL: dict[str, Any] = {
    "type": "function",
    "name": "search",
    "description": (
        "Search the knowledge base. The knowledge base is in English, translate to and from "
        "English if needed. Results are formatted as a source name first in square brackets, "
        "followed by the text content, and a line with '-----' at the end of each result."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Search query",
            }
        },
        "required": ["query"],
    },
}

REPORT_GROUNDING_TOOL: dict[str, Any] = {
    "type": "function",
    "name": "report_grounding",
    "description": (
        "Report use of a source from the knowledge base as part of an answer (effectively, cite "
        "the source). Sources appear in square brackets before each knowledge base passage. "
        "Always use this tool to cite sources when responding with information from the "
        "knowledge base."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "sources": {
                "type": "array",
                "items": {"type": "string"},
                "description": (
                    "List of source names from last statement actually used, do not include the "
                    "ones not used to formulate a response"
                ),
            }
        },
        "required": ["sources"],
    },
}


class SearchArguments(BaseModel):
    query: str


class ReportGroundingArguments(BaseModel):
    sources: list[str] = Field(default_factory=list)
