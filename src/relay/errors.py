"""Domain-specific exceptions for relay operations.

These exceptions are safe to import from API layers without opening any
network connection.
"""

from __future__ import annotations


class RelayError(Exception):
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class SessionConfigurationError(RelayError):
    default_detail = "Session configuration may only be sent once per session."


class InvalidStateTransition(RelayError):
    default_detail = "Invalid call session state transition."


class ToolError(RelayError):
    default_detail = "Tool invocation failed."


class UnknownToolError(ToolError):
    default_detail = "Unknown tool."


class ToolArgumentsError(ToolError):
    default_detail = "Invalid tool arguments."


class KnowledgeBackendError(RelayError):
    default_detail = "Knowledge backend query failed."
