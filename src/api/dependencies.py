"""Per-process collaborators injected into the call routes.

The knowledge client and tool router are built once; the realtime connector
is a seam that tests override.
"""

from __future__ import annotations

from functools import lru_cache

from config.settings import get_settings
from integrations.knowledge_client import KnowledgeClient
from realtime.translator import Connector
from tools.router import ToolRouter


@lru_cache(maxsize=1)
def _knowledge_factory() -> KnowledgeClient:
    return KnowledgeClient(get_settings())


def get_knowledge_client() -> KnowledgeClient:
    return _knowledge_factory()


@lru_cache(maxsize=1)
def _router_factory() -> ToolRouter:
    return ToolRouter(get_knowledge_client())


def get_tool_router() -> ToolRouter:
    return _router_factory()


def get_session_connector() -> Connector | None:
    # None selects the real websockets connector.
    return None
