"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel


class RootResponse(BaseModel):
    message: str
