"""Response bodies of the status API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Envelope for every 4xx/5xx answer."""

    error: str
    detail: str = ""


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    readiness: str


class TypeStatus(BaseModel):
    """Synchronization state of one resource type."""

    type: str
    state: str
    resource_version: str | None = None
    objects: int = 0


class StatusResponse(BaseModel):
    readiness: str
    types: list[TypeStatus] = Field(default_factory=list)


class ObjectListResponse(BaseModel):
    type: str
    items: list[dict[str, Any]] = Field(default_factory=list)
