"""Read-only HTTP routes over the resource cache.

GET /health     -- liveness; always 200 while the process serves requests
GET /ready      -- 200 once every registered type is listed, 503 before
GET /status     -- readiness plus per-type state, resume token and size
GET /resources  -- cached objects of one type, optionally in one namespace
GET /resource   -- one cached object by type, namespace and name
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from kubecache.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ObjectListResponse,
    StatusResponse,
    TypeStatus,
)
from kubecache.errors import NotFound
from kubecache.models.resources import CacheReadiness, GroupVersionKind

router = APIRouter()


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, detail=detail).model_dump())


def _resolve_type(request: Request, value: str) -> GroupVersionKind | JSONResponse:
    try:
        gvk = GroupVersionKind.parse(value)
    except ValueError as exc:
        return _error(400, "INVALID_RESOURCE_TYPE", str(exc))
    if gvk not in request.app.state.cache.registered:
        return _error(404, "UNKNOWN_RESOURCE_TYPE", f"{gvk} is not watched")
    return gvk


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    from kubecache import __version__

    return HealthResponse(version=__version__, readiness=request.app.state.cache.readiness().value)


@router.get("/ready", response_model=None)
async def ready(request: Request) -> dict[str, str] | JSONResponse:
    readiness = request.app.state.cache.readiness()
    if readiness is not CacheReadiness.READY:
        return _error(503, "CACHE_NOT_READY", readiness.value)
    return {"readiness": readiness.value}


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    cache = request.app.state.cache
    types = []
    for gvk in cache.registered:
        metadata = cache.metadata(gvk)
        types.append(
            TypeStatus(
                type=str(gvk),
                state=cache.state(gvk).value,
                resource_version=metadata.resource_version if metadata is not None else None,
                objects=cache.size(gvk),
            )
        )
    return StatusResponse(readiness=cache.readiness().value, types=types)


@router.get("/resources", response_model=None)
async def list_resources(
    request: Request,
    type_: str = Query(alias="type", min_length=1, max_length=253),
    namespace: str | None = Query(default=None, max_length=253),
) -> ObjectListResponse | JSONResponse:
    gvk = _resolve_type(request, type_)
    if isinstance(gvk, JSONResponse):
        return gvk
    items = request.app.state.cache.list(gvk, namespace)
    return ObjectListResponse(type=str(gvk), items=items)


@router.get("/resource", response_model=None)
async def get_resource(
    request: Request,
    type_: str = Query(alias="type", min_length=1, max_length=253),
    name: str = Query(min_length=1, max_length=253),
    namespace: str = Query(default="", max_length=253),
) -> dict[str, Any] | JSONResponse:
    gvk = _resolve_type(request, type_)
    if isinstance(gvk, JSONResponse):
        return gvk
    try:
        obj: dict[str, Any] = request.app.state.cache.get(gvk, namespace, name)
    except NotFound:
        return _error(404, "NOT_FOUND", f"{gvk} {namespace}/{name} is not cached")
    return obj
