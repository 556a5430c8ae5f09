"""Read-only routes over the resource caches."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from kubedelta.api.schemas import (
    ErrorResponse,
    HealthResponse,
    KindHealth,
    ResourceListResponse,
    ResourceResponse,
)
from kubedelta.cache.resource_cache import ResourceCache
from kubedelta.models.resources import ResourceKind, SyncState

router = APIRouter()


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, detail=detail).model_dump())


def _resolve_cache(request: Request, kind: str) -> ResourceCache | JSONResponse:
    try:
        resolved = ResourceKind.parse(kind)
    except ValueError as exc:
        return _error(404, "UNKNOWN_KIND", str(exc))
    cache = request.app.state.caches.get(resolved)
    if cache is None:
        return _error(404, "KIND_NOT_WATCHED", f"{resolved.value} is not being watched")
    return cache


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> JSONResponse:
    from kubedelta import __version__

    caches: dict[ResourceKind, ResourceCache] = request.app.state.caches
    kinds = {
        kind.value: KindHealth(sync_state=cache.state.value, objects=len(cache), revision=cache.revision)
        for kind, cache in caches.items()
    }
    all_synced = bool(caches) and all(c.state == SyncState.SYNCED for c in caches.values())
    body = HealthResponse(status="ok" if all_synced else "syncing", version=__version__, kinds=kinds)
    return JSONResponse(status_code=200 if all_synced else 503, content=body.model_dump())


@router.get("/resources/{kind}", response_model=ResourceListResponse)
async def list_resources(request: Request, kind: str, namespace: str | None = None) -> JSONResponse:
    cache = _resolve_cache(request, kind)
    if isinstance(cache, JSONResponse):
        return cache
    body = ResourceListResponse(
        kind=cache.kind.value,
        sync_state=cache.state.value,
        revision=cache.revision,
        items=[ResourceResponse.from_record(r) for r in cache.list(namespace)],
    )
    return JSONResponse(content=body.model_dump())


@router.get("/resources/{kind}/{namespace}/{name}", response_model=ResourceResponse)
async def get_resource(request: Request, kind: str, namespace: str, name: str) -> JSONResponse:
    cache = _resolve_cache(request, kind)
    if isinstance(cache, JSONResponse):
        return cache
    record = cache.get_by_name(namespace, name)
    if record is None:
        return _error(404, "NOT_FOUND", f"{cache.kind.value} {namespace}/{name} is not in the cache")
    return JSONResponse(content=ResourceResponse.from_record(record).model_dump())
