"""Status routes: liveness, readiness and per-kind store state."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from kubemirror.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ReadinessResponse,
    StoresResponse,
    StoreStatusModel,
)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    from kubemirror import __version__

    return HealthResponse(version=__version__)


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def ready(request: Request) -> JSONResponse:
    access = request.app.state.access
    statuses = access.status()
    readiness = ReadinessResponse(
        ready=False,
        synced=sorted(s.kind for s in statuses if s.synced),
        pending=sorted(s.kind for s in statuses if not s.synced and not s.failed),
        failed=sorted(s.kind for s in statuses if s.failed),
    )
    readiness.ready = access.fanout.started and not readiness.pending
    return JSONResponse(status_code=200 if readiness.ready else 503, content=readiness.model_dump())


@router.get("/stores", response_model=StoresResponse)
async def stores(request: Request) -> StoresResponse:
    access = request.app.state.access
    return StoresResponse(
        stores=sorted((StoreStatusModel.from_status(s) for s in access.status()), key=lambda m: m.kind),
        eligible_kinds=access.fanout.eligible_kinds(),
    )


@router.get(
    "/stores/{kind}",
    response_model=StoreStatusModel,
    responses={404: {"model": ErrorResponse}},
)
async def store(kind: str, request: Request) -> StoreStatusModel | JSONResponse:
    access = request.app.state.access
    for status in access.status():
        if status.kind == kind:
            return StoreStatusModel.from_status(status)
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(error="STORE_NOT_FOUND", detail=f"no store is mirroring kind {kind!r}").model_dump(),
    )
