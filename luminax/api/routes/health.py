"""Liveness plus database and Redis health."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from luminax.api.dependencies import get_container
from luminax.core.services.container import ServiceContainer

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(container: ServiceContainer = Depends(get_container)) -> JSONResponse:
    report = await container.health_check()
    status_code = 200 if report["status"] == "ok" else 503
    return JSONResponse(status_code=status_code, content=report)
