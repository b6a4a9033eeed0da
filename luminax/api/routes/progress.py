"""Progress snapshot and reports."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from luminax.api.dependencies import get_container, get_current_identity
from luminax.core.identity.provider import Identity
from luminax.core.services.container import ServiceContainer

router = APIRouter(prefix="/api/progress", tags=["progress"])


@router.get("")
async def get_progress(
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.ledger.get_progress(identity.user_id)


@router.get("/summary")
async def progress_summary(
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.reports.summary(identity.user_id)


@router.get("/chart")
async def progress_chart(
    days: Optional[int] = Query(None),
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.reports.chart(identity.user_id, days)


@router.get("/subjects")
async def progress_subjects(
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.reports.subjects(identity.user_id)
