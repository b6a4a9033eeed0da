"""Study sessions: record, list, totals."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from luminax.api.dependencies import get_container, get_current_identity, rate_limited_identity
from luminax.api.schemas import StudySessionCreate
from luminax.core.identity.provider import Identity
from luminax.core.services.container import ServiceContainer
from luminax.database.models import ActivityKind

router = APIRouter(prefix="/api/study", tags=["study"])


@router.post("/sessions", status_code=201)
async def record_study_session(
    body: StudySessionCreate,
    identity: Identity = Depends(rate_limited_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.recorder.record_study_session(
        identity.user_id,
        body.subject,
        body.duration_minutes,
        body.notes,
        username=identity.username,
        occurred_at=body.occurred_at,
    )


@router.get("/sessions")
async def list_study_sessions(
    limit: int = Query(50),
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.reports.list_events(
        identity.user_id, ActivityKind.STUDY_SESSION, limit=limit
    )


@router.get("/stats")
async def study_stats(
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.reports.study_stats(identity.user_id)
