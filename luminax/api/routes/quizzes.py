"""Quiz results."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from luminax.api.dependencies import get_container, get_current_identity, rate_limited_identity
from luminax.api.schemas import QuizResultCreate
from luminax.core.identity.provider import Identity
from luminax.core.services.container import ServiceContainer
from luminax.database.models import ActivityKind

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])


@router.post("/results", status_code=201)
async def record_quiz_result(
    body: QuizResultCreate,
    identity: Identity = Depends(rate_limited_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.recorder.record_quiz_result(
        identity.user_id,
        body.topic,
        body.score,
        body.total_questions,
        body.xp_earned,
        quiz_id=body.quiz_id,
        username=identity.username,
        occurred_at=body.occurred_at,
    )


@router.get("/results")
async def list_quiz_results(
    limit: int = Query(50),
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.reports.list_events(
        identity.user_id, ActivityKind.QUIZ_RESULT, limit=limit
    )
