"""Achievements."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from luminax.api.dependencies import get_container, get_current_identity, rate_limited_identity
from luminax.api.schemas import AchievementCreate
from luminax.core.identity.provider import Identity
from luminax.core.services.container import ServiceContainer
from luminax.database.models import ActivityKind

router = APIRouter(prefix="/api/achievements", tags=["achievements"])


@router.post("", status_code=201)
async def record_achievement(
    body: AchievementCreate,
    identity: Identity = Depends(rate_limited_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.recorder.record_achievement(
        identity.user_id,
        body.achievement_type,
        body.title,
        body.xp_reward,
        body.description,
        username=identity.username,
    )


@router.get("")
async def list_achievements(
    limit: int = Query(50),
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.reports.list_events(
        identity.user_id, ActivityKind.ACHIEVEMENT, limit=limit
    )
