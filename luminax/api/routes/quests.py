"""Quests: list, create, advance."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from luminax.api.dependencies import get_container, get_current_identity, rate_limited_identity
from luminax.api.schemas import QuestCreate, QuestProgressUpdate
from luminax.core.identity.provider import Identity
from luminax.core.services.container import ServiceContainer

router = APIRouter(prefix="/api/quests", tags=["quests"])


@router.get("")
async def list_quests(
    include_completed: bool = Query(False),
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    if include_completed:
        return await container.quests.list_quests(identity.user_id)
    return await container.quests.list_active(identity.user_id)


@router.post("", status_code=201)
async def create_quest(
    body: QuestCreate,
    identity: Identity = Depends(rate_limited_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.quests.create_quest(
        identity.user_id,
        body.quest_type,
        body.title,
        body.target_value,
        body.xp_reward,
        body.expires_at,
        body.description,
    )


@router.patch("/{quest_id}/progress")
async def advance_quest(
    quest_id: int,
    body: QuestProgressUpdate,
    identity: Identity = Depends(rate_limited_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.quests.advance(identity.user_id, quest_id, body.increment)
