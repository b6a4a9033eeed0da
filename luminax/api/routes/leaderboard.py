"""Leaderboards. Public boards accept an optional token to flag the caller."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from luminax.api.dependencies import get_container, get_current_identity, get_optional_identity
from luminax.core.identity.provider import Identity
from luminax.core.services.container import ServiceContainer

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


def _user_id(identity: Optional[Identity]) -> Optional[str]:
    return identity.user_id if identity is not None else None


@router.get("")
async def leaderboard(
    limit: Optional[int] = Query(None),
    community_id: Optional[int] = Query(None),
    identity: Optional[Identity] = Depends(get_optional_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.ranking.top_n(limit, community_id, _user_id(identity))


@router.get("/me")
async def my_rank(
    community_id: Optional[int] = Query(None),
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.ranking.rank_of(identity.user_id, community_id)


@router.get("/weekly")
async def weekly_leaderboard(
    limit: Optional[int] = Query(None),
    days: Optional[int] = Query(None),
    identity: Optional[Identity] = Depends(get_optional_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.ranking.weekly_top_n(limit, days, _user_id(identity))


@router.get("/achievements")
async def achievements_leaderboard(
    limit: Optional[int] = Query(None),
    identity: Optional[Identity] = Depends(get_optional_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.ranking.achievements_top_n(limit, _user_id(identity))
