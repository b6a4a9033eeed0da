"""Communities and memberships."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from luminax.api.dependencies import get_container, get_current_identity, rate_limited_identity
from luminax.api.schemas import CommunityCreate
from luminax.core.identity.provider import Identity
from luminax.core.services.container import ServiceContainer

router = APIRouter(prefix="/api/communities", tags=["communities"])


@router.get("")
async def list_communities(
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.communities.list_communities()


@router.post("", status_code=201)
async def create_community(
    body: CommunityCreate,
    identity: Identity = Depends(rate_limited_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.communities.create_community(body.name, body.description)


@router.get("/mine")
async def my_communities(
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    return await container.communities.my_communities(identity.user_id)


@router.post("/{community_id}/join")
async def join_community(
    community_id: int,
    identity: Identity = Depends(rate_limited_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.communities.join(community_id, identity.user_id)


@router.post("/{community_id}/leave")
async def leave_community(
    community_id: int,
    identity: Identity = Depends(rate_limited_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.communities.leave(community_id, identity.user_id)
