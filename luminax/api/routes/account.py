"""Account data export and deletion."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from luminax.api.dependencies import get_container, get_current_identity, rate_limited_identity
from luminax.core.identity.provider import Identity
from luminax.core.services.container import ServiceContainer

router = APIRouter(prefix="/api/account", tags=["account"])


@router.get("/export")
async def export_account(
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.account.export(identity.user_id)


@router.delete("")
async def delete_account(
    identity: Identity = Depends(rate_limited_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.account.delete_account(identity.user_id)
