"""
FastAPI dependencies: container access, bearer authentication and per-user
rate limiting for write routes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from luminax.core.identity.provider import Identity
from luminax.core.logging.logger import get_logger, set_log_context
from luminax.core.services.container import ServiceContainer
from luminax.modules.shared.exceptions import AuthenticationError

logger = get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def _verify(
    credentials: Optional[HTTPAuthorizationCredentials],
    container: ServiceContainer,
) -> Identity:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise AuthenticationError("missing bearer token")

    identity = await container.identity.verify(credentials.credentials)
    set_log_context(user_id=identity.user_id)
    return identity


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    container: ServiceContainer = Depends(get_container),
) -> Identity:
    """Require a valid bearer token."""
    return await _verify(credentials, container)


async def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    container: ServiceContainer = Depends(get_container),
) -> Optional[Identity]:
    """
    Identity when a token is sent, None otherwise. A token that is sent but
    rejected is still an authentication error.
    """
    if credentials is None:
        return None
    return await _verify(credentials, container)


async def rate_limited_identity(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    container: ServiceContainer = Depends(get_container),
) -> Identity:
    """Authenticate, then charge one request against the caller's window."""
    decision = await container.rate_limiter.check_or_raise(
        f"user:{identity.user_id}",
        scope=f"{request.method} {request.url.path}",
    )
    if decision.backend != "disabled":
        logger.debug(
            "Rate limit check passed",
            extra={
                "user_id": identity.user_id,
                "count": decision.count,
                "limit": decision.limit,
                "backend": decision.backend,
            },
        )
    return identity
