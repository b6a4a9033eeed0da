"""
Identity providers: turn a bearer token into a verified `Identity`.

Two implementations, picked at startup by `IDENTITY_MODE`:

- `HostedIdentityProvider`: asks the hosted auth service who the token
  belongs to (`GET {IDENTITY_URL}/auth/v1/user` with the bearer token and the
  project `apikey` header) over one shared httpx client.
- `LocalJWTIdentityProvider`: verifies HS256 tokens signed with
  `JWT_SECRET` (python-jose). Development and tests only; `Config.validate()`
  refuses it in production.

Rejected tokens raise `AuthenticationError` (401). An unreachable or
misbehaving provider raises `IdentityServiceError` (503, retryable).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol

import httpx
from jose import JWTError, jwt

from luminax.core.config.config import Config, IdentityMode
from luminax.core.exceptions import IdentityServiceError
from luminax.core.logging.logger import get_logger
from luminax.modules.shared.exceptions import AuthenticationError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None
    username: Optional[str] = None


def _username_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    metadata = claims.get("user_metadata") or {}
    username = claims.get("username") or metadata.get("username") or metadata.get("full_name")
    if username:
        return str(username)
    email = claims.get("email")
    if email:
        return str(email).split("@")[0]
    return None


class IdentityProvider(Protocol):
    async def verify(self, token: str) -> Identity: ...

    async def shutdown(self) -> None: ...


class HostedIdentityProvider:
    """
    Verifies tokens by calling the hosted identity service.

    Args:
        base_url: Service root (IDENTITY_URL)
        api_key: Project key sent as the `apikey` header
        timeout_seconds: Per-request timeout
        client: Optional pre-built httpx.AsyncClient (tests use MockTransport)
    """

    USER_PATH = "/auth/v1/user"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_seconds: float = 10,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not base_url:
            raise ValueError("HostedIdentityProvider requires a base_url")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def verify(self, token: str) -> Identity:
        if not token:
            raise AuthenticationError("missing bearer token")

        start_time = time.monotonic()
        try:
            response = await self._client.get(
                f"{self._base_url}{self.USER_PATH}",
                headers={"Authorization": f"Bearer {token}", "apikey": self._api_key},
            )
        except httpx.HTTPError as exc:
            logger.error(
                "Identity provider request failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            raise IdentityServiceError("verify_token", exc) from exc

        latency_ms = round((time.monotonic() - start_time) * 1000, 2)

        if response.status_code in (401, 403):
            logger.info(
                "Identity provider rejected token",
                extra={"status_code": response.status_code, "latency_ms": latency_ms},
            )
            raise AuthenticationError("token rejected by identity provider")

        if response.status_code != 200:
            logger.error(
                "Identity provider returned unexpected status",
                extra={"status_code": response.status_code, "latency_ms": latency_ms},
            )
            raise IdentityServiceError("verify_token")

        try:
            body = response.json()
        except ValueError as exc:
            raise IdentityServiceError("verify_token", exc) from exc

        user_id = body.get("id") if isinstance(body, dict) else None
        if not user_id:
            raise IdentityServiceError("verify_token")

        logger.debug("Token verified by identity provider", extra={"latency_ms": latency_ms})
        return Identity(
            user_id=str(user_id),
            email=body.get("email"),
            username=_username_from_claims(body),
        )

    async def shutdown(self) -> None:
        await self._client.aclose()


class LocalJWTIdentityProvider:
    """Verifies locally signed JWTs; `sub` is the user id."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Identity:
        if not token:
            raise AuthenticationError("missing bearer token")

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_aud": False},
            )
        except JWTError as exc:
            logger.debug("Local JWT rejected", extra={"reason": str(exc)})
            raise AuthenticationError("invalid or expired token") from exc

        user_id = claims.get("sub")
        if not user_id:
            raise AuthenticationError("token has no subject")

        return Identity(
            user_id=str(user_id),
            email=claims.get("email"),
            username=_username_from_claims(claims),
        )

    def issue_token(
        self,
        user_id: str,
        *,
        email: Optional[str] = None,
        username: Optional[str] = None,
        expires_in: timedelta = timedelta(hours=1),
    ) -> str:
        """Sign a development token. Never used in hosted mode."""
        now = datetime.now(timezone.utc)
        claims: Dict[str, Any] = {"sub": user_id, "iat": now, "exp": now + expires_in}
        if email:
            claims["email"] = email
        if username:
            claims["username"] = username
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    async def shutdown(self) -> None:
        return None


def build_identity_provider() -> IdentityProvider:
    """Pick the provider from static config and log which one is active."""
    if Config.uses_local_identity():
        logger.warning(
            "Identity: verifying locally signed JWTs (development mode)",
            extra={"identity_mode": IdentityMode.LOCAL.value},
        )
        return LocalJWTIdentityProvider(Config.JWT_SECRET, Config.JWT_ALGORITHM)

    logger.info(
        "Identity: using hosted identity provider",
        extra={"identity_mode": IdentityMode.HOSTED.value},
    )
    return HostedIdentityProvider(
        Config.IDENTITY_URL,
        Config.IDENTITY_API_KEY,
        timeout_seconds=Config.IDENTITY_TIMEOUT_SECONDS,
    )
