"""Tests for the hosted and local identity providers."""

from datetime import timedelta

import httpx
import pytest

from luminax.core.exceptions import IdentityServiceError
from luminax.core.identity.provider import HostedIdentityProvider, LocalJWTIdentityProvider
from luminax.modules.shared.exceptions import AuthenticationError


def hosted_provider(handler) -> HostedIdentityProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HostedIdentityProvider("https://id.example/", "anon-key", client=client)


@pytest.mark.unit
class TestHostedIdentityProvider:
    async def test_valid_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["apikey"] = request.headers["apikey"]
            return httpx.Response(
                200,
                json={
                    "id": "user-123",
                    "email": "ada@example.com",
                    "user_metadata": {"username": "ada"},
                },
            )

        provider = hosted_provider(handler)

        identity = await provider.verify("tok")
        await provider.shutdown()

        assert identity.user_id == "user-123"
        assert identity.username == "ada"
        assert identity.email == "ada@example.com"
        assert seen == {
            "url": "https://id.example/auth/v1/user",
            "auth": "Bearer tok",
            "apikey": "anon-key",
        }

    async def test_username_falls_back_to_email(self):
        provider = hosted_provider(
            lambda request: httpx.Response(200, json={"id": "u1", "email": "grace@example.com"})
        )

        identity = await provider.verify("tok")

        assert identity.username == "grace"

    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected_token(self, status):
        provider = hosted_provider(lambda request: httpx.Response(status))

        with pytest.raises(AuthenticationError):
            await provider.verify("tok")

    async def test_provider_error_is_infrastructure(self):
        provider = hosted_provider(lambda request: httpx.Response(502))

        with pytest.raises(IdentityServiceError):
            await provider.verify("tok")

    async def test_network_failure_is_infrastructure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = hosted_provider(handler)

        with pytest.raises(IdentityServiceError):
            await provider.verify("tok")

    async def test_missing_token(self):
        provider = hosted_provider(lambda request: httpx.Response(200, json={"id": "u1"}))

        with pytest.raises(AuthenticationError):
            await provider.verify("")

    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            HostedIdentityProvider("", "key")


@pytest.mark.unit
class TestLocalJWTIdentityProvider:
    async def test_round_trip(self, identity_provider):
        token = identity_provider.issue_token("u1", email="ada@example.com", username="ada")

        identity = await identity_provider.verify(token)

        assert identity.user_id == "u1"
        assert identity.username == "ada"

    async def test_expired_token(self, identity_provider):
        token = identity_provider.issue_token("u1", expires_in=timedelta(seconds=-5))

        with pytest.raises(AuthenticationError):
            await identity_provider.verify(token)

    async def test_wrong_secret(self, identity_provider):
        token = LocalJWTIdentityProvider("other-secret").issue_token("u1")

        with pytest.raises(AuthenticationError):
            await identity_provider.verify(token)

    async def test_garbage(self, identity_provider):
        with pytest.raises(AuthenticationError):
            await identity_provider.verify("not-a-jwt")
