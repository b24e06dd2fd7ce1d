"""Integration tests for the service principal provider."""

from datetime import datetime, timedelta, timezone

import aiohttp
import pytest
from aioresponses import aioresponses as aioresponses_cls
from pydantic import SecretStr
from yarl import URL

from aitools_connect.auth.service_principal import ServicePrincipalProvider
from aitools_connect.errors import AuthError
from aitools_connect.testing.payloads import jwt, token_error, token_response

SCOPE = "https://cognitiveservices.azure.com/.default"
TOKEN_URL = "https://login.microsoftonline.com/test-tenant/oauth2/v2.0/token"


@pytest.fixture
def provider(session: aiohttp.ClientSession) -> ServicePrincipalProvider:
    return ServicePrincipalProvider(
        session=session,
        tenant_id="test-tenant",
        client_id="test-client",
        client_secret=SecretStr("test-secret"),
    )


class TestAcquire:
    """Tests for ServicePrincipalProvider.acquire."""

    async def test_client_credentials_grant(
        self, provider: ServicePrincipalProvider, aioresponses: aioresponses_cls
    ) -> None:
        """Exchanges client id and secret for a bearer token."""
        token = jwt()
        aioresponses.post(
            TOKEN_URL, payload=token_response(access_token=token, expires_in=3600)
        )
        before = datetime.now(timezone.utc)

        credential = await provider.acquire(SCOPE)

        assert credential.method == "token"
        assert credential.bearer_token == token
        assert credential.scope == SCOPE
        assert credential.expires_at is not None
        assert credential.expires_at - before >= timedelta(seconds=3600)

        call = aioresponses.requests[("POST", URL(TOKEN_URL))][0]
        assert call.kwargs["data"] == {
            "grant_type": "client_credentials",
            "client_id": "test-client",
            "client_secret": "test-secret",
            "scope": SCOPE,
        }

    async def test_china_cloud_authority(
        self, session: aiohttp.ClientSession, aioresponses: aioresponses_cls
    ) -> None:
        """The China cloud uses its own login authority."""
        url = "https://login.partner.microsoftonline.cn/test-tenant/oauth2/v2.0/token"
        aioresponses.post(url, payload=token_response())
        provider = ServicePrincipalProvider(
            session=session,
            cloud="china",
            tenant_id="test-tenant",
            client_id="test-client",
            client_secret=SecretStr("test-secret"),
        )

        credential = await provider.acquire(
            "https://cognitiveservices.azure.cn/.default"
        )

        assert credential.is_bearer

    async def test_rejected_credentials(
        self, provider: ServicePrincipalProvider, aioresponses: aioresponses_cls
    ) -> None:
        """A 401 carries the authority's error body."""
        aioresponses.post(TOKEN_URL, status=401, payload=token_error())

        with pytest.raises(AuthError) as exc_info:
            await provider.acquire(SCOPE)

        error = exc_info.value
        assert error.reason == "http_status_error"
        assert error.status == 401
        assert "invalid_client" in error.message
        assert error.error_body["error"] == "invalid_client"

    async def test_malformed_token_response(
        self, provider: ServicePrincipalProvider, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.post(TOKEN_URL, payload={"token_type": "Bearer"})

        with pytest.raises(AuthError, match="Malformed token response"):
            await provider.acquire(SCOPE)

    async def test_unreachable_authority(
        self, provider: ServicePrincipalProvider, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.post(
            TOKEN_URL, exception=aiohttp.ClientConnectionError("Connection refused")
        )

        with pytest.raises(AuthError) as exc_info:
            await provider.acquire(SCOPE)

        assert exc_info.value.reason == "network_error"

    async def test_authority_timeout(
        self, provider: ServicePrincipalProvider, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.post(TOKEN_URL, exception=TimeoutError())

        with pytest.raises(AuthError) as exc_info:
            await provider.acquire(SCOPE)

        assert exc_info.value.reason == "timeout"

    async def test_missing_tenant(
        self, session: aiohttp.ClientSession, aioresponses: aioresponses_cls
    ) -> None:
        """No request is sent without a tenant."""
        provider = ServicePrincipalProvider(
            session=session, client_id="c", client_secret=SecretStr("s")
        )

        with pytest.raises(AuthError) as exc_info:
            await provider.acquire(SCOPE)

        assert exc_info.value.reason == "missing_tenant"
        assert aioresponses.requests == {}

    async def test_missing_secret(
        self, session: aiohttp.ClientSession, aioresponses: aioresponses_cls
    ) -> None:
        provider = ServicePrincipalProvider(
            session=session, tenant_id="test-tenant", client_id="c"
        )

        with pytest.raises(AuthError) as exc_info:
            await provider.acquire(SCOPE)

        assert exc_info.value.reason == "missing_credential_material"
        assert aioresponses.requests == {}
