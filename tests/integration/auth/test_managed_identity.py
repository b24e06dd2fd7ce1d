"""Integration tests for the managed identity provider."""

import re

import aiohttp
import pytest
from aioresponses import aioresponses as aioresponses_cls

from aitools_connect.auth.managed_identity import ManagedIdentityProvider
from aitools_connect.errors import AuthError
from aitools_connect.testing.payloads import jwt, managed_identity_token

SCOPE = "https://cognitiveservices.azure.com/.default"
IMDS_PATH = "/metadata/identity/oauth2/token"
IMDS_PATTERN = re.compile(r"^http://169\.254\.169\.254/metadata/identity/oauth2/token")
APP_SERVICE_URL = "http://localhost:42356/msi/token"
APP_SERVICE_PATTERN = re.compile(r"^http://localhost:42356/msi/token")


@pytest.fixture
def provider(session: aiohttp.ClientSession) -> ManagedIdentityProvider:
    """Provider outside App Service, so IMDS is used."""
    return ManagedIdentityProvider(session=session, environ={})


class TestAcquire:
    """Tests for ManagedIdentityProvider.acquire."""

    async def test_imds_system_assigned(
        self,
        provider: ManagedIdentityProvider,
        aioresponses: aioresponses_cls,
        sent_requests,
    ) -> None:
        """Requests a token for the resource from the instance metadata service."""
        token = jwt()
        aioresponses.get(IMDS_PATTERN, payload=managed_identity_token(access_token=token))

        credential = await provider.acquire(SCOPE)

        assert credential.method == "managed_identity"
        assert credential.bearer_token == token
        assert credential.expires_at is not None

        (call,) = sent_requests("GET", IMDS_PATH)
        assert call.kwargs["params"] == {
            "api-version": "2018-02-01",
            "resource": "https://cognitiveservices.azure.com",
        }
        assert call.kwargs["headers"] == {"Metadata": "true"}

    async def test_user_assigned_identity(
        self,
        session: aiohttp.ClientSession,
        aioresponses: aioresponses_cls,
        sent_requests,
    ) -> None:
        """A configured client id selects the user-assigned identity."""
        aioresponses.get(IMDS_PATTERN, payload=managed_identity_token())
        provider = ManagedIdentityProvider(
            session=session, client_id="mi-client", environ={}
        )

        await provider.acquire(SCOPE)

        (call,) = sent_requests("GET", IMDS_PATH)
        assert call.kwargs["params"]["client_id"] == "mi-client"

    async def test_app_service_endpoint(
        self,
        session: aiohttp.ClientSession,
        aioresponses: aioresponses_cls,
        sent_requests,
    ) -> None:
        """The App Service identity endpoint is used when advertised."""
        aioresponses.get(APP_SERVICE_PATTERN, payload=managed_identity_token())
        provider = ManagedIdentityProvider(
            session=session,
            environ={
                "IDENTITY_ENDPOINT": APP_SERVICE_URL,
                "IDENTITY_HEADER": "identity-secret",
            },
        )

        await provider.acquire(SCOPE)

        (call,) = sent_requests("GET", "/msi/token")
        assert call.kwargs["params"]["api-version"] == "2019-08-01"
        assert call.kwargs["headers"] == {"X-IDENTITY-HEADER": "identity-secret"}

    async def test_error_status(
        self, provider: ManagedIdentityProvider, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.get(
            IMDS_PATTERN,
            status=400,
            body='{"error":"invalid_request","error_description":"Identity not found"}',
        )

        with pytest.raises(AuthError) as exc_info:
            await provider.acquire(SCOPE)

        assert exc_info.value.reason == "not_available"
        assert exc_info.value.status == 400
        assert "Identity not found" in exc_info.value.message

    @pytest.mark.parametrize(
        "exception",
        [TimeoutError(), aiohttp.ClientConnectionError("No route to host")],
    )
    async def test_endpoint_unreachable(
        self,
        provider: ManagedIdentityProvider,
        aioresponses: aioresponses_cls,
        exception: Exception,
    ) -> None:
        """Off Azure the metadata endpoint is unreachable."""
        aioresponses.get(IMDS_PATTERN, exception=exception)

        with pytest.raises(AuthError) as exc_info:
            await provider.acquire(SCOPE)

        assert exc_info.value.reason == "not_available"

    async def test_malformed_response(
        self, provider: ManagedIdentityProvider, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.get(IMDS_PATTERN, payload={"token_type": "Bearer"})

        with pytest.raises(AuthError, match="Malformed"):
            await provider.acquire(SCOPE)
