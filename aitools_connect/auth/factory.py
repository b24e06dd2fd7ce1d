"""Maps an auth request to its credential provider."""

from dataclasses import dataclass, field

import aiohttp
from pydantic import SecretStr

from aitools_connect.auth.api_key import ApiKeyProvider
from aitools_connect.auth.base import DEFAULT_TOKEN_TIMEOUT, CredentialProvider
from aitools_connect.auth.both import BothProvider
from aitools_connect.auth.device_code import DeviceCodeProvider
from aitools_connect.auth.managed_identity import ManagedIdentityProvider
from aitools_connect.auth.manual_token import ManualTokenProvider
from aitools_connect.auth.service_principal import ServicePrincipalProvider
from aitools_connect.clouds import AZURE_CLI_CLIENT_ID, CLOUDS, Cloud
from aitools_connect.models.credential import AuthMethod


@dataclass(frozen=True, kw_only=True)
class AuthRequest:
    """Everything needed to acquire one credential.

    Requests are hashable so identical requests can share a resolution.
    """

    method: AuthMethod
    cloud: Cloud = "global"
    scope: str | None = None
    api_key: SecretStr | None = field(default=None, repr=False)
    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: SecretStr | None = field(default=None, repr=False)
    bearer_token: SecretStr | None = field(default=None, repr=False)
    managed_identity_client_id: str | None = None
    timeout: float = DEFAULT_TOKEN_TIMEOUT

    @property
    def resolved_scope(self) -> str:
        return self.scope or CLOUDS[self.cloud].cognitive_scope


def build_provider(
    request: AuthRequest, *, session: aiohttp.ClientSession
) -> CredentialProvider:
    """Instantiate the provider for the request's method."""
    match request.method:
        case "key":
            return ApiKeyProvider(api_key=request.api_key)
        case "token":
            return _service_principal(request, session)
        case "device_code":
            return DeviceCodeProvider(
                session=session,
                cloud=request.cloud,
                tenant_id=request.tenant_id,
                client_id=request.client_id or AZURE_CLI_CLIENT_ID,
                timeout=request.timeout,
            )
        case "managed_identity":
            return ManagedIdentityProvider(
                session=session, client_id=request.managed_identity_client_id
            )
        case "manual_token":
            return ManualTokenProvider(bearer_token=request.bearer_token)
        case "both":
            return BothProvider(
                primary=ApiKeyProvider(api_key=request.api_key),
                secondary=_service_principal(request, session),
            )


def _service_principal(
    request: AuthRequest, session: aiohttp.ClientSession
) -> ServicePrincipalProvider:
    return ServicePrincipalProvider(
        session=session,
        cloud=request.cloud,
        tenant_id=request.tenant_id,
        client_id=request.client_id,
        client_secret=request.client_secret,
        timeout=request.timeout,
    )
