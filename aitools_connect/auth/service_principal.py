"""OAuth2 client-credentials grant for a service principal."""

import logging
from dataclasses import dataclass, field

import aiohttp
from pydantic import SecretStr

from aitools_connect.auth.base import (
    DEFAULT_TOKEN_TIMEOUT,
    CredentialProvider,
    expiry_from,
    parse_token_response,
    post_form,
    token_request_error,
)
from aitools_connect.clouds import CLOUDS, Cloud
from aitools_connect.errors import AuthError
from aitools_connect.models.credential import Credential

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class ServicePrincipalProvider(CredentialProvider):
    """Client id/secret exchanged at the tenant's token endpoint."""

    method = "token"
    cacheable = True

    session: aiohttp.ClientSession = field(repr=False)
    cloud: Cloud = "global"
    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: SecretStr | None = field(default=None, repr=False)
    timeout: float = DEFAULT_TOKEN_TIMEOUT

    async def acquire(self, scope: str, force_refresh: bool = False) -> Credential:
        """Request a token with the client-credentials grant."""
        if not self.tenant_id:
            raise AuthError(
                "missing_tenant", "Service principal auth requires a tenant id"
            )
        if not self.client_id or self.client_secret is None:
            raise AuthError(
                "missing_credential_material",
                "Service principal auth requires client_id and client_secret",
                hint="Set AZURE_CLIENT_ID and AZURE_CLIENT_SECRET, or auth.client_id "
                "and auth.client_secret in the config file.",
            )

        url = CLOUDS[self.cloud].token_url(self.tenant_id)
        log.info(
            "Requesting service principal token: tenant_id=%s, client_id=%s, scope=%s",
            self.tenant_id,
            self.client_id,
            scope,
        )
        status, body = await post_form(
            self.session,
            url,
            {
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret.get_secret_value(),
                "scope": scope,
            },
            timeout=self.timeout,
        )
        if status != 200:
            raise token_request_error(status, body)

        token = parse_token_response(body)
        return Credential(
            method="token",
            bearer_token=token.access_token,
            expires_at=expiry_from(token.expires_in),
            scope=scope,
        )
