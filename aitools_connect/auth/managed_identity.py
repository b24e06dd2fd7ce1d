"""Managed identity token from the local metadata service."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

import aiohttp
from pydantic import ValidationError

from aitools_connect.auth.base import CredentialProvider, expiry_from
from aitools_connect.auth.models import ManagedIdentityTokenResponse
from aitools_connect.clouds import IMDS_TOKEN_URL
from aitools_connect.errors import AuthError
from aitools_connect.models.credential import Credential

log = logging.getLogger(__name__)

IMDS_API_VERSION = "2018-02-01"
APP_SERVICE_API_VERSION = "2019-08-01"
# The endpoint is absent off-cloud, so fail fast instead of waiting for a
# connect timeout.
METADATA_TIMEOUT = 1.0


@dataclass(frozen=True, kw_only=True)
class ManagedIdentityEndpoint:
    url: str
    api_version: str
    headers: Mapping[str, str] = field(repr=False)


def detect_endpoint(environ: Mapping[str, str]) -> ManagedIdentityEndpoint:
    """Pick the App Service identity endpoint when present, else IMDS."""
    endpoint = environ.get("IDENTITY_ENDPOINT")
    header = environ.get("IDENTITY_HEADER")
    if endpoint and header:
        return ManagedIdentityEndpoint(
            url=endpoint,
            api_version=APP_SERVICE_API_VERSION,
            headers={"X-IDENTITY-HEADER": header},
        )
    return ManagedIdentityEndpoint(
        url=IMDS_TOKEN_URL,
        api_version=IMDS_API_VERSION,
        headers={"Metadata": "true"},
    )


@dataclass(frozen=True, kw_only=True)
class ManagedIdentityProvider(CredentialProvider):
    """System- or user-assigned identity of the hosting compute resource.

    `client_id` selects a user-assigned identity.
    """

    method = "managed_identity"
    cacheable = True

    session: aiohttp.ClientSession = field(repr=False)
    client_id: str | None = None
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ, repr=False)
    timeout: float = METADATA_TIMEOUT

    async def acquire(self, scope: str, force_refresh: bool = False) -> Credential:
        """Query the metadata endpoint for a token for `scope`."""
        endpoint = detect_endpoint(self.environ)
        params = {
            "api-version": endpoint.api_version,
            "resource": scope.removesuffix("/.default"),
        }
        if self.client_id:
            params["client_id"] = self.client_id

        log.info(
            "Requesting managed identity token: endpoint=%s, client_id=%s",
            endpoint.url,
            self.client_id or "system-assigned",
        )
        try:
            async with self.session.get(
                endpoint.url,
                params=params,
                headers=dict(endpoint.headers),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                text = await response.text()
                if response.status != 200:
                    raise AuthError(
                        "not_available",
                        f"Managed identity endpoint returned HTTP {response.status}: "
                        f"{text[:200]}",
                        status=response.status,
                    )
        except TimeoutError as exc:
            raise AuthError(
                "not_available",
                f"Managed identity endpoint did not respond within {self.timeout}s",
            ) from exc
        except aiohttp.ClientError as exc:
            raise AuthError(
                "not_available", f"Could not reach managed identity endpoint: {exc}"
            ) from exc

        try:
            token = ManagedIdentityTokenResponse.model_validate_json(text)
        except ValidationError as exc:
            raise AuthError(
                "not_available", "Malformed managed identity token response"
            ) from exc

        return Credential(
            method="managed_identity",
            bearer_token=token.access_token,
            expires_at=expiry_from(token.expires_in),
            scope=scope,
        )
