"""API key with service principal fallback."""

import logging
from dataclasses import dataclass

from aitools_connect.auth.api_key import ApiKeyProvider
from aitools_connect.auth.base import CredentialProvider
from aitools_connect.auth.service_principal import ServicePrincipalProvider
from aitools_connect.errors import AuthError
from aitools_connect.models.credential import Credential

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class BothProvider(CredentialProvider):
    """Tries the API key first, then the service principal.

    The returned credential's `method` tells which path succeeded.
    """

    method = "both"

    primary: ApiKeyProvider
    secondary: ServicePrincipalProvider

    async def acquire(self, scope: str, force_refresh: bool = False) -> Credential:
        """Acquire through the first path that succeeds."""
        try:
            return await self.primary.acquire(scope, force_refresh)
        except AuthError as exc:
            log.info(
                "API key path failed (%s), falling back to service principal",
                exc.reason,
            )
        return await self.secondary.acquire(scope, force_refresh)
