"""API key provider."""

from dataclasses import dataclass, field

from pydantic import SecretStr

from aitools_connect.auth.base import CredentialProvider
from aitools_connect.errors import AuthError
from aitools_connect.models.credential import Credential


@dataclass(frozen=True, kw_only=True)
class ApiKeyProvider(CredentialProvider):
    """Wraps a configured subscription key. Makes no network call."""

    method = "key"

    api_key: SecretStr | None = field(default=None, repr=False)

    async def acquire(self, scope: str, force_refresh: bool = False) -> Credential:
        """Return the configured key as a credential."""
        if self.api_key is None or not self.api_key.get_secret_value().strip():
            raise AuthError("missing_credential_material", "API key not configured")
        return Credential(
            method="key", api_key=self.api_key.get_secret_value().strip(), scope=scope
        )
