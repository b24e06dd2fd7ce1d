"""Operator-supplied bearer token."""

from dataclasses import dataclass, field

import jwt
from pydantic import SecretStr

from aitools_connect.auth.base import CredentialProvider
from aitools_connect.errors import AuthError
from aitools_connect.models.credential import Credential


def validate_token_shape(raw: str) -> str:
    """Check that `raw` looks like a JWT and return the bare token.

    Only the structure is checked: three segments whose header and payload
    decode to JSON objects. Signatures and claims are not verified.
    """
    token = raw.strip().strip('"').strip("'")
    if token.lower().startswith("bearer "):
        token = token[7:].strip()

    segments = token.count(".") + 1
    if segments != 3:
        raise AuthError(
            "invalid_token",
            f"Bearer token must have 3 dot-separated segments, found {segments}",
        )
    try:
        jwt.get_unverified_header(token)
        jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as exc:
        raise AuthError("invalid_token", f"Bearer token is not a JWT: {exc}") from exc
    return token


@dataclass(frozen=True, kw_only=True)
class ManualTokenProvider(CredentialProvider):
    """Accepts a bearer token as-is; its expiry is treated as unknown."""

    method = "manual_token"

    bearer_token: SecretStr | None = field(default=None, repr=False)

    async def acquire(self, scope: str, force_refresh: bool = False) -> Credential:
        """Validate the token structure and wrap it."""
        if self.bearer_token is None or not self.bearer_token.get_secret_value():
            raise AuthError(
                "missing_credential_material",
                "Bearer token not provided",
                hint="Pass --bearer-token or set AZURE_BEARER_TOKEN.",
            )
        token = validate_token_shape(self.bearer_token.get_secret_value())
        return Credential(method="manual_token", bearer_token=token, scope=scope)
