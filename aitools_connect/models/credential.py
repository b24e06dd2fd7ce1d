"""Credential produced by authentication and attached to outbound requests."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from aitools_connect.errors import mask_secret

type AuthMethod = Literal[
    "key",
    "token",
    "device_code",
    "managed_identity",
    "manual_token",
    "both",
]

API_KEY_HEADER = "Ocp-Apim-Subscription-Key"


@dataclass(frozen=True, kw_only=True)
class Credential:
    """An API key or a bearer token, never both.

    `method` is the method that actually produced the value, so a credential
    obtained through the `both` fallback reports `token`.
    `expires_at` is None when the expiry is unknown.
    """

    method: AuthMethod
    api_key: str | None = field(default=None, repr=False)
    bearer_token: str | None = field(default=None, repr=False)
    expires_at: datetime | None = None
    scope: str | None = None

    def __post_init__(self) -> None:
        if (self.api_key is None) == (self.bearer_token is None):
            raise ValueError("Credential needs exactly one of api_key or bearer_token")

    @property
    def is_bearer(self) -> bool:
        return self.bearer_token is not None

    @property
    def secret(self) -> str:
        """Raw secret value, for the opt-in token display only."""
        return self.bearer_token if self.bearer_token is not None else str(self.api_key)

    @property
    def masked(self) -> str:
        return mask_secret(self.secret)

    def headers(self) -> dict[str, str]:
        """Request headers carrying this credential."""
        if self.bearer_token is not None:
            return {"Authorization": f"Bearer {self.bearer_token}"}
        return {API_KEY_HEADER: str(self.api_key)}
