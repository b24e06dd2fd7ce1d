"""Error taxonomy shared by authentication, execution and setup."""

from collections.abc import Mapping
from typing import ClassVar, Literal

from aitools_connect.models.result import ErrorKind

type AuthFailure = Literal[
    "missing_tenant",
    "missing_credential_material",
    "network_error",
    "http_status_error",
    "timeout",
    "denied",
    "invalid_token",
    "not_available",
]

AUTH_HINTS: Mapping[AuthFailure, str] = {
    "missing_tenant": (
        "Provide a tenant id with --tenant, AZURE_TENANT_ID or auth.tenant_id."
    ),
    "missing_credential_material": (
        "Configure the key, token or client secret required by the selected "
        "auth method."
    ),
    "network_error": "Check connectivity to the login authority.",
    "http_status_error": (
        "Verify the credentials and that the identity has access to the resource."
    ),
    "timeout": "Sign-in was not completed in time. Run the command again.",
    "denied": "Sign-in was declined. Run the command again and approve the request.",
    "invalid_token": (
        "Pass a complete JWT access token (three base64url segments separated "
        "by dots), without quotes."
    ),
    "not_available": (
        "Managed identity only works on Azure compute with an identity assigned. "
        "Use another auth method when running elsewhere."
    ),
}

SECRET_HEADERS = frozenset(
    ["authorization", "ocp-apim-subscription-key", "x-identity-header"]
)
SECRET_MARKERS = ("key", "token", "secret")


class AppError(Exception):
    """Base for every error surfaced to the operator."""

    kind: ClassVar[ErrorKind] = "error"
    default_hint: ClassVar[str] = ""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint or self.default_hint


class ConfigurationError(AppError):
    """Invalid or missing settings, unknown service or scenario."""

    kind = "configuration"
    default_hint = "Check the configuration file, environment and arguments."


class InvalidInputError(AppError):
    """Input file missing, unreadable or of the wrong kind."""

    kind = "invalid_input"
    default_hint = "Check the input file path and its extension."


class NetworkError(AppError):
    """Transport-level failure: resolution, TLS, connect or timeout."""

    kind = "network"
    default_hint = (
        "Check DNS resolution, proxy and firewall rules for the service endpoint."
    )


class ServiceError(AppError):
    """Non-auth failure response from a remote API."""

    kind = "service"
    default_hint = "Check the service region, endpoint and request quota."

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        body: str = "",
        headers: Mapping[str, str] | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status = status
        self.body = body
        self.headers = mask_headers(headers or {})


class AuthError(AppError):
    """Credential acquisition or authorization failure."""

    kind = "auth"

    def __init__(
        self,
        reason: AuthFailure,
        message: str,
        *,
        status: int | None = None,
        error_body: Mapping[str, object] | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint or AUTH_HINTS[reason])
        self.reason = reason
        self.status = status
        self.error_body = dict(error_body or {})


def mask_secret(value: str) -> str:
    """Return a display form that never reveals more than 4 characters."""
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****"


def mask_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Mask secret-bearing header values for verbose diagnostics."""
    masked: dict[str, str] = {}
    for name, value in headers.items():
        lowered = name.lower()
        if lowered in SECRET_HEADERS or any(m in lowered for m in SECRET_MARKERS):
            masked[name] = mask_secret(value)
        else:
            masked[name] = value
    return masked
