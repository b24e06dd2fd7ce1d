"""Abstract base class for credential providers."""

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar

import aiohttp
from pydantic import ValidationError

from aitools_connect.auth.models import TokenErrorResponse, TokenResponse
from aitools_connect.errors import AuthError
from aitools_connect.models.credential import AuthMethod, Credential

DEFAULT_TOKEN_TIMEOUT = 30.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class CredentialProvider(ABC):
    """One credential-acquisition method.

    Only providers marked `cacheable` have their credentials persisted by the
    auth manager.
    """

    method: ClassVar[AuthMethod]
    cacheable: ClassVar[bool] = False

    @abstractmethod
    async def acquire(self, scope: str, force_refresh: bool = False) -> Credential:
        """Produce a credential valid for `scope`.

        Args:
            scope: Resource/audience the credential is requested for
            force_refresh: Skip any provider-side reuse of earlier tokens

        Raises:
            AuthError: If the credential cannot be acquired

        """


async def post_form(
    session: aiohttp.ClientSession,
    url: str,
    form: Mapping[str, str],
    *,
    timeout: float = DEFAULT_TOKEN_TIMEOUT,
) -> tuple[int, dict[str, Any]]:
    """POST a form to a login authority endpoint.

    Returns the status and the best-effort parsed JSON body. Transport
    failures are raised as AuthError.
    """
    try:
        async with session.post(
            url, data=dict(form), timeout=aiohttp.ClientTimeout(total=timeout)
        ) as response:
            text = await response.text()
            status = response.status
    except TimeoutError as exc:
        raise AuthError(
            "timeout", f"Login authority did not respond within {timeout}s"
        ) from exc
    except aiohttp.ClientError as exc:
        raise AuthError(
            "network_error", f"Failed to reach login authority: {exc}"
        ) from exc

    return status, parse_json_object(text)


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a JSON object body, returning an empty dict when it is not one."""
    try:
        parsed = json.loads(text)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def token_request_error(status: int, body: Mapping[str, Any]) -> AuthError:
    """Build the AuthError for a failed token request."""
    try:
        error = TokenErrorResponse.model_validate(body)
        detail = f"{error.error}: {error.error_description or 'no description'}"
    except ValidationError:
        detail = "no error body"
    return AuthError(
        "http_status_error",
        f"Token request failed with HTTP {status} ({detail})",
        status=status,
        error_body=body,
    )


def parse_token_response(body: Mapping[str, Any]) -> TokenResponse:
    try:
        return TokenResponse.model_validate(body)
    except ValidationError as exc:
        raise AuthError(
            "http_status_error", f"Malformed token response: {exc.error_count()} error(s)"
        ) from exc


def expiry_from(expires_in: int, now: datetime | None = None) -> datetime:
    return (now or utc_now()) + timedelta(seconds=expires_in)
