"""Device code flow (RFC 8628) against the cloud's login authority.

The flow is an explicit state machine::

    AwaitingCode -> Polling(next_poll_at, interval) -> Succeeded | Denied | Expired

Every polling iteration checks the deadline advertised by the authority, so
the loop always terminates.
"""

import asyncio
import logging
import sys
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace

import aiohttp
from pydantic import ValidationError

from aitools_connect.auth.base import (
    DEFAULT_TOKEN_TIMEOUT,
    CredentialProvider,
    expiry_from,
    parse_token_response,
    post_form,
    token_request_error,
)
from aitools_connect.auth.models import (
    DeviceCodeResponse,
    TokenErrorResponse,
    TokenResponse,
)
from aitools_connect.clouds import AZURE_CLI_CLIENT_ID, CLOUDS, Cloud
from aitools_connect.errors import AuthError
from aitools_connect.models.credential import Credential

log = logging.getLogger(__name__)

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"
SLOW_DOWN_INCREMENT = 5.0
DEFAULT_WINDOW = 15 * 60


@dataclass(frozen=True, kw_only=True)
class AwaitingCode:
    """No device code requested yet."""


@dataclass(frozen=True, kw_only=True)
class Polling:
    """Waiting for the operator to complete sign-in."""

    device_code: str = field(repr=False)
    interval: float
    next_poll_at: float
    deadline: float


@dataclass(frozen=True, kw_only=True)
class Succeeded:
    token: TokenResponse = field(repr=False)


@dataclass(frozen=True, kw_only=True)
class Denied:
    description: str


@dataclass(frozen=True, kw_only=True)
class Expired:
    description: str


type DeviceFlowState = AwaitingCode | Polling | Succeeded | Denied | Expired


def print_instructions(details: DeviceCodeResponse) -> None:
    """Show the verification URL and user code on stderr."""
    rule = "=" * 70
    print(
        f"\n{rule}\n"
        f"  Azure authentication required\n"
        f"{rule}\n\n"
        f"  1. Open this URL in your browser:\n"
        f"     {details.verification_uri}\n\n"
        f"  2. Enter this code:\n"
        f"     {details.user_code}\n\n"
        f"{rule}\n",
        file=sys.stderr,
    )


@dataclass(frozen=True, kw_only=True)
class DeviceCodeProvider(CredentialProvider):
    """Interactive sign-in on another device while this process polls."""

    method = "device_code"
    cacheable = True

    session: aiohttp.ClientSession = field(repr=False)
    cloud: Cloud = "global"
    tenant_id: str | None = None
    client_id: str = AZURE_CLI_CLIENT_ID
    timeout: float = DEFAULT_TOKEN_TIMEOUT
    notify: Callable[[DeviceCodeResponse], None] = field(
        default=print_instructions, repr=False
    )
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    sleep: Callable[[float], Awaitable[None]] = field(
        default=asyncio.sleep, repr=False
    )

    async def acquire(self, scope: str, force_refresh: bool = False) -> Credential:
        """Run the device code flow to completion.

        Raises:
            AuthError: missing_tenant before any network call, denied when the
                operator declines, timeout when the code window closes

        """
        if not self.tenant_id:
            raise AuthError("missing_tenant", "Device code flow requires a tenant id")

        state: DeviceFlowState = AwaitingCode()
        while True:
            match state:
                case AwaitingCode():
                    state = await self._request_code(self.tenant_id, scope)
                case Polling():
                    state = await self._poll(self.tenant_id, state)
                case Succeeded(token=token):
                    log.info("Device code sign-in completed")
                    return Credential(
                        method="device_code",
                        bearer_token=token.access_token,
                        expires_at=expiry_from(token.expires_in),
                        scope=scope,
                    )
                case Denied(description=description):
                    raise AuthError("denied", f"Sign-in was declined: {description}")
                case Expired(description=description):
                    raise AuthError("timeout", f"Device code expired: {description}")

    async def _request_code(self, tenant_id: str, scope: str) -> Polling:
        url = CLOUDS[self.cloud].device_code_url(tenant_id)
        status, body = await post_form(
            self.session,
            url,
            {"client_id": self.client_id, "scope": scope},
            timeout=self.timeout,
        )
        if status != 200:
            raise token_request_error(status, body)
        try:
            details = DeviceCodeResponse.model_validate(body)
        except ValidationError as exc:
            raise AuthError(
                "http_status_error", "Malformed device code response"
            ) from exc

        self.notify(details)

        window = details.expires_in or DEFAULT_WINDOW
        interval = float(max(details.interval, 1))
        now = self.clock()
        log.info(
            "Waiting for device code sign-in: interval=%ss, window=%ss",
            interval,
            window,
        )
        return Polling(
            device_code=details.device_code,
            interval=interval,
            next_poll_at=now + interval,
            deadline=now + window,
        )

    async def _poll(self, tenant_id: str, state: Polling) -> DeviceFlowState:
        if state.next_poll_at > state.deadline:
            return Expired(description="sign-in not completed within the code window")

        delay = state.next_poll_at - self.clock()
        if delay > 0:
            await self.sleep(delay)

        status, body = await post_form(
            self.session,
            CLOUDS[self.cloud].token_url(tenant_id),
            {
                "grant_type": DEVICE_CODE_GRANT,
                "client_id": self.client_id,
                "device_code": state.device_code,
            },
            timeout=self.timeout,
        )
        if status == 200:
            return Succeeded(token=parse_token_response(body))

        try:
            error = TokenErrorResponse.model_validate(body)
        except ValidationError:
            raise token_request_error(status, body) from None

        now = self.clock()
        match error.error:
            case "authorization_pending":
                return replace(state, next_poll_at=now + state.interval)
            case "slow_down":
                interval = state.interval + SLOW_DOWN_INCREMENT
                log.debug("Authority asked to slow down, interval now %ss", interval)
                return replace(state, interval=interval, next_poll_at=now + interval)
            case "access_denied" | "authorization_declined":
                return Denied(description=error.error_description or error.error)
            case "expired_token" | "code_expired":
                return Expired(description=error.error_description or error.error)
            case _:
                raise token_request_error(status, body)
