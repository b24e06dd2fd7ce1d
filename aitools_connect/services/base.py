"""Abstract base class for service executors and the shared request helper."""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

import aiohttp
from yarl import URL

from aitools_connect.clouds import Cloud
from aitools_connect.errors import (
    AuthError,
    ConfigurationError,
    NetworkError,
    ServiceError,
    mask_headers,
)
from aitools_connect.models.credential import Credential
from aitools_connect.models.scenario import InputKind, InputPayload
from aitools_connect.settings import ServiceSettings

log = logging.getLogger(__name__)

SNIPPET_LENGTH = 300


@dataclass(frozen=True, kw_only=True)
class TestContext:
    """Everything one scenario execution needs. Built fresh per scenario."""

    __test__ = False

    service: str
    settings: ServiceSettings
    credential: Credential = field(repr=False)
    endpoint: str
    cloud: Cloud
    region: str
    timeout: float
    session: aiohttp.ClientSession = field(repr=False)
    input: InputPayload | None = None
    verbose: bool = False

    @property
    def custom_endpoint(self) -> str | None:
        """Configured custom-subdomain endpoint, without trailing slash."""
        if not self.settings.endpoint:
            return None
        return self.settings.endpoint.rstrip("/")


@dataclass(frozen=True, kw_only=True)
class ServiceResponse:
    status: int
    headers: Mapping[str, str]
    body: bytes = field(repr=False)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        try:
            return json.loads(self.body)
        except ValueError as exc:
            raise unexpected_response(self, "body is not valid JSON") from exc


def body_snippet(text: str, limit: int = SNIPPET_LENGTH) -> str:
    """Single-line, length-limited excerpt of a response body."""
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else f"{flat[:limit]}..."


def unexpected_response(response: ServiceResponse, detail: str) -> ServiceError:
    return ServiceError(
        f"Unexpected response shape: {detail}",
        status=response.status,
        body=body_snippet(response.text),
        headers=response.headers,
        hint="The endpoint answered but not like the expected API. Check the endpoint URL.",
    )


async def send(
    context: TestContext,
    method: str,
    url: str,
    *,
    params: Mapping[str, str] | None = None,
    headers: Mapping[str, str] | None = None,
    json_body: Any = None,
    data: bytes | str | None = None,
    authenticate: bool = True,
) -> ServiceResponse:
    """Send one request and classify the outcome.

    Returns the response when its status is 2xx.

    Raises:
        AuthError: On HTTP 401 or 403
        ServiceError: On any other non-2xx status
        NetworkError: On resolution, TLS, connect or timeout failures

    """
    request_headers = dict(context.credential.headers()) if authenticate else {}
    request_headers.update(headers or {})
    host = URL(url).host

    if context.verbose:
        log.debug("%s %s headers=%s", method, url, mask_headers(request_headers))

    try:
        async with context.session.request(
            method,
            url,
            params=params,
            headers=request_headers,
            json=json_body,
            data=data,
            timeout=aiohttp.ClientTimeout(total=context.timeout),
        ) as raw:
            response = ServiceResponse(
                status=raw.status, headers=dict(raw.headers), body=await raw.read()
            )
    except TimeoutError as exc:
        raise NetworkError(
            f"Request to {host} timed out after {context.timeout}s"
        ) from exc
    except aiohttp.ClientSSLError as exc:
        raise NetworkError(
            f"TLS handshake with {host} failed: {exc}",
            hint="Check TLS interception proxies and the system certificate store.",
        ) from exc
    except aiohttp.ClientConnectorError as exc:
        raise NetworkError(f"Cannot connect to {host}: {exc}") from exc
    except aiohttp.ClientError as exc:
        raise NetworkError(f"Request to {host} failed: {exc}") from exc

    if context.verbose:
        log.debug(
            "Response HTTP %d headers=%s", response.status, mask_headers(response.headers)
        )

    if response.status in (401, 403):
        raise AuthError(
            "http_status_error",
            f"HTTP {response.status}: {body_snippet(response.text)}",
            status=response.status,
            error_body=_error_body(response),
        )
    if not 200 <= response.status < 300:
        raise ServiceError(
            f"HTTP {response.status}: {body_snippet(response.text)}",
            status=response.status,
            body=body_snippet(response.text),
            headers=response.headers,
        )
    return response


def _error_body(response: ServiceResponse) -> Mapping[str, Any]:
    try:
        parsed = json.loads(response.body)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


@dataclass(frozen=True, kw_only=True)
class ServiceExecutor(ABC):
    """Runs the scenarios of one remote API.

    Subclasses set `name` and implement `endpoint` and `execute`. `execute`
    returns a short success message or raises one of the taxonomy errors.
    """

    name: ClassVar[str]
    display_name: ClassVar[str]
    requires_custom_subdomain: ClassVar[bool] = False
    # Input handed to scenarios that work without one when it is supplied.
    optional_input: ClassVar[InputKind | None] = None

    @abstractmethod
    def endpoint(self, settings: ServiceSettings, cloud: Cloud, region: str) -> str:
        """Base URL the scenarios of this service target."""

    @abstractmethod
    async def execute(self, scenario_id: str, context: TestContext) -> str:
        """Run one scenario against the service.

        Args:
            scenario_id: Scenario to run, as listed in the registry
            context: Fresh context for this execution

        Returns:
            Human-readable summary of the successful response

        """

    def check_credential(self, credential: Credential, settings: ServiceSettings) -> None:
        """Reject bearer tokens aimed at a regional endpoint where unsupported.

        Raises:
            ConfigurationError: If the service needs a custom subdomain endpoint

        """
        if self.requires_custom_subdomain and credential.is_bearer and not settings.endpoint:
            raise ConfigurationError(
                f"{self.display_name} requires a custom subdomain endpoint for "
                "bearer token authentication",
                hint=(
                    f"Set services.{self.name}.endpoint to "
                    "https://<resource-name>.cognitiveservices.azure.com "
                    "or use API key auth."
                ),
            )

    def unknown_scenario(self, scenario_id: str) -> ConfigurationError:
        return ConfigurationError(
            f"Scenario '{scenario_id}' is not implemented by {self.display_name}"
        )
