"""Fixtures for integration tests."""

from collections.abc import AsyncGenerator
from typing import Any, Protocol

import aiohttp
import pytest
from aioresponses import aioresponses as aioresponses_cls

from aitools_connect.clouds import Cloud
from aitools_connect.models.credential import Credential
from aitools_connect.models.scenario import InputPayload
from aitools_connect.services.base import ServiceExecutor, TestContext
from aitools_connect.settings import ServiceSettings
from aitools_connect.testing.factories import CredentialFactory


class MakeContextFn(Protocol):
    """Protocol for test context creation function."""

    def __call__(
        self,
        executor: ServiceExecutor,
        *,
        credential: Credential | None = None,
        settings: ServiceSettings | None = None,
        cloud: Cloud = "global",
        region: str = "eastus",
        input: InputPayload | None = None,
    ) -> TestContext:
        """Create a context for one scenario execution."""


class SentRequestsFn(Protocol):
    """Protocol for recorded request lookup."""

    def __call__(self, method: str, path: str) -> list[Any]:
        """Return recorded calls whose URL path equals `path`."""


@pytest.fixture
async def session(
    aioresponses: aioresponses_cls,
) -> AsyncGenerator[aiohttp.ClientSession, None]:
    """Create client session with mocked responses."""
    async with aiohttp.ClientSession() as client_session:
        yield client_session


@pytest.fixture
def make_context(session: aiohttp.ClientSession) -> MakeContextFn:
    """Return a function to build scenario contexts."""

    def _make(
        executor: ServiceExecutor,
        *,
        credential: Credential | None = None,
        settings: ServiceSettings | None = None,
        cloud: Cloud = "global",
        region: str = "eastus",
        input: InputPayload | None = None,
    ) -> TestContext:
        settings = settings or ServiceSettings()
        return TestContext(
            service=executor.name,
            settings=settings,
            credential=credential or CredentialFactory.build(),
            endpoint=executor.endpoint(settings, cloud, region),
            cloud=cloud,
            region=region,
            timeout=5.0,
            session=session,
            input=input,
        )

    return _make


@pytest.fixture
def sent_requests(aioresponses: aioresponses_cls) -> SentRequestsFn:
    """Return a function to look up recorded requests by method and path."""

    def _lookup(method: str, path: str) -> list[Any]:
        return [
            call
            for (sent_method, url), calls in aioresponses.requests.items()
            if sent_method == method and url.path == path
            for call in calls
        ]

    return _lookup
