"""Resolves the credential attached to outbound requests for a service."""

import logging
import sys
from collections.abc import AsyncGenerator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, TextIO

import aiohttp

from aitools_connect.auth.base import CredentialProvider, utc_now
from aitools_connect.auth.cache import CacheKey, CachedTokenEntry, TokenCache
from aitools_connect.auth.factory import AuthRequest, build_provider
from aitools_connect.errors import AuthError
from aitools_connect.models.credential import AuthMethod, Credential

log = logging.getLogger(__name__)

type ResolutionSource = Literal["cache_hit", "acquired"]

type ProviderFactory = Callable[..., CredentialProvider]


@dataclass(frozen=True, kw_only=True)
class AuthResolution:
    """A resolved credential and how it was obtained."""

    credential: Credential
    source: ResolutionSource
    requested_method: AuthMethod

    @property
    def fallback_used(self) -> bool:
        """True when `both` had to fall back to the service principal."""
        return self.requested_method == "both" and self.credential.method != "key"


def cache_key_for(request: AuthRequest) -> CacheKey:
    client_id = (
        request.managed_identity_client_id
        if request.method == "managed_identity"
        else request.client_id
    )
    return CacheKey(
        cloud=request.cloud,
        method=request.method,
        tenant_id=request.tenant_id,
        client_id=client_id,
        scope=request.resolved_scope,
    )


@dataclass(frozen=True, kw_only=True)
class AuthManager:
    """Produces credentials, consulting and updating the token cache.

    The cache is injected so callers can substitute an in-memory store.
    """

    cache: TokenCache
    session: aiohttp.ClientSession = field(repr=False)
    provider_factory: ProviderFactory = field(default=build_provider, repr=False)
    use_cache: bool = True
    force_refresh: bool = False
    show_token: bool = False
    token_sink: TextIO | None = field(default=None, repr=False)
    clock: Callable[[], datetime] = field(default=utc_now, repr=False)

    @classmethod
    @asynccontextmanager
    async def open(
        cls, cache: TokenCache, **kwargs: object
    ) -> AsyncGenerator["AuthManager", None]:
        """Create a manager with managed session lifecycle."""
        async with aiohttp.ClientSession() as session:
            yield cls(cache=cache, session=session, **kwargs)  # type: ignore[arg-type]

    async def resolve(self, request: AuthRequest) -> AuthResolution:
        """Resolve the credential for `request`.

        Raises:
            AuthError: If the provider cannot acquire a credential

        """
        provider = self.provider_factory(request, session=self.session)
        key = cache_key_for(request)
        scope = request.resolved_scope
        caching = self.use_cache and provider.cacheable

        if caching and not self.force_refresh:
            if (entry := self.cache.get(key)) is not None:
                log.info(
                    "Using cached %s token (expires %s)",
                    request.method,
                    entry.expires_at.isoformat(),
                )
                credential = Credential(
                    method=provider.method,
                    bearer_token=entry.token,
                    expires_at=entry.expires_at,
                    scope=scope,
                )
                return self._finish(credential, "cache_hit", request.method)

        credential = await provider.acquire(scope, self.force_refresh)
        log.info(
            "Acquired credential: method=%s, value=%s",
            credential.method,
            credential.masked,
        )

        if caching and credential.bearer_token and credential.expires_at:
            entry = CachedTokenEntry(
                token=credential.bearer_token,
                expires_at=credential.expires_at,
                acquired_at=self.clock(),
            )
            try:
                self.cache.put(key, entry)
            except OSError as exc:
                log.warning("Could not persist token to cache: %s", exc)

        return self._finish(credential, "acquired", request.method)

    async def resolve_all(
        self, requests: Mapping[str, AuthRequest]
    ) -> Mapping[str, AuthResolution | AuthError]:
        """Resolve per-service requests, once per distinct request.

        Resolution is sequential since device code sign-in is interactive.
        """
        resolved: dict[AuthRequest, AuthResolution | AuthError] = {}
        for service, request in requests.items():
            if request in resolved:
                continue
            try:
                resolved[request] = await self.resolve(request)
            except AuthError as exc:
                log.error("Authentication failed for %s: %s", service, exc.message)
                resolved[request] = exc
        return {service: resolved[request] for service, request in requests.items()}

    def _finish(
        self,
        credential: Credential,
        source: ResolutionSource,
        requested_method: AuthMethod,
    ) -> AuthResolution:
        resolution = AuthResolution(
            credential=credential, source=source, requested_method=requested_method
        )
        if resolution.fallback_used:
            log.info("Authenticated through service principal fallback")
        if self.show_token:
            sink = self.token_sink or sys.stderr
            sink.write(f"{credential.secret}\n")
            sink.flush()
        return resolution
