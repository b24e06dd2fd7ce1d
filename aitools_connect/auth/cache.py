"""Persistent cache of acquired bearer tokens.

Tokens are stored as supplied, without extra encryption, in a file readable
only by the invoking user. Reads are lock-free snapshots of the file; `put`
holds an exclusive lock for its read-modify-write and replaces the file
atomically.
"""

import logging
import os
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol

from pydantic import Field, ValidationError

from aitools_connect.auth.base import utc_now
from aitools_connect.models.base import Model

log = logging.getLogger(__name__)

SAFETY_MARGIN = timedelta(minutes=5)
CACHE_DIR_NAME = "aitools-connect"
CACHE_FILE_NAME = "tokens.json"


@dataclass(frozen=True, kw_only=True)
class CacheKey:
    """Identifies one cache slot."""

    cloud: str
    method: str
    tenant_id: str | None
    client_id: str | None
    scope: str

    def __str__(self) -> str:
        parts = (self.cloud, self.method, self.tenant_id, self.client_id, self.scope)
        return "|".join(part or "-" for part in parts)


class CachedTokenEntry(Model):
    """A cached token. Entries are replaced wholesale, never mutated."""

    token: str = Field(repr=False)
    expires_at: datetime
    acquired_at: datetime

    def is_valid(self, now: datetime, margin: timedelta = SAFETY_MARGIN) -> bool:
        """Usable only while more than `margin` remains before expiry."""
        return self.expires_at - now > margin

    def remaining(self, now: datetime) -> timedelta:
        return self.expires_at - now


class TokenCacheFile(Model):
    """On-disk layout: cache-key string to entry."""

    version: int = 1
    entries: dict[str, CachedTokenEntry] = Field(default_factory=dict)


class TokenCache(Protocol):
    """Store of previously acquired tokens."""

    def get(self, key: CacheKey) -> CachedTokenEntry | None:
        """Return the entry for `key` if it is still valid."""

    def put(self, key: CacheKey, entry: CachedTokenEntry) -> None:
        """Store `entry`, replacing any entry for `key`."""

    def clear(self, key: CacheKey) -> None:
        """Remove the entry for `key`."""

    def clear_all(self) -> None:
        """Remove every entry."""


def default_cache_path() -> Path:
    """Per-user cache file location."""
    if sys.platform == "win32" and (local := os.environ.get("LOCALAPPDATA")):
        base = Path(local)
    elif xdg := os.environ.get("XDG_CACHE_HOME"):
        base = Path(xdg)
    else:
        base = Path.home() / ".cache"
    return base / CACHE_DIR_NAME / CACHE_FILE_NAME


@dataclass(frozen=True, kw_only=True)
class FileTokenCache:
    """Token cache persisted as JSON in the user's cache directory."""

    path: Path = field(default_factory=default_cache_path)
    clock: Callable[[], datetime] = field(default=utc_now, repr=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def get(self, key: CacheKey) -> CachedTokenEntry | None:
        entry = self._load().entries.get(str(key))
        if entry is None or not entry.is_valid(self.clock()):
            return None
        return entry

    def put(self, key: CacheKey, entry: CachedTokenEntry) -> None:
        with self._lock:
            now = self.clock()
            entries = {
                name: existing
                for name, existing in self._load().entries.items()
                if existing.expires_at > now
            }
            entries[str(key)] = entry
            self._write(TokenCacheFile(entries=entries))

    def clear(self, key: CacheKey) -> None:
        with self._lock:
            store = self._load()
            if str(key) not in store.entries:
                return
            entries = {k: v for k, v in store.entries.items() if k != str(key)}
            self._write(TokenCacheFile(entries=entries))

    def clear_all(self) -> None:
        with self._lock:
            self.path.unlink(missing_ok=True)
        log.info("Token cache cleared: %s", self.path)

    def _load(self) -> TokenCacheFile:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return TokenCacheFile()
        except OSError as exc:
            log.warning("Ignoring unreadable token cache %s: %s", self.path, exc)
            return TokenCacheFile()

        try:
            return TokenCacheFile.model_validate_json(raw)
        except ValidationError:
            log.warning("Ignoring corrupt token cache %s", self.path)
            return TokenCacheFile()

    def _write(self, store: TokenCacheFile) -> None:
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(store.model_dump_json(indent=2))
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise


@dataclass(frozen=True, kw_only=True)
class MemoryTokenCache:
    """In-process token cache with the same validity rules."""

    clock: Callable[[], datetime] = field(default=utc_now, repr=False)
    entries: dict[str, CachedTokenEntry] = field(default_factory=dict)

    def get(self, key: CacheKey) -> CachedTokenEntry | None:
        entry = self.entries.get(str(key))
        if entry is None or not entry.is_valid(self.clock()):
            return None
        return entry

    def put(self, key: CacheKey, entry: CachedTokenEntry) -> None:
        self.entries[str(key)] = entry

    def clear(self, key: CacheKey) -> None:
        self.entries.pop(str(key), None)

    def clear_all(self) -> None:
        self.entries.clear()
