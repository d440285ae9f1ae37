"""Keyed request cache with in-flight deduplication and tenant scoping."""

from __future__ import annotations

import asyncio
import functools
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from companyscope.exceptions import Unauthenticated
from companyscope.types import CacheState, SessionEvent

if TYPE_CHECKING:
    from companyscope.auth.session import Session, SessionTokenProvider

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Fetchers receive the bearer token obtained for this request
Fetcher = Callable[[str], Awaitable[T]]

_GLOBAL_SCOPE = "_"
_KEY_SEPARATOR = ":"
_EVICT_FRACTION = 0.2


def cache_key(resource: str, tenant_id: str | None = None, **params: Any) -> str:
    """Build ``resource:tenant[:name=value...]`` with params sorted by name.

    Resources that are not tenant-scoped get ``_`` in the tenant slot.
    """
    for part in (resource, tenant_id or ""):
        if _KEY_SEPARATOR in part:
            msg = f"Cache key component may not contain {_KEY_SEPARATOR!r}: {part!r}"
            raise ValueError(msg)
    parts = [resource, tenant_id or _GLOBAL_SCOPE]
    parts.extend(f"{name}={params[name]}" for name in sorted(params))
    return _KEY_SEPARATOR.join(parts)


def tenant_of_key(key: str) -> str | None:
    """Return the tenant component of a key, or None for global keys."""
    parts = key.split(_KEY_SEPARATOR)
    if len(parts) < 2 or parts[1] in ("", _GLOBAL_SCOPE):
        return None
    return parts[1]


@dataclass
class CacheEntry:
    key: str
    value: Any = None
    fetched_at: float | None = None
    ttl: float = 0.0
    state: CacheState = CacheState.PENDING
    task: asyncio.Future[Any] | None = None

    @property
    def has_value(self) -> bool:
        return self.fetched_at is not None


class RequestCache:
    """Shared cache for backend queries.

    * One in-flight fetch per key; concurrent callers await the same task.
    * Values younger than the TTL are served without fetching.
    * The bearer token is read from the session provider before every fetch;
      without one the call fails with ``Unauthenticated``.
    * Failures are never cached and leave any earlier value in place.
    * A fetch whose entry was invalidated while it ran is not committed.

    All map mutation happens between awaits on one event loop, so no locks.
    """

    def __init__(
        self,
        session: SessionTokenProvider,
        ttl_seconds: float = 30.0,
        max_size: int = 1000,
        max_stale_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._max_stale = max_stale_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._active_tenant_id: str | None = None
        self._last_user_id = session.user_id
        self._unsubscribe = session.subscribe(self._on_session_change)

    @property
    def active_tenant_id(self) -> str | None:
        return self._active_tenant_id

    async def get(
        self,
        key: str,
        fetcher: Fetcher[T],
        *,
        ttl: float | None = None,
        force_refresh: bool = False,
        background_refresh: bool = False,
    ) -> T:
        """Return the cached value for ``key`` or fetch it.

        ``force_refresh`` skips the freshness check (an in-flight fetch is
        still shared). ``background_refresh`` serves a stale value at once
        and refreshes it without blocking the caller.
        """
        ttl_seconds = self._ttl if ttl is None else ttl
        now = self._clock()
        self._collect_expired(now)

        entry = self._entries.get(key)
        if entry is not None and entry.has_value and not force_refresh:
            if now - entry.fetched_at < ttl_seconds:  # type: ignore[operator]
                logger.debug("cache_hit", key=key)
                return entry.value
            entry.state = CacheState.STALE
            if background_refresh:
                if entry.task is None:
                    self._start_fetch(entry, fetcher, ttl_seconds)
                logger.debug("cache_stale_served", key=key)
                return entry.value

        if entry is None:
            self._make_room()
            entry = CacheEntry(key=key, ttl=ttl_seconds)
            self._entries[key] = entry

        task = entry.task
        if task is None:
            task = self._start_fetch(entry, fetcher, ttl_seconds)
        else:
            logger.debug("cache_join_inflight", key=key)
        # Shielded so one caller's cancellation does not cancel the shared fetch
        return await asyncio.shield(task)

    def peek(self, key: str) -> Any | None:
        """Return the last committed value for ``key``, fresh or stale, without fetching."""
        entry = self._entries.get(key)
        if entry is None or not entry.has_value:
            return None
        return entry.value

    def state_of(self, key: str) -> CacheState | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.fetched_at is not None and self._clock() - entry.fetched_at >= entry.ttl:
            entry.state = CacheState.STALE
        return entry.state

    def set_active_tenant(self, tenant_id: str | None) -> int:
        """Scope the cache to ``tenant_id``.

        Drops every entry that belongs to a different tenant. Entries for
        resources that are not tenant-scoped are kept. Returns the number
        of entries removed.
        """
        previous = self._active_tenant_id
        self._active_tenant_id = tenant_id
        doomed = [
            key
            for key in self._entries
            if (owner := tenant_of_key(key)) is not None and owner != tenant_id
        ]
        for key in doomed:
            del self._entries[key]
        if previous != tenant_id:
            logger.info(
                "cache_tenant_switched",
                previous_tenant_id=previous,
                tenant_id=tenant_id,
                removed=len(doomed),
            )
        return len(doomed)

    def invalidate(self, key_prefix: str) -> int:
        """Remove all entries whose key starts with ``key_prefix``."""
        doomed = [key for key in self._entries if key.startswith(key_prefix)]
        for key in doomed:
            del self._entries[key]
        logger.debug("cache_invalidated", prefix=key_prefix, removed=len(doomed))
        return len(doomed)

    def discard(self, key: str) -> bool:
        """Remove exactly ``key``. Returns whether an entry was removed."""
        removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug("cache_invalidated", key=key)
        return removed

    def invalidate_all(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        logger.debug("cache_cleared", removed=count)

    def stats(self) -> dict[str, Any]:
        return {
            "size": len(self._entries),
            "max_size": self._max_size,
            "ttl_seconds": self._ttl,
            "in_flight": sum(1 for e in self._entries.values() if e.task is not None),
            "active_tenant_id": self._active_tenant_id,
        }

    def close(self) -> None:
        """Detach from the session provider and drop all entries."""
        self._unsubscribe()
        self.invalidate_all()

    # -- internals ---------------------------------------------------------

    def _start_fetch(
        self, entry: CacheEntry, fetcher: Fetcher[Any], ttl_seconds: float
    ) -> asyncio.Future[Any]:
        task = asyncio.ensure_future(self._run_fetch(entry.key, fetcher))
        entry.task = task
        task.add_done_callback(functools.partial(self._settle, entry, ttl_seconds))
        logger.debug("cache_fetch_started", key=entry.key)
        return task

    async def _run_fetch(self, key: str, fetcher: Fetcher[Any]) -> Any:
        token = await self._session.get_token()
        if not token:
            msg = f"No session token available for {key}"
            raise Unauthenticated(msg)
        return await fetcher(token)

    def _settle(self, entry: CacheEntry, ttl_seconds: float, task: asyncio.Future[Any]) -> None:
        """Commit or discard a finished fetch."""
        entry.task = None
        attached = self._entries.get(entry.key) is entry

        if task.cancelled():
            if attached and not entry.has_value:
                del self._entries[entry.key]
            return

        exc = task.exception()
        if exc is not None:
            logger.warning(
                "cache_fetch_failed",
                key=entry.key,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if attached and not entry.has_value:
                del self._entries[entry.key]
            return

        if not attached:
            logger.info("cache_discarded_late_response", key=entry.key)
            return

        entry.value = task.result()
        entry.fetched_at = self._clock()
        entry.ttl = ttl_seconds
        entry.state = CacheState.FRESH
        logger.debug("cache_stored", key=entry.key)

    def _collect_expired(self, now: float) -> None:
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.task is None
            and entry.has_value
            and now - entry.fetched_at > entry.ttl + self._max_stale  # type: ignore[operator]
        ]
        for key in expired:
            del self._entries[key]

    def _make_room(self) -> int:
        if len(self._entries) < self._max_size:
            return 0
        # Oldest committed entries go first. In-flight entries are never evicted,
        # so while every entry is pending the map may exceed max_size.
        candidates = sorted(
            (e for e in self._entries.values() if e.task is None and e.has_value),
            key=lambda e: e.fetched_at,  # type: ignore[arg-type,return-value]
        )
        doomed = candidates[: math.ceil(self._max_size * _EVICT_FRACTION)]
        for entry in doomed:
            del self._entries[entry.key]
        if doomed:
            logger.info("cache_evicted", removed=len(doomed))
        return len(doomed)

    def _on_session_change(self, event: SessionEvent, session: Session | None) -> None:
        user_id = session.user_id if session else None
        if event == SessionEvent.SIGNED_OUT or user_id != self._last_user_id:
            self.invalidate_all()
            self._active_tenant_id = None
        self._last_user_id = user_id


def create_request_cache(session: SessionTokenProvider) -> RequestCache:
    """Factory: a cache configured from settings."""
    from companyscope.config.settings import get_settings

    settings = get_settings()
    return RequestCache(
        session,
        ttl_seconds=settings.cache_ttl_seconds,
        max_size=settings.cache_max_size,
        max_stale_seconds=settings.cache_max_stale_seconds,
    )
