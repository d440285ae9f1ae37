"""Snapshot store for the companies the signed-in user belongs to."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence

import structlog

from companyscope.models.domain import Tenant

logger = structlog.get_logger(__name__)

TenantLoader = Callable[[], Awaitable[Sequence[Tenant]]]
TenantListListener = Callable[[tuple[Tenant, ...]], None]


class TenantListStore:
    """Holds an immutable, ordered tenant snapshot.

    ``refresh`` replaces the snapshot wholesale and then notifies
    subscribers, so a subscriber never sees a half-updated list.
    """

    def __init__(self, loader: TenantLoader) -> None:
        self._loader = loader
        self._snapshot: tuple[Tenant, ...] = ()
        self._listeners: list[TenantListListener] = []

    def get_snapshot(self) -> tuple[Tenant, ...]:
        return self._snapshot

    def subscribe(self, listener: TenantListListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def refresh(self) -> None:
        """Re-fetch the list. Loader errors propagate and keep the old snapshot."""
        tenants = await self._loader()

        # Duplicate ids keep their first position
        seen: set[str] = set()
        ordered: list[Tenant] = []
        for tenant in tenants:
            if tenant.id not in seen:
                seen.add(tenant.id)
                ordered.append(tenant)

        self._replace(tuple(ordered))
        logger.info("tenant_list_refreshed", count=len(ordered))

    def clear(self) -> None:
        """Drop all tenants, e.g. after sign-out."""
        if self._snapshot:
            self._replace(())

    def find(self, tenant_id: str) -> Tenant | None:
        for tenant in self._snapshot:
            if tenant.id == tenant_id:
                return tenant
        return None

    def _replace(self, snapshot: tuple[Tenant, ...]) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                logger.warning("tenant_list_listener_failed", error=str(exc))
