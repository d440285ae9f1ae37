"""Active company tracking for one signed-in UI session."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from companyscope.exceptions import NotFound
from companyscope.tenancy.resolver import ActiveTenantResolver
from companyscope.types import SessionEvent

if TYPE_CHECKING:
    from companyscope.auth.session import Session, SessionTokenProvider
    from companyscope.cache.request_cache import RequestCache
    from companyscope.models.domain import Tenant
    from companyscope.tenancy.preferences import PreferenceStore
    from companyscope.tenancy.tenant_list import TenantListStore

logger = structlog.get_logger(__name__)

ActiveTenantListener = Callable[["Tenant | None"], None]


class ActiveTenantContext:
    """Keeps the active tenant in sync with navigation, membership and session.

    The active tenant is recomputed from scratch whenever the URL tenant,
    the tenant list or the session changes. When the result changes, the
    request cache is scoped to the new tenant and listeners are notified.
    The preference is written only on an explicit ``switch_tenant``.
    """

    def __init__(
        self,
        session: SessionTokenProvider,
        tenants: TenantListStore,
        preferences: PreferenceStore,
        cache: RequestCache,
    ) -> None:
        self._session = session
        self._tenants = tenants
        self._preferences = preferences
        self._cache = cache
        self._resolver = ActiveTenantResolver(preferences)
        self._url_tenant_id: str | None = None
        self._active: Tenant | None = None
        self._listeners: list[ActiveTenantListener] = []
        self._last_user_id = session.user_id
        self._unsubscribers = [
            tenants.subscribe(self._on_tenants_changed),
            session.subscribe(self._on_session_changed),
        ]
        self._recompute()

    @property
    def active(self) -> Tenant | None:
        return self._active

    @property
    def url_tenant_id(self) -> str | None:
        return self._url_tenant_id

    def subscribe(self, listener: ActiveTenantListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def navigate(self, url_tenant_id: str | None) -> Tenant | None:
        """Record the tenant id from the current route and re-resolve."""
        self._url_tenant_id = url_tenant_id or None
        return self._recompute()

    def require_tenant(self, tenant_id: str) -> Tenant:
        """Return the member tenant with ``tenant_id`` or raise ``NotFound``."""
        tenant = self._tenants.find(tenant_id)
        if tenant is None:
            msg = f"Company {tenant_id} is not in the current membership"
            raise NotFound(msg)
        return tenant

    def switch_tenant(self, tenant_id: str) -> Tenant:
        """Make ``tenant_id`` active and remember it for the signed-in user.

        The URL tenant is replaced by the new selection, as when the UI
        navigates to the switched-to company.
        """
        tenant = self.require_tenant(tenant_id)
        user_id = self._session.user_id
        if user_id:
            self._preferences.set(user_id, tenant.id)
        self._url_tenant_id = tenant.id
        self._recompute()
        logger.info("tenant_switched", tenant_id=tenant.id, user_id=user_id)
        return tenant

    async def refresh_tenants(self) -> tuple[Tenant, ...]:
        await self._tenants.refresh()
        return self._tenants.get_snapshot()

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._listeners.clear()

    def _recompute(self) -> Tenant | None:
        snapshot = self._tenants.get_snapshot()
        resolved = self._resolver.resolve(self._url_tenant_id, self._session.user_id, snapshot)

        previous = self._active
        self._active = resolved
        previous_id = previous.id if previous else None
        resolved_id = resolved.id if resolved else None

        if self._url_tenant_id and snapshot and resolved_id != self._url_tenant_id:
            logger.warning("url_tenant_not_member", tenant_id=self._url_tenant_id)

        if previous_id != resolved_id or self._cache.active_tenant_id != resolved_id:
            self._cache.set_active_tenant(resolved_id)
        if previous_id != resolved_id:
            logger.info(
                "active_tenant_changed", previous_tenant_id=previous_id, tenant_id=resolved_id
            )
            for listener in list(self._listeners):
                try:
                    listener(resolved)
                except Exception as exc:
                    logger.warning("active_tenant_listener_failed", error=str(exc))
        return resolved

    def _on_tenants_changed(self, snapshot: tuple[Tenant, ...]) -> None:
        active = self._active
        if active is not None and all(t.id != active.id for t in snapshot):
            logger.warning("active_tenant_removed", tenant_id=active.id)
        self._recompute()

    def _on_session_changed(self, event: SessionEvent, session: Session | None) -> None:
        user_id = session.user_id if session else None
        # Another account's membership and route never carry over
        if event == SessionEvent.SIGNED_OUT or user_id != self._last_user_id:
            self._url_tenant_id = None
            self._tenants.clear()
        self._last_user_id = user_id
        self._recompute()
