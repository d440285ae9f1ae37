"""Factory wiring the session, cache, tenant stores and API together."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from companyscope.cache.request_cache import RequestCache, create_request_cache
from companyscope.client.cached_api import CachedApi
from companyscope.client.http import ApiClient, create_api_client
from companyscope.config.logging import setup_logging_from_settings
from companyscope.config.settings import get_settings
from companyscope.tenancy.context import ActiveTenantContext
from companyscope.tenancy.preferences import PreferenceStore, create_preference_store
from companyscope.tenancy.tenant_list import TenantListStore

if TYPE_CHECKING:
    from companyscope.auth.session import SessionTokenProvider
    from companyscope.models.domain import Tenant

logger = structlog.get_logger(__name__)


@dataclass
class DashboardCore:
    """Everything a dashboard UI needs, sharing one cache and one session."""

    session: SessionTokenProvider
    client: ApiClient
    cache: RequestCache
    api: CachedApi
    tenants: TenantListStore
    preferences: PreferenceStore
    context: ActiveTenantContext

    async def aclose(self) -> None:
        self.context.close()
        self.cache.close()
        await self.client.aclose()


def create_dashboard_core(
    session: SessionTokenProvider,
    *,
    client: ApiClient | None = None,
    preferences: PreferenceStore | None = None,
    cache: RequestCache | None = None,
    configure_logging: bool = False,
) -> DashboardCore:
    """Build a ``DashboardCore`` from settings, with optional overrides."""
    if configure_logging:
        setup_logging_from_settings(get_settings())

    client = client or create_api_client()
    cache = cache or create_request_cache(session)
    preferences = preferences or create_preference_store()
    api = CachedApi(client, cache)

    async def _load_tenants() -> list[Tenant]:
        return await api.fetch_companies(force_refresh=True)

    tenants = TenantListStore(_load_tenants)
    context = ActiveTenantContext(session, tenants, preferences, cache)
    logger.debug("dashboard_core_created", base_url=client.base_url)
    return DashboardCore(
        session=session,
        client=client,
        cache=cache,
        api=api,
        tenants=tenants,
        preferences=preferences,
        context=context,
    )
