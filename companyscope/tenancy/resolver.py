"""Active company selection."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from companyscope.models.domain import Tenant
    from companyscope.tenancy.preferences import PreferenceStore


def _find(tenants: Sequence[Tenant], tenant_id: str | None) -> Tenant | None:
    if not tenant_id:
        return None
    for tenant in tenants:
        if tenant.id == tenant_id:
            return tenant
    return None


def resolve_active_tenant(
    url_tenant_id: str | None,
    preferred_tenant_id: str | None,
    tenants: Sequence[Tenant],
) -> Tenant | None:
    """Pick the active tenant: URL, then stored preference, then first in list.

    A candidate only wins if it is a member of ``tenants``; otherwise the next
    signal is tried. Returns None for an empty list.
    """
    return (
        _find(tenants, url_tenant_id)
        or _find(tenants, preferred_tenant_id)
        or (tenants[0] if tenants else None)
    )


class ActiveTenantResolver:
    """Resolves the active tenant using a user's stored preference.

    Stateless apart from the injected store; the preference is read on every
    call and never written here.
    """

    def __init__(self, preferences: PreferenceStore) -> None:
        self._preferences = preferences

    def resolve(
        self,
        url_tenant_id: str | None,
        user_id: str | None,
        tenants: Sequence[Tenant],
    ) -> Tenant | None:
        preferred = self._preferences.get(user_id) if user_id else None
        return resolve_active_tenant(url_tenant_id, preferred, tenants)
