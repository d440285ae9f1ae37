"""Unit tests for CachedApi."""

from __future__ import annotations

from collections import Counter
from typing import Any

import httpx
import pytest

from companyscope.auth.session import InMemorySessionProvider
from companyscope.cache.request_cache import RequestCache
from companyscope.client.cached_api import CachedApi, parse_rows
from companyscope.client.http import ApiClient
from companyscope.exceptions import NetworkFailure, Unauthenticated, ValidationFailure
from companyscope.models.domain import CompanyUser, Tenant
from companyscope.types import MemberStatus

_USERS = [
    {
        "id": "u-1",
        "email": "ada@example.com",
        "fullName": "Ada",
        "avatarUrl": None,
        "lastSignIn": "2024-05-01T10:00:00Z",
        "role": "admin",
        "status": "active",
    },
    {
        "id": "inv-1",
        "email": "not-an-email",
        "fullName": "",
        "avatarUrl": None,
        "lastSignIn": None,
        "role": "member",
        "status": "pending",
    },
    {
        "id": "inv-2",
        "email": "bob@example.com",
        "fullName": "",
        "avatarUrl": None,
        "lastSignIn": None,
        "role": "member",
        "status": "pending",
    },
]


class FakeBackend:
    """Routes GET paths to canned JSON and counts hits."""

    def __init__(self, routes: dict[str, Any]) -> None:
        self.routes = routes
        self.hits: Counter[str] = Counter()
        self.tokens: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.hits[path] += 1
        self.tokens.append(request.headers.get("Authorization", ""))
        if path not in self.routes:
            return httpx.Response(404, json={"error": "Not found"})
        body = self.routes[path]
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)


def _api(backend: FakeBackend, session: InMemorySessionProvider) -> CachedApi:
    client = ApiClient("http://backend.test", transport=httpx.MockTransport(backend))
    return CachedApi(client, RequestCache(session))


@pytest.mark.unit
class TestParseRows:
    def test_invalid_rows_dropped(self) -> None:
        rows = parse_rows(CompanyUser, _USERS, "test")
        assert [r.id for r in rows] == ["u-1", "inv-2"]

    def test_all_valid(self) -> None:
        rows = parse_rows(Tenant, [{"id": "a", "name": "A"}], "test")
        assert rows == [Tenant(id="a", name="A")]


@pytest.mark.unit
class TestCachedApiCompanyUsers:
    @pytest.mark.asyncio
    async def test_rows_validated_individually(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend({"/api/companies/co1/users/mini": _USERS})
        api = _api(backend, session)

        users = await api.fetch_company_users("co1")

        assert [u.email for u in users] == ["ada@example.com", "bob@example.com"]
        assert users[0].full_name == "Ada"
        assert users[0].last_sign_in_at is not None
        assert users[1].status == MemberStatus.PENDING
        assert backend.tokens == ["Bearer tok-1"]

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend({"/api/companies/co1/users/mini": _USERS})
        api = _api(backend, session)

        await api.fetch_company_users("co1")
        await api.fetch_company_users("co1")
        assert backend.hits["/api/companies/co1/users/mini"] == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend({"/api/companies/co1/users/mini": _USERS})
        api = _api(backend, session)

        await api.fetch_company_users("co1")
        api.invalidate_company_users("co1")
        await api.fetch_company_users("co1")
        assert backend.hits["/api/companies/co1/users/mini"] == 2

    @pytest.mark.asyncio
    async def test_wrong_shape_is_validation_failure(
        self, session: InMemorySessionProvider
    ) -> None:
        backend = FakeBackend({"/api/companies/co1/users/mini": {"users": "nope"}})
        api = _api(backend, session)
        with pytest.raises(ValidationFailure):
            await api.fetch_company_users("co1")

    @pytest.mark.asyncio
    async def test_http_error_propagates(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend(
            {"/api/companies/co1/users/mini": httpx.Response(403, json={"error": "No access"})}
        )
        api = _api(backend, session)
        with pytest.raises(NetworkFailure) as exc_info:
            await api.fetch_company_users("co1")
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_unauthenticated_never_hits_backend(self, signed_out) -> None:
        backend = FakeBackend({"/api/companies/co1/users/mini": _USERS})
        api = _api(backend, signed_out)
        with pytest.raises(Unauthenticated):
            await api.fetch_company_users("co1")
        assert sum(backend.hits.values()) == 0


@pytest.mark.unit
class TestCachedApiResources:
    @pytest.mark.asyncio
    async def test_fetch_company(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend(
            {"/api/company/co1": {"id": "co1", "name": "Acme", "plan": "pro", "userRole": "owner"}}
        )
        api = _api(backend, session)

        details = await api.fetch_company("co1")
        assert details.user_role == "owner"
        assert details.as_tenant() == Tenant(id="co1", name="Acme")

    @pytest.mark.asyncio
    async def test_fetch_company_invalid_payload(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend({"/api/company/co1": {"name": "No id"}})
        api = _api(backend, session)
        with pytest.raises(ValidationFailure):
            await api.fetch_company("co1")

    @pytest.mark.asyncio
    async def test_invalidate_company_is_exact(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend(
            {
                "/api/company/co1": {"id": "co1", "name": "One"},
                "/api/company/co10": {"id": "co10", "name": "Ten"},
            }
        )
        api = _api(backend, session)
        await api.fetch_company("co1")
        await api.fetch_company("co10")

        api.invalidate_company("co1")
        await api.fetch_company("co1")
        await api.fetch_company("co10")
        assert backend.hits["/api/company/co1"] == 2
        assert backend.hits["/api/company/co10"] == 1

    @pytest.mark.asyncio
    async def test_fetch_companies_unwraps_membership_rows(
        self, session: InMemorySessionProvider
    ) -> None:
        backend = FakeBackend(
            {
                "/api/user/companies": {
                    "success": True,
                    "data": [
                        {"company": {"id": "a", "name": "Acme", "logo_url": None}},
                        {"company": None},
                        {"id": "b", "name": "Beta"},
                    ],
                }
            }
        )
        api = _api(backend, session)
        companies = await api.fetch_companies()
        assert [c.id for c in companies] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_fetch_companies_force_refresh(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend({"/api/user/companies": [{"id": "a", "name": "Acme"}]})
        api = _api(backend, session)
        await api.fetch_companies()
        await api.fetch_companies()
        await api.fetch_companies(force_refresh=True)
        assert backend.hits["/api/user/companies"] == 2

    @pytest.mark.asyncio
    async def test_enveloped_lists(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend(
            {
                "/api/applications/categories": {
                    "success": True,
                    "data": [{"id": "c1", "name": "Sales", "sort_order": 1}],
                },
                "/api/automations": {
                    "success": True,
                    "data": [{"id": "a1", "name": "Sync", "is_active": True, "extra": 1}],
                },
                "/api/notifications": {
                    "success": True,
                    "data": {"notifications": [{"id": "n1", "title": "Hi"}]},
                },
            }
        )
        api = _api(backend, session)

        categories = await api.fetch_categories()
        automations = await api.fetch_automations()
        notifications = await api.fetch_notifications()

        assert categories[0].name == "Sales"
        assert automations[0].name == "Sync"
        assert notifications[0].title == "Hi"

    @pytest.mark.asyncio
    async def test_clear_all(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend({"/api/automations": []})
        api = _api(backend, session)
        await api.fetch_automations()
        api.clear_all()
        await api.fetch_automations()
        assert backend.hits["/api/automations"] == 2

    @pytest.mark.asyncio
    async def test_invalidate_notifications(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend({"/api/notifications": []})
        api = _api(backend, session)
        await api.fetch_notifications()
        api.invalidate_notifications()
        await api.fetch_notifications()
        assert backend.hits["/api/notifications"] == 2


@pytest.mark.unit
class TestCachedApiCompanyAutomations:
    @pytest.mark.asyncio
    async def test_fetch_company_automations(self, session: InMemorySessionProvider) -> None:
        backend = FakeBackend(
            {
                "/api/company/co1/automations": {
                    "success": True,
                    "data": [
                        {
                            "id": "ca-1",
                            "company_id": "co1",
                            "automation_id": "a1",
                            "automation": {"id": "a1", "name": "Sync"},
                        },
                        {"id": "ca-2"},
                    ],
                }
            }
        )
        api = _api(backend, session)

        installed = await api.fetch_company_automations("co1")

        assert [a.id for a in installed] == ["ca-1"]
        assert installed[0].automation is not None
        assert installed[0].automation.name == "Sync"

    @pytest.mark.asyncio
    async def test_tenant_switch_drops_company_automations(
        self, session: InMemorySessionProvider
    ) -> None:
        backend = FakeBackend({"/api/company/co1/automations": [], "/api/automations": []})
        api = _api(backend, session)
        api.cache.set_active_tenant("co1")
        await api.fetch_company_automations("co1")
        await api.fetch_automations()

        api.cache.set_active_tenant("co2")

        assert api.cache.peek("company-automations:co1") is None
        assert api.cache.peek("automations:_") == []
        await api.fetch_company_automations("co1")
        assert backend.hits["/api/company/co1/automations"] == 2

    @pytest.mark.asyncio
    async def test_invalidate_company_automations(
        self, session: InMemorySessionProvider
    ) -> None:
        backend = FakeBackend({"/api/company/co1/automations": []})
        api = _api(backend, session)
        await api.fetch_company_automations("co1")
        api.invalidate_company_automations("co1")
        await api.fetch_company_automations("co1")
        assert backend.hits["/api/company/co1/automations"] == 2
