"""Typed, cached queries against the dashboard backend."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from companyscope.cache.request_cache import cache_key
from companyscope.exceptions import ValidationFailure
from companyscope.models.domain import (
    ApplicationCategory,
    Automation,
    CompanyAutomation,
    CompanyDetails,
    CompanyUser,
    Notification,
    Tenant,
)

if TYPE_CHECKING:
    from companyscope.cache.request_cache import RequestCache
    from companyscope.client.http import ApiClient

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

# Resource kinds, used as the first cache key component
COMPANIES = "companies"
COMPANY = "company"
COMPANY_USERS = "company-users"
CATEGORIES = "categories"
AUTOMATIONS = "automations"
COMPANY_AUTOMATIONS = "company-automations"
NOTIFICATIONS = "notifications"


def _unwrap(body: Any, path: str) -> list[Any]:
    """Accept a bare list or a ``{"success": ..., "data": [...]}`` envelope."""
    if isinstance(body, dict) and "data" in body:
        body = body["data"]
        if isinstance(body, dict) and "notifications" in body:
            body = body["notifications"]
    if not isinstance(body, list):
        msg = f"Expected a list of rows from {path}, got {type(body).__name__}"
        raise ValidationFailure(msg)
    return body


def parse_rows(model: type[M], rows: list[Any], source: str) -> list[M]:
    """Validate rows one at a time; invalid rows are dropped and logged."""
    parsed: list[M] = []
    skipped = 0
    for index, row in enumerate(rows):
        try:
            parsed.append(model.model_validate(row))
        except ValidationError as exc:
            skipped += 1
            logger.warning(
                "row_validation_failed",
                source=source,
                model=model.__name__,
                index=index,
                errors=exc.error_count(),
            )
    if skipped:
        logger.warning("rows_skipped", source=source, skipped=skipped, kept=len(parsed))
    return parsed


class CachedApi:
    """Backend resources served through the shared ``RequestCache``.

    Tenant-scoped resources carry the company id in their cache key so a
    tenant switch drops them.
    """

    def __init__(self, client: ApiClient, cache: RequestCache) -> None:
        self._client = client
        self._cache = cache

    @property
    def cache(self) -> RequestCache:
        return self._cache

    async def fetch_companies(self, *, force_refresh: bool = False) -> list[Tenant]:
        """Companies the signed-in user is a member of, in backend order."""
        path = "/api/user/companies"

        async def _load(token: str) -> list[Tenant]:
            rows = _unwrap(await self._client.get_json(path, token), path)
            # Membership rows may nest the company under a "company" key
            flat = [r["company"] if isinstance(r, dict) and "company" in r else r for r in rows]
            return parse_rows(Tenant, [r for r in flat if r], path)

        return await self._cache.get(
            cache_key(COMPANIES), _load, force_refresh=force_refresh
        )

    async def fetch_company(self, company_id: str) -> CompanyDetails:
        path = f"/api/company/{company_id}"

        async def _load(token: str) -> CompanyDetails:
            body = await self._client.get_json(path, token)
            try:
                return CompanyDetails.model_validate(body)
            except ValidationError as exc:
                msg = f"Invalid company payload from {path}: {exc.error_count()} errors"
                raise ValidationFailure(msg) from exc

        return await self._cache.get(cache_key(COMPANY, company_id), _load)

    async def fetch_company_users(self, company_id: str) -> list[CompanyUser]:
        """Active members and pending invitations of a company."""
        path = f"/api/companies/{company_id}/users/mini"

        async def _load(token: str) -> list[CompanyUser]:
            rows = _unwrap(await self._client.get_json(path, token), path)
            return parse_rows(CompanyUser, rows, path)

        return await self._cache.get(cache_key(COMPANY_USERS, company_id), _load)

    async def fetch_categories(self) -> list[ApplicationCategory]:
        return await self._fetch_list(
            CATEGORIES, "/api/applications/categories", ApplicationCategory
        )

    async def fetch_automations(self) -> list[Automation]:
        return await self._fetch_list(AUTOMATIONS, "/api/automations", Automation)

    async def fetch_company_automations(self, company_id: str) -> list[CompanyAutomation]:
        """Automations installed for a company, newest first."""
        path = f"/api/company/{company_id}/automations"

        async def _load(token: str) -> list[CompanyAutomation]:
            rows = _unwrap(await self._client.get_json(path, token), path)
            return parse_rows(CompanyAutomation, rows, path)

        return await self._cache.get(cache_key(COMPANY_AUTOMATIONS, company_id), _load)

    async def fetch_notifications(self) -> list[Notification]:
        return await self._fetch_list(NOTIFICATIONS, "/api/notifications", Notification)

    async def _fetch_list(self, resource: str, path: str, model: type[M]) -> list[M]:
        async def _load(token: str) -> list[M]:
            rows = _unwrap(await self._client.get_json(path, token), path)
            return parse_rows(model, rows, path)

        return await self._cache.get(cache_key(resource), _load)

    def invalidate_company(self, company_id: str) -> None:
        self._cache.discard(cache_key(COMPANY, company_id))

    def invalidate_company_users(self, company_id: str) -> None:
        self._cache.discard(cache_key(COMPANY_USERS, company_id))

    def invalidate_company_automations(self, company_id: str) -> None:
        self._cache.discard(cache_key(COMPANY_AUTOMATIONS, company_id))

    def invalidate_companies(self) -> None:
        self._cache.discard(cache_key(COMPANIES))

    def invalidate_notifications(self) -> None:
        self._cache.discard(cache_key(NOTIFICATIONS))

    def clear_all(self) -> None:
        self._cache.invalidate_all()
