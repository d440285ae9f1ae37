"""Thin authenticated JSON client for the dashboard backend."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from companyscope.exceptions import NetworkFailure

logger = structlog.get_logger(__name__)


def _error_details(resp: httpx.Response) -> tuple[str, str | None]:
    """Pull ``error`` and ``code`` out of a failed response body."""
    try:
        body = resp.json()
    except ValueError:
        return (resp.text[:200] or resp.reason_phrase or "Unknown error", None)
    if isinstance(body, dict):
        return (str(body.get("error") or "Unknown error"), body.get("code"))
    return ("Unknown error", None)


class ApiClient:
    """Issues ``GET`` requests with a bearer token and decodes JSON.

    Every transport or HTTP failure surfaces as ``NetworkFailure``; nothing
    is retried here.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url, timeout=timeout, transport=transport
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def get_json(self, path: str, token: str) -> Any:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        try:
            resp = await self._client.get(path, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("api_request_failed", path=path, error=str(exc))
            msg = f"Request to {path} failed: {exc}"
            raise NetworkFailure(msg) from exc

        if resp.is_error:
            error, code = _error_details(resp)
            logger.warning(
                "api_error_response", path=path, status_code=resp.status_code, error=error
            )
            msg = f"GET {path} returned {resp.status_code}: {error}"
            raise NetworkFailure(msg, status_code=resp.status_code, code=code)

        try:
            return resp.json()
        except ValueError as exc:
            msg = f"GET {path} returned a body that is not JSON"
            raise NetworkFailure(msg, status_code=resp.status_code) from exc

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def create_api_client() -> ApiClient:
    """Factory: a client pointed at the configured backend."""
    from companyscope.config.settings import get_settings

    settings = get_settings()
    return ApiClient(settings.api_base_url, timeout=settings.request_timeout_seconds)
