"""Shared test fixtures."""

from __future__ import annotations

import time

import pytest

from companyscope.auth.session import InMemorySessionProvider, Session
from companyscope.cache.request_cache import RequestCache
from companyscope.models.domain import Tenant
from companyscope.tenancy.preferences import InMemoryPreferenceStore


class FakeClock:
    """Monotonic clock stand-in that only moves when told to."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_session(user_id: str = "u1", token: str = "tok-1", ttl: float = 3600) -> Session:
    return Session(user_id=user_id, token=token, expires_at=time.time() + ttl)


@pytest.fixture()
def session() -> InMemorySessionProvider:
    """A provider with user ``u1`` signed in."""
    return InMemorySessionProvider(make_session())


@pytest.fixture()
def signed_out() -> InMemorySessionProvider:
    return InMemorySessionProvider()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(session: InMemorySessionProvider, clock: FakeClock) -> RequestCache:
    return RequestCache(
        session, ttl_seconds=30.0, max_size=100, max_stale_seconds=60.0, clock=clock
    )


@pytest.fixture()
def preferences() -> InMemoryPreferenceStore:
    return InMemoryPreferenceStore()


@pytest.fixture()
def tenants_ab() -> list[Tenant]:
    return [Tenant(id="a", name="Acme"), Tenant(id="b", name="Beta")]
