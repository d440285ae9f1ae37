"""Enums and type aliases for companyscope."""

from enum import StrEnum


class CacheState(StrEnum):
    PENDING = "pending"
    FRESH = "fresh"
    STALE = "stale"


class MemberStatus(StrEnum):
    ACTIVE = "active"
    PENDING = "pending"


class SessionEvent(StrEnum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    TOKEN_REFRESHED = "token_refreshed"
