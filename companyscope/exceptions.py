"""Exception hierarchy for companyscope."""

from __future__ import annotations


class CompanyScopeError(Exception):
    """Base exception for all companyscope errors."""


class Unauthenticated(CompanyScopeError):
    """Raised when no bearer token is available at fetch time."""


class NetworkFailure(CompanyScopeError):
    """Raised when a backend call fails at the transport or HTTP level."""

    def __init__(
        self, message: str, status_code: int | None = None, code: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class ValidationFailure(CompanyScopeError):
    """Raised when a response body does not have the expected shape."""


class NotFound(CompanyScopeError):
    """Raised when a tenant is not part of the current membership."""


class StorageError(CompanyScopeError):
    """Raised when durable preference storage fails."""


class ConfigError(CompanyScopeError):
    """Raised when configuration is invalid."""
