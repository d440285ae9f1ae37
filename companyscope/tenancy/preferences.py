"""Per-user storage of the last selected company."""

from __future__ import annotations

import json
import os
import pathlib  # noqa: TC003 - used at runtime for Path operations
import tempfile
from abc import ABC, abstractmethod

import structlog

from companyscope.exceptions import StorageError

logger = structlog.get_logger(__name__)


class PreferenceStore(ABC):
    """Maps a user id to the id of the tenant that user last switched to."""

    @abstractmethod
    def get(self, user_id: str) -> str | None:
        """Return the stored tenant id for ``user_id``, or None."""

    @abstractmethod
    def set(self, user_id: str, tenant_id: str) -> None:
        """Overwrite the stored tenant id for ``user_id``."""

    @abstractmethod
    def clear(self, user_id: str) -> None:
        """Forget the stored tenant id for ``user_id``."""


class InMemoryPreferenceStore(PreferenceStore):
    """Non-durable store for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._prefs: dict[str, str] = {}

    def get(self, user_id: str) -> str | None:
        return self._prefs.get(user_id)

    def set(self, user_id: str, tenant_id: str) -> None:
        self._prefs[user_id] = tenant_id

    def clear(self, user_id: str) -> None:
        self._prefs.pop(user_id, None)


class JsonFilePreferenceStore(PreferenceStore):
    """Preferences persisted to a single JSON file so they survive restarts.

    The file holds ``{"<user_id>": {"last_tenant_id": "<tenant_id>"}}``.
    Writes go to a temp file in the same directory and are moved into place,
    so a crash mid-write never leaves a truncated file behind.
    """

    def __init__(self, path: pathlib.Path) -> None:
        self._path = path.expanduser().resolve()

    @property
    def path(self) -> pathlib.Path:
        return self._path

    def get(self, user_id: str) -> str | None:
        entry = self._load().get(user_id)
        if not isinstance(entry, dict):
            return None
        tenant_id = entry.get("last_tenant_id")
        return tenant_id if isinstance(tenant_id, str) and tenant_id else None

    def set(self, user_id: str, tenant_id: str) -> None:
        data = self._load()
        data[user_id] = {"last_tenant_id": tenant_id}
        self._write(data)
        logger.debug("preference_saved", user_id=user_id, tenant_id=tenant_id)

    def clear(self, user_id: str) -> None:
        data = self._load()
        if data.pop(user_id, None) is not None:
            self._write(data)
            logger.debug("preference_cleared", user_id=user_id)

    def _load(self) -> dict[str, object]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("preferences_unreadable", path=str(self._path), error=str(exc))
            return {}
        if not isinstance(data, dict):
            logger.warning("preferences_unreadable", path=str(self._path), error="not an object")
            return {}
        return data

    def _write(self, data: dict[str, object]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, sort_keys=True)
                os.replace(tmp_name, self._path)
            except BaseException:
                pathlib.Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            msg = f"Failed to write preferences to {self._path}: {exc}"
            raise StorageError(msg) from exc


def create_preference_store() -> PreferenceStore:
    """Factory: a file-backed store at the configured path."""
    from companyscope.config.settings import get_settings

    settings = get_settings()
    return JsonFilePreferenceStore(pathlib.Path(settings.preferences_path))
