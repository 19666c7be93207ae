from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from usage_monitor.modules.settings.schemas import (
    DEFAULT_REFRESH_INTERVAL_SECONDS,
    MIN_REFRESH_INTERVAL_SECONDS,
    MarkerKind,
    PersistedSettings,
)

logger = logging.getLogger(__name__)


class SettingsStore(Protocol):
    def get_refresh_interval_seconds(self) -> int: ...

    def set_refresh_interval_seconds(self, seconds: int) -> None: ...

    def get_selected_organization_id(self) -> str | None: ...

    def set_selected_organization_id(self, organization_id: str | None) -> None: ...

    def get_remember_session_key(self) -> bool: ...

    def set_remember_session_key(self, remember: bool) -> None: ...

    def get_notify_on_usage_reset(self) -> bool: ...

    def set_notify_on_usage_reset(self, enabled: bool) -> None: ...

    def get_notified_period_id(self, kind: MarkerKind, organization_id: str) -> str | None: ...

    def set_notified_period_id(self, kind: MarkerKind, organization_id: str, period_id: str) -> None: ...


class _ModelSettingsStore(ABC):
    """Settings store backed by a :class:`PersistedSettings` model.

    Every getter reloads the model and every setter writes it back, so markers
    written by one process are visible after a restart.
    """

    @abstractmethod
    def _load(self) -> PersistedSettings: ...

    @abstractmethod
    def _save(self, settings: PersistedSettings) -> None: ...

    def get_refresh_interval_seconds(self) -> int:
        return self._load().refresh_interval_seconds

    def set_refresh_interval_seconds(self, seconds: int) -> None:
        if seconds < MIN_REFRESH_INTERVAL_SECONDS:
            raise ValueError(f"Refresh interval must be >= {MIN_REFRESH_INTERVAL_SECONDS} seconds")
        settings = self._load()
        settings.refresh_interval_seconds = int(seconds)
        self._save(settings)

    def get_selected_organization_id(self) -> str | None:
        return self._load().selected_organization_id

    def set_selected_organization_id(self, organization_id: str | None) -> None:
        settings = self._load()
        stripped = (organization_id or "").strip()
        settings.selected_organization_id = stripped or None
        self._save(settings)

    def get_remember_session_key(self) -> bool:
        return self._load().remember_session_key

    def set_remember_session_key(self, remember: bool) -> None:
        settings = self._load()
        settings.remember_session_key = remember
        self._save(settings)

    def get_notify_on_usage_reset(self) -> bool:
        return self._load().notify_on_usage_reset

    def set_notify_on_usage_reset(self, enabled: bool) -> None:
        settings = self._load()
        settings.notify_on_usage_reset = enabled
        self._save(settings)

    def get_notified_period_id(self, kind: MarkerKind, organization_id: str) -> str | None:
        if not organization_id.strip():
            return None
        return self._load().marker_map(kind).get(organization_id)

    def set_notified_period_id(self, kind: MarkerKind, organization_id: str, period_id: str) -> None:
        org = organization_id.strip()
        pid = period_id.strip()
        if not org or not pid:
            return
        settings = self._load()
        settings.marker_map(kind)[org] = pid
        self._save(settings)


class InMemorySettingsStore(_ModelSettingsStore):
    def __init__(self, initial: PersistedSettings | None = None) -> None:
        self._settings = (initial or PersistedSettings()).model_copy(deep=True)

    def _load(self) -> PersistedSettings:
        return self._settings.model_copy(deep=True)

    def _save(self, settings: PersistedSettings) -> None:
        self._settings = settings.model_copy(deep=True)


class JsonFileSettingsStore(_ModelSettingsStore):
    def __init__(self, path: Path, *, default_refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS) -> None:
        self._path = path
        self._default_refresh_interval_seconds = default_refresh_interval_seconds

    @property
    def path(self) -> Path:
        return self._path

    def _defaults(self) -> PersistedSettings:
        return PersistedSettings(refresh_interval_seconds=self._default_refresh_interval_seconds)

    def _load(self) -> PersistedSettings:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return self._defaults()
        except OSError:
            logger.warning("settings_file_unreadable path=%s", self._path, exc_info=True)
            return self._defaults()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("settings_file_invalid_json path=%s", self._path)
            return self._defaults()
        if not isinstance(data, dict):
            logger.warning("settings_file_not_an_object path=%s", self._path)
            return self._defaults()

        data.setdefault("refresh_interval_seconds", self._default_refresh_interval_seconds)
        try:
            return PersistedSettings.model_validate(data)
        except ValidationError:
            logger.warning("settings_file_invalid path=%s", self._path, exc_info=True)
            return self._defaults()

    def _save(self, settings: PersistedSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(settings.model_dump_json(indent=2))
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
