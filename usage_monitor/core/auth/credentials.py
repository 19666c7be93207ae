from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

from usage_monitor.core.clients.base import error_snapshot
from usage_monitor.core.config.settings import Settings, get_settings
from usage_monitor.core.exceptions import CredentialsError
from usage_monitor.core.usage.types import UsageSnapshotError, UsageStatus

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    async def get_current_key(self) -> str | None: ...

    async def remember_key(self, key: str) -> None: ...

    async def forget_key(self) -> bool: ...

    def set_in_memory(self, key: str) -> None: ...

    def build_missing_key_snapshot(self) -> UsageSnapshotError: ...


class SessionKeyProvider:
    """Holds the claude.ai ``sessionKey``.

    Lookup order: the key set in memory, the ``USAGE_MONITOR_SESSION_KEY`` override,
    then the remembered key file.
    """

    def __init__(self, *, key_file: Path | None = None, override: str | None = None) -> None:
        settings = get_settings()
        self._key_file = key_file or settings.session_key_file
        self._override = _normalize_secret(override if override is not None else settings.session_key)
        self._in_memory: str | None = None

    async def get_current_key(self) -> str | None:
        if self._in_memory:
            return self._in_memory
        if self._override:
            return self._override
        return self._read_key_file()

    async def remember_key(self, key: str) -> None:
        secret = _normalize_secret(key)
        if secret is None or self._key_file is None:
            return
        self._key_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._key_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(secret)

    async def forget_key(self) -> bool:
        removed = self._in_memory is not None
        self._in_memory = None
        if self._key_file is not None and self._key_file.exists():
            self._key_file.unlink()
            removed = True
        return removed

    def set_in_memory(self, key: str) -> None:
        self._in_memory = _normalize_secret(key)

    def build_missing_key_snapshot(self) -> UsageSnapshotError:
        return error_snapshot(
            UsageStatus.MISSING_KEY,
            "No Claude session key configured. Paste the sessionKey cookie from claude.ai.",
        )

    def _read_key_file(self) -> str | None:
        if self._key_file is None or not self._key_file.is_file():
            return None
        try:
            return _normalize_secret(self._key_file.read_text(encoding="utf-8"))
        except OSError:
            logger.warning("session_key_file_unreadable path=%s", self._key_file, exc_info=True)
            return None


class CliCredentialsProvider:
    """Reads the OAuth access token that the Claude CLI stores on disk.

    The file belongs to the CLI, so remembering or forgetting a key is not supported.
    """

    def __init__(self, *, credentials_file: Path | None = None) -> None:
        self._candidates = _credential_candidates(get_settings(), credentials_file)

    async def get_current_key(self) -> str | None:
        for path in self._candidates:
            if not path.is_file():
                continue
            try:
                return read_cli_access_token(path)
            except CredentialsError as exc:
                logger.warning("cli_credentials_unusable path=%s error=%s", path, exc.message)
                continue
        return None

    async def remember_key(self, key: str) -> None:
        return None

    async def forget_key(self) -> bool:
        return False

    def set_in_memory(self, key: str) -> None:
        return None

    def build_missing_key_snapshot(self) -> UsageSnapshotError:
        return error_snapshot(
            UsageStatus.MISSING_KEY,
            "Claude credentials not found. Please run `claude` CLI once to authenticate.",
        )


class StaticCredentialProvider:
    """Supplies a fixed placeholder for sources that authenticate themselves."""

    def __init__(self, value: str = "local") -> None:
        self._value = value

    async def get_current_key(self) -> str | None:
        return self._value

    async def remember_key(self, key: str) -> None:
        return None

    async def forget_key(self) -> bool:
        return False

    def set_in_memory(self, key: str) -> None:
        return None

    def build_missing_key_snapshot(self) -> UsageSnapshotError:
        return error_snapshot(UsageStatus.MISSING_KEY, None)


def read_cli_access_token(path: Path) -> str:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CredentialsError(f"Failed to read credentials: {exc}") from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CredentialsError("Credentials file is not valid JSON") from exc

    token = extract_cli_access_token(payload)
    if token is None:
        raise CredentialsError(f"No valid credentials found in {path}")
    return token


def extract_cli_access_token(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    oauth = payload.get("claudeAiOauth")
    if isinstance(oauth, dict):
        token = _normalize_secret(_read_string(oauth, "accessToken"))
        if token is not None:
            return token
    return _normalize_secret(_read_string(payload, "apiKey"))


def _credential_candidates(settings: Settings, explicit: Path | None) -> list[Path]:
    candidates: list[Path] = []
    for path in (explicit, settings.oauth_credentials_file):
        if path is not None:
            candidates.append(path.expanduser())

    home = Path.home()
    candidates.extend(
        [
            home / ".claude/.credentials.json",
            home / ".claude/credentials.json",
            home / ".config/claude/.credentials.json",
        ]
    )
    return candidates


def _read_string(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    return value if isinstance(value, str) else None


def _normalize_secret(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
