from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[3]

DEFAULT_HOME_DIR = Path.home() / ".claude-usage-monitor"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="USAGE_MONITOR_",
        env_file=(BASE_DIR / ".env", BASE_DIR / ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    source: Literal["web", "oauth", "cli"] = "web"
    home_dir: Path = DEFAULT_HOME_DIR
    settings_file: Path | None = None
    session_key_file: Path | None = None
    session_key: str | None = None
    web_base_url: str = "https://claude.ai"
    oauth_base_url: str = "https://api.anthropic.com"
    oauth_beta: str = "oauth-2025-04-20"
    oauth_credentials_file: Path | None = None
    cli_command: str = "claude"
    cli_args: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["/usage"])
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    request_max_retries: int = Field(default=1, ge=0)
    default_refresh_interval_seconds: int = Field(default=60, ge=10)
    near_limit_threshold_percent: float = Field(default=90.0, gt=0, le=100)
    notifications_enabled: bool = True
    notify_command: str = "notify-send"
    log_level: str = "INFO"

    @field_validator("home_dir", "settings_file", "session_key_file", "oauth_credentials_file", mode="before")
    @classmethod
    def _expand_path(cls, value: str | Path | None) -> Path | None:
        if value is None:
            return None
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return None
            return Path(stripped).expanduser()
        raise TypeError("path settings must be a path")

    @field_validator("cli_args", mode="before")
    @classmethod
    def _split_cli_args(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return value.split()
        if isinstance(value, list):
            return [str(entry) for entry in value if str(entry).strip()]
        raise TypeError("cli_args must be a list or whitespace-separated string")

    @field_validator("session_key", mode="before")
    @classmethod
    def _normalize_session_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = str(value).strip()
        return stripped or None

    @model_validator(mode="after")
    def _default_state_paths(self) -> Settings:
        if self.settings_file is None:
            self.settings_file = self.home_dir / "settings.json"
        if self.session_key_file is None:
            self.session_key_file = self.home_dir / "session_key"
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
