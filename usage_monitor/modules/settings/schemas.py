from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_REFRESH_INTERVAL_SECONDS = 10
DEFAULT_REFRESH_INTERVAL_SECONDS = 60


class MarkerKind(str, Enum):
    SESSION_NEAR_LIMIT = "session_near_limit"
    WEEKLY_NEAR_LIMIT = "weekly_near_limit"
    SESSION_RESET = "session_reset"
    WEEKLY_RESET = "weekly_reset"


class PersistedSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    refresh_interval_seconds: int = Field(default=DEFAULT_REFRESH_INTERVAL_SECONDS, ge=MIN_REFRESH_INTERVAL_SECONDS)
    selected_organization_id: str | None = None
    remember_session_key: bool = False
    notify_on_usage_reset: bool = False
    session_near_limit_notified: dict[str, str] = Field(default_factory=dict)
    weekly_near_limit_notified: dict[str, str] = Field(default_factory=dict)
    session_reset_notified: dict[str, str] = Field(default_factory=dict)
    weekly_reset_notified: dict[str, str] = Field(default_factory=dict)

    @field_validator("refresh_interval_seconds", mode="before")
    @classmethod
    def _coerce_interval(cls, value: object) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return DEFAULT_REFRESH_INTERVAL_SECONDS
        try:
            seconds = int(float(value))
        except (ValueError, OverflowError):
            return DEFAULT_REFRESH_INTERVAL_SECONDS
        return max(MIN_REFRESH_INTERVAL_SECONDS, seconds)

    @field_validator("selected_organization_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> str | None:
        if not isinstance(value, str):
            return None
        stripped = value.strip()
        return stripped or None

    @field_validator(
        "session_near_limit_notified",
        "weekly_near_limit_notified",
        "session_reset_notified",
        "weekly_reset_notified",
        mode="before",
    )
    @classmethod
    def _read_string_map(cls, value: object) -> dict[str, str]:
        if not isinstance(value, dict):
            return {}
        mapped: dict[str, str] = {}
        for key, entry in value.items():
            if not isinstance(key, str) or not key.strip():
                continue
            if not isinstance(entry, str) or not entry.strip():
                continue
            mapped[key] = entry
        return mapped

    def marker_map(self, kind: MarkerKind) -> dict[str, str]:
        return getattr(self, f"{kind.value}_notified")


class SaveSettingsRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    refresh_interval_seconds: float
    session_key: str | None = None
    selected_organization_id: str | None = None
    remember_session_key: bool = False
    notify_on_usage_reset: bool = False


class SaveSettingsErrorCode(str, Enum):
    VALIDATION = "VALIDATION"
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK = "NETWORK"


class SaveSettingsResult(BaseModel):
    ok: bool
    error_code: SaveSettingsErrorCode | None = None
    error_message: str | None = None

    @classmethod
    def success(cls) -> SaveSettingsResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, code: SaveSettingsErrorCode, message: str) -> SaveSettingsResult:
        return cls(ok=False, error_code=code, error_message=message)
