from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, TypeAlias


class UsageStatus(str, Enum):
    OK = "ok"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"
    MISSING_KEY = "missing_key"


def clamp_percent(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(100.0, float(value)))


@dataclass(frozen=True, slots=True)
class ModelUsage:
    name: str
    percent: float
    resets_at: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "percent", clamp_percent(self.percent))

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "percent": self.percent, "resets_at": self.resets_at}


@dataclass(frozen=True, slots=True)
class UsageSnapshotOk:
    organization_id: str
    session_percent: float
    weekly_percent: float
    last_updated_at: str
    session_resets_at: str | None = None
    weekly_resets_at: str | None = None
    models: tuple[ModelUsage, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "session_percent", clamp_percent(self.session_percent))
        object.__setattr__(self, "weekly_percent", clamp_percent(self.weekly_percent))
        object.__setattr__(self, "models", tuple(self.models))

    @property
    def status(self) -> Literal[UsageStatus.OK]:
        return UsageStatus.OK

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "organization_id": self.organization_id,
            "session_percent": self.session_percent,
            "session_resets_at": self.session_resets_at,
            "weekly_percent": self.weekly_percent,
            "weekly_resets_at": self.weekly_resets_at,
            "models": [model.to_dict() for model in self.models],
            "last_updated_at": self.last_updated_at,
        }


@dataclass(frozen=True, slots=True)
class UsageSnapshotError:
    status: UsageStatus
    last_updated_at: str
    organization_id: str | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        if self.status == UsageStatus.OK:
            raise ValueError("error snapshots cannot carry the ok status")

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "organization_id": self.organization_id,
            "last_updated_at": self.last_updated_at,
            "error_message": self.error_message,
        }


UsageSnapshot: TypeAlias = UsageSnapshotOk | UsageSnapshotError


@dataclass(frozen=True, slots=True)
class Organization:
    id: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class ParsedUsage:
    session_percent: float
    weekly_percent: float
    session_resets_at: str | None = None
    weekly_resets_at: str | None = None
    models: tuple[ModelUsage, ...] = ()


class TextParseErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    PARSE_ERROR = "parse_error"


@dataclass(frozen=True, slots=True)
class TextParseSuccess:
    data: ParsedUsage
    ok: Literal[True] = True


@dataclass(frozen=True, slots=True)
class TextParseFailure:
    kind: TextParseErrorKind
    message: str
    ok: Literal[False] = False


TextParseResult: TypeAlias = TextParseSuccess | TextParseFailure
