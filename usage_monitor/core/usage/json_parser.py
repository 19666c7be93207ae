from __future__ import annotations

import math
import re
from typing import cast

from usage_monitor.core.usage.types import ModelUsage, UsageSnapshotOk, UsageStatus, clamp_percent

MODEL_BUCKET_PREFIX = "seven_day_"
PREFERRED_MODEL_BUCKETS = ("seven_day_sonnet", "seven_day_opus")

_WORD_SEPARATORS = re.compile(r"[_\s]+")


def parse_utilization_percent(value: object) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        try:
            return clamp_percent(float(value))
        except OverflowError:
            return 100.0 if value > 0 else 0.0
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return 0.0
        try:
            parsed = float(stripped)
        except ValueError:
            return 0.0
        if not math.isfinite(parsed):
            return 0.0
        return clamp_percent(parsed)
    return 0.0


def parse_usage_from_json(
    payload: object,
    organization_id: str,
    last_updated_at: str,
) -> UsageSnapshotOk:
    root = _read_object(payload) or {}

    five_hour = _read_object(root.get("five_hour")) or {}
    seven_day = _read_object(root.get("seven_day")) or {}

    return UsageSnapshotOk(
        organization_id=organization_id,
        session_percent=parse_utilization_percent(five_hour.get("utilization")),
        session_resets_at=_read_string(five_hour.get("resets_at")),
        weekly_percent=parse_utilization_percent(seven_day.get("utilization")),
        weekly_resets_at=_read_string(seven_day.get("resets_at")),
        models=tuple(_read_model_weekly_usage(root)),
        last_updated_at=last_updated_at,
    )


def map_http_status_to_usage_status(status_code: int) -> UsageStatus:
    if status_code in (401, 403):
        return UsageStatus.UNAUTHORIZED
    if status_code == 429:
        return UsageStatus.RATE_LIMITED
    return UsageStatus.ERROR


def model_display_name(bucket_key: str) -> str:
    raw = bucket_key.removeprefix(MODEL_BUCKET_PREFIX)
    words = [word for word in _WORD_SEPARATORS.split(raw) if word]
    return " ".join(word[0].upper() + word[1:] for word in words)


def _read_model_weekly_usage(root: dict[str, object]) -> list[ModelUsage]:
    ordered_keys = [key for key in PREFERRED_MODEL_BUCKETS if key in root]
    ordered_keys.extend(
        key
        for key in root
        if key.startswith(MODEL_BUCKET_PREFIX) and key not in PREFERRED_MODEL_BUCKETS
    )

    models: list[ModelUsage] = []
    seen: set[str] = set()
    for key in ordered_keys:
        if key in seen:
            continue
        bucket = _read_object(root.get(key))
        if bucket is None:
            continue
        seen.add(key)
        models.append(
            ModelUsage(
                name=model_display_name(key),
                percent=parse_utilization_percent(bucket.get("utilization")),
                resets_at=_read_string(bucket.get("resets_at")),
            )
        )
    return models


def _read_object(value: object) -> dict[str, object] | None:
    if not isinstance(value, dict):
        return None
    return cast(dict[str, object], value)


def _read_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None
