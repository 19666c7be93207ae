from __future__ import annotations

import random

from usage_monitor.core.usage.types import UsageSnapshot, UsageStatus

MIN_REFRESH_INTERVAL_SECONDS = 10
DEFAULT_JITTER_FRACTION = 0.1
RATE_LIMITED_BASE_SECONDS = 5 * 60
RATE_LIMITED_JITTER_FRACTION = 0.2

_PAUSING_STATUSES = {UsageStatus.UNAUTHORIZED, UsageStatus.MISSING_KEY}


def with_jitter(base_seconds: float, fraction: float, rng: random.Random | None = None) -> float:
    source = rng or random
    delta = (source.random() * 2 - 1) * base_seconds * fraction
    return max(0.0, base_seconds + delta)


def compute_next_delay(
    refresh_interval_seconds: float,
    latest: UsageSnapshot | None,
    rng: random.Random | None = None,
) -> float:
    if latest is not None and latest.status == UsageStatus.RATE_LIMITED:
        return with_jitter(RATE_LIMITED_BASE_SECONDS, RATE_LIMITED_JITTER_FRACTION, rng)
    base_seconds = max(MIN_REFRESH_INTERVAL_SECONDS, refresh_interval_seconds)
    return with_jitter(base_seconds, DEFAULT_JITTER_FRACTION, rng)


def should_pause(latest: UsageSnapshot | None) -> bool:
    return latest is not None and latest.status in _PAUSING_STATUSES
