"""Decisions for near-limit and period-reset alerts.

Period identity is the window's reset timestamp string, so an alert fires at most
once per occurrence of a window no matter how often it is polled.

The two rules differ on the first observation: a near-limit alert fires without a
baseline (the monitor may start mid-window), while a reset alert needs a previously
seen period to have reset from.
"""

from __future__ import annotations

from dataclasses import dataclass

NEAR_LIMIT_THRESHOLD_PERCENT = 90.0
UNKNOWN_PERIOD_ID = "unknown"


@dataclass(frozen=True, slots=True)
class NearLimitAlertDecision:
    notify_session: bool
    notify_weekly: bool
    session_period_id: str | None
    weekly_period_id: str | None


@dataclass(frozen=True, slots=True)
class UsageResetDecision:
    notify_session_reset: bool
    notify_weekly_reset: bool
    session_reset_period_id: str | None
    weekly_reset_period_id: str | None


def normalize_period_id(resets_at: str | None) -> str:
    stripped = (resets_at or "").strip()
    return stripped or UNKNOWN_PERIOD_ID


def decide_near_limit_alerts(
    *,
    current_session_percent: float,
    current_weekly_percent: float,
    current_session_resets_at: str | None = None,
    current_weekly_resets_at: str | None = None,
    previous_session_percent: float | None = None,
    previous_weekly_percent: float | None = None,
    last_notified_session_period_id: str | None = None,
    last_notified_weekly_period_id: str | None = None,
    threshold_percent: float = NEAR_LIMIT_THRESHOLD_PERCENT,
) -> NearLimitAlertDecision:
    session_period_id = normalize_period_id(current_session_resets_at)
    weekly_period_id = normalize_period_id(current_weekly_resets_at)

    notify_session = _should_notify_near_limit(
        current_percent=current_session_percent,
        previous_percent=previous_session_percent,
        current_period_id=session_period_id,
        last_notified_period_id=_optional_id(last_notified_session_period_id),
        threshold_percent=threshold_percent,
    )
    notify_weekly = _should_notify_near_limit(
        current_percent=current_weekly_percent,
        previous_percent=previous_weekly_percent,
        current_period_id=weekly_period_id,
        last_notified_period_id=_optional_id(last_notified_weekly_period_id),
        threshold_percent=threshold_percent,
    )

    return NearLimitAlertDecision(
        notify_session=notify_session,
        notify_weekly=notify_weekly,
        session_period_id=session_period_id if notify_session else None,
        weekly_period_id=weekly_period_id if notify_weekly else None,
    )


def decide_usage_resets(
    *,
    current_session_resets_at: str | None = None,
    current_weekly_resets_at: str | None = None,
    last_seen_session_period_id: str | None = None,
    last_seen_weekly_period_id: str | None = None,
    last_notified_session_reset_period_id: str | None = None,
    last_notified_weekly_reset_period_id: str | None = None,
) -> UsageResetDecision:
    session_period_id = normalize_period_id(current_session_resets_at)
    weekly_period_id = normalize_period_id(current_weekly_resets_at)

    notify_session_reset = _should_notify_reset(
        current_period_id=session_period_id,
        last_seen_period_id=_optional_id(last_seen_session_period_id),
        last_notified_period_id=_optional_id(last_notified_session_reset_period_id),
    )
    notify_weekly_reset = _should_notify_reset(
        current_period_id=weekly_period_id,
        last_seen_period_id=_optional_id(last_seen_weekly_period_id),
        last_notified_period_id=_optional_id(last_notified_weekly_reset_period_id),
    )

    return UsageResetDecision(
        notify_session_reset=notify_session_reset,
        notify_weekly_reset=notify_weekly_reset,
        session_reset_period_id=session_period_id if notify_session_reset else None,
        weekly_reset_period_id=weekly_period_id if notify_weekly_reset else None,
    )


def _should_notify_near_limit(
    *,
    current_percent: float,
    previous_percent: float | None,
    current_period_id: str,
    last_notified_period_id: str | None,
    threshold_percent: float,
) -> bool:
    if current_percent < threshold_percent:
        return False
    if last_notified_period_id == current_period_id:
        return False
    if previous_percent is None:
        return True
    return previous_percent < threshold_percent


def _should_notify_reset(
    *,
    current_period_id: str,
    last_seen_period_id: str | None,
    last_notified_period_id: str | None,
) -> bool:
    if current_period_id == UNKNOWN_PERIOD_ID:
        return False
    if last_seen_period_id is None:
        return False
    if current_period_id == last_seen_period_id:
        return False
    return last_notified_period_id != current_period_id


def _optional_id(value: str | None) -> str | None:
    stripped = (value or "").strip()
    return stripped or None
