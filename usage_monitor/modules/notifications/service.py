from __future__ import annotations

import logging
from dataclasses import dataclass

from usage_monitor.core.usage.types import UsageSnapshot, UsageSnapshotOk
from usage_monitor.modules.notifications.alerts import (
    NEAR_LIMIT_THRESHOLD_PERCENT,
    decide_near_limit_alerts,
    decide_usage_resets,
)
from usage_monitor.modules.notifications.sinks import Notifier
from usage_monitor.modules.settings.schemas import MarkerKind
from usage_monitor.modules.settings.store import SettingsStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _OrganizationBaseline:
    session_percent: float | None = None
    weekly_percent: float | None = None
    session_period_id: str | None = None
    weekly_period_id: str | None = None


class UsageNotificationService:
    def __init__(
        self,
        store: SettingsStore,
        notifier: Notifier,
        *,
        threshold_percent: float = NEAR_LIMIT_THRESHOLD_PERCENT,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._threshold_percent = threshold_percent
        self._baselines: dict[str, _OrganizationBaseline] = {}

    async def maybe_notify(self, snapshot: UsageSnapshot | None) -> None:
        if not isinstance(snapshot, UsageSnapshotOk):
            return
        org_id = snapshot.organization_id
        baseline = self._baselines.setdefault(org_id, _OrganizationBaseline())

        await self._notify_near_limit(snapshot, baseline)
        await self._notify_resets(snapshot, baseline)

        baseline.session_percent = snapshot.session_percent
        baseline.weekly_percent = snapshot.weekly_percent
        # Last-seen periods advance even when reset alerts are disabled.
        if snapshot.session_resets_at and snapshot.session_resets_at.strip():
            baseline.session_period_id = snapshot.session_resets_at.strip()
        if snapshot.weekly_resets_at and snapshot.weekly_resets_at.strip():
            baseline.weekly_period_id = snapshot.weekly_resets_at.strip()

    async def _notify_near_limit(self, snapshot: UsageSnapshotOk, baseline: _OrganizationBaseline) -> None:
        org_id = snapshot.organization_id
        decision = decide_near_limit_alerts(
            current_session_percent=snapshot.session_percent,
            current_weekly_percent=snapshot.weekly_percent,
            current_session_resets_at=snapshot.session_resets_at,
            current_weekly_resets_at=snapshot.weekly_resets_at,
            previous_session_percent=baseline.session_percent,
            previous_weekly_percent=baseline.weekly_percent,
            last_notified_session_period_id=self._store.get_notified_period_id(MarkerKind.SESSION_NEAR_LIMIT, org_id),
            last_notified_weekly_period_id=self._store.get_notified_period_id(MarkerKind.WEEKLY_NEAR_LIMIT, org_id),
            threshold_percent=self._threshold_percent,
        )

        if decision.session_period_id is not None:
            await self._show(
                "Claude usage: Session near limit",
                f"5-hour usage is {round(snapshot.session_percent)}% (>= {self._threshold_percent:g}%).",
            )
            self._store.set_notified_period_id(MarkerKind.SESSION_NEAR_LIMIT, org_id, decision.session_period_id)

        if decision.weekly_period_id is not None:
            await self._show(
                "Claude usage: Weekly near limit",
                f"Weekly usage is {round(snapshot.weekly_percent)}% (>= {self._threshold_percent:g}%).",
            )
            self._store.set_notified_period_id(MarkerKind.WEEKLY_NEAR_LIMIT, org_id, decision.weekly_period_id)

    async def _notify_resets(self, snapshot: UsageSnapshotOk, baseline: _OrganizationBaseline) -> None:
        if not self._store.get_notify_on_usage_reset():
            return
        org_id = snapshot.organization_id
        decision = decide_usage_resets(
            current_session_resets_at=snapshot.session_resets_at,
            current_weekly_resets_at=snapshot.weekly_resets_at,
            last_seen_session_period_id=baseline.session_period_id,
            last_seen_weekly_period_id=baseline.weekly_period_id,
            last_notified_session_reset_period_id=self._store.get_notified_period_id(MarkerKind.SESSION_RESET, org_id),
            last_notified_weekly_reset_period_id=self._store.get_notified_period_id(MarkerKind.WEEKLY_RESET, org_id),
        )

        if decision.session_reset_period_id is not None:
            await self._show("Claude usage: Session reset", "The 5-hour usage window has reset.")
            self._store.set_notified_period_id(MarkerKind.SESSION_RESET, org_id, decision.session_reset_period_id)

        if decision.weekly_reset_period_id is not None:
            await self._show("Claude usage: Weekly reset", "The weekly usage window has reset.")
            self._store.set_notified_period_id(MarkerKind.WEEKLY_RESET, org_id, decision.weekly_reset_period_id)

    async def _show(self, title: str, body: str) -> None:
        try:
            await self._notifier.show(title, body)
        except Exception:
            logger.warning("notification_failed title=%s", title, exc_info=True)
