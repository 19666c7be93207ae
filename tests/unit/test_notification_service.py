from __future__ import annotations

import pytest

from usage_monitor.core.usage.types import UsageSnapshotError, UsageSnapshotOk, UsageStatus
from usage_monitor.modules.notifications.service import UsageNotificationService
from usage_monitor.modules.settings.schemas import MarkerKind, PersistedSettings
from usage_monitor.modules.settings.store import InMemorySettingsStore

pytestmark = pytest.mark.unit

SESSION_PERIOD = "2026-01-01T05:00:00.000Z"
NEXT_SESSION_PERIOD = "2026-01-01T10:00:00.000Z"
WEEKLY_PERIOD = "2026-01-08T00:00:00.000Z"


class RecordingNotifier:
    def __init__(self) -> None:
        self.shown: list[tuple[str, str]] = []

    async def show(self, title: str, body: str) -> None:
        self.shown.append((title, body))


class FailingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    async def show(self, title: str, body: str) -> None:
        self.calls += 1
        raise RuntimeError("notification daemon unavailable")


def _snapshot(
    session_percent: float,
    weekly_percent: float = 0,
    *,
    org_id: str = "org-1",
    session_resets_at: str | None = SESSION_PERIOD,
    weekly_resets_at: str | None = WEEKLY_PERIOD,
) -> UsageSnapshotOk:
    return UsageSnapshotOk(
        organization_id=org_id,
        session_percent=session_percent,
        weekly_percent=weekly_percent,
        session_resets_at=session_resets_at,
        weekly_resets_at=weekly_resets_at,
        last_updated_at="2026-01-01T00:00:00.000Z",
    )


@pytest.mark.asyncio
async def test_near_limit_notifies_once_per_period():
    store = InMemorySettingsStore()
    notifier = RecordingNotifier()
    service = UsageNotificationService(store, notifier)

    await service.maybe_notify(_snapshot(92))
    await service.maybe_notify(_snapshot(95))
    await service.maybe_notify(_snapshot(40))
    await service.maybe_notify(_snapshot(93))

    assert [title for title, _ in notifier.shown] == ["Claude usage: Session near limit"]
    assert "92%" in notifier.shown[0][1]
    assert store.get_notified_period_id(MarkerKind.SESSION_NEAR_LIMIT, "org-1") == SESSION_PERIOD


@pytest.mark.asyncio
async def test_near_limit_marker_survives_service_restart():
    store = InMemorySettingsStore()
    first = UsageNotificationService(store, RecordingNotifier())
    await first.maybe_notify(_snapshot(92))

    notifier = RecordingNotifier()
    restarted = UsageNotificationService(store, notifier)
    await restarted.maybe_notify(_snapshot(96))

    assert notifier.shown == []


@pytest.mark.asyncio
async def test_weekly_near_limit_notification():
    store = InMemorySettingsStore()
    notifier = RecordingNotifier()
    service = UsageNotificationService(store, notifier)

    await service.maybe_notify(_snapshot(10, 91))

    assert [title for title, _ in notifier.shown] == ["Claude usage: Weekly near limit"]
    assert store.get_notified_period_id(MarkerKind.WEEKLY_NEAR_LIMIT, "org-1") == WEEKLY_PERIOD


@pytest.mark.asyncio
async def test_markers_are_scoped_per_organization():
    store = InMemorySettingsStore()
    notifier = RecordingNotifier()
    service = UsageNotificationService(store, notifier)

    await service.maybe_notify(_snapshot(92, org_id="org-1"))
    await service.maybe_notify(_snapshot(92, org_id="org-2"))

    assert len(notifier.shown) == 2


@pytest.mark.asyncio
async def test_reset_notification_requires_opt_in():
    store = InMemorySettingsStore()
    notifier = RecordingNotifier()
    service = UsageNotificationService(store, notifier)

    await service.maybe_notify(_snapshot(10))
    await service.maybe_notify(_snapshot(10, session_resets_at=NEXT_SESSION_PERIOD))

    assert notifier.shown == []
    assert store.get_notified_period_id(MarkerKind.SESSION_RESET, "org-1") is None


@pytest.mark.asyncio
async def test_reset_notification_after_period_changes():
    store = InMemorySettingsStore(PersistedSettings(notify_on_usage_reset=True))
    notifier = RecordingNotifier()
    service = UsageNotificationService(store, notifier)

    await service.maybe_notify(_snapshot(10))
    assert notifier.shown == []

    await service.maybe_notify(_snapshot(1, session_resets_at=NEXT_SESSION_PERIOD))
    await service.maybe_notify(_snapshot(2, session_resets_at=NEXT_SESSION_PERIOD))

    assert [title for title, _ in notifier.shown] == ["Claude usage: Session reset"]
    assert store.get_notified_period_id(MarkerKind.SESSION_RESET, "org-1") == NEXT_SESSION_PERIOD


@pytest.mark.asyncio
async def test_reset_baseline_advances_while_disabled():
    store = InMemorySettingsStore()
    notifier = RecordingNotifier()
    service = UsageNotificationService(store, notifier)

    await service.maybe_notify(_snapshot(10))
    await service.maybe_notify(_snapshot(10, session_resets_at=NEXT_SESSION_PERIOD))
    store.set_notify_on_usage_reset(True)
    await service.maybe_notify(_snapshot(10, session_resets_at=NEXT_SESSION_PERIOD))

    assert notifier.shown == []


@pytest.mark.asyncio
async def test_error_snapshots_are_ignored():
    store = InMemorySettingsStore()
    notifier = RecordingNotifier()
    service = UsageNotificationService(store, notifier)

    await service.maybe_notify(
        UsageSnapshotError(status=UsageStatus.ERROR, last_updated_at="2026-01-01T00:00:00.000Z")
    )
    await service.maybe_notify(None)

    assert notifier.shown == []


@pytest.mark.asyncio
async def test_notifier_failure_is_swallowed_and_marker_recorded():
    store = InMemorySettingsStore()
    notifier = FailingNotifier()
    service = UsageNotificationService(store, notifier)

    await service.maybe_notify(_snapshot(92))

    assert notifier.calls == 1
    assert store.get_notified_period_id(MarkerKind.SESSION_NEAR_LIMIT, "org-1") == SESSION_PERIOD


@pytest.mark.asyncio
async def test_custom_threshold():
    store = InMemorySettingsStore()
    notifier = RecordingNotifier()
    service = UsageNotificationService(store, notifier, threshold_percent=75)

    await service.maybe_notify(_snapshot(80))

    assert len(notifier.shown) == 1
    assert "(>= 75%)" in notifier.shown[0][1]
