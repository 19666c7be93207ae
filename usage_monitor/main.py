from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from usage_monitor.core.clients.factory import UsageSource, build_usage_source
from usage_monitor.core.clients.http import close_http_client, init_http_client
from usage_monitor.core.config.settings import Settings, get_settings
from usage_monitor.modules.notifications.service import UsageNotificationService
from usage_monitor.modules.notifications.sinks import Notifier, build_notifier
from usage_monitor.modules.poll.controller import PollController
from usage_monitor.modules.settings.service import SettingsService
from usage_monitor.modules.settings.store import JsonFileSettingsStore, SettingsStore


@dataclass(slots=True)
class UsageMonitor:
    settings: Settings
    source: UsageSource
    store: SettingsStore
    controller: PollController
    settings_service: SettingsService


def create_monitor(
    settings: Settings | None = None,
    *,
    store: SettingsStore | None = None,
    notifier: Notifier | None = None,
) -> UsageMonitor:
    settings = settings or get_settings()
    if store is None:
        assert settings.settings_file is not None
        store = JsonFileSettingsStore(
            settings.settings_file,
            default_refresh_interval_seconds=settings.default_refresh_interval_seconds,
        )
    if notifier is None:
        notifier = build_notifier(enabled=settings.notifications_enabled, command=settings.notify_command)

    source = build_usage_source(settings)
    notifications = UsageNotificationService(
        store,
        notifier,
        threshold_percent=settings.near_limit_threshold_percent,
    )
    controller = PollController(
        client=source.client,
        credentials=source.credentials,
        store=store,
        notifications=notifications,
    )
    return UsageMonitor(
        settings=settings,
        source=source,
        store=store,
        controller=controller,
        settings_service=SettingsService(controller),
    )


@asynccontextmanager
async def lifespan(monitor: UsageMonitor) -> AsyncIterator[UsageMonitor]:
    await init_http_client()
    try:
        yield monitor
    finally:
        monitor.controller.stop()
        await monitor.controller.wait_idle()
        await close_http_client()
