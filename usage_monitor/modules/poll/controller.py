from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeAlias

from usage_monitor.core.auth.credentials import CredentialProvider
from usage_monitor.core.clients.base import UsageSourceClient, error_snapshot
from usage_monitor.core.exceptions import UsageRequestError
from usage_monitor.core.usage.types import Organization, UsageSnapshot, UsageStatus
from usage_monitor.core.utils.redact import redact_secrets
from usage_monitor.modules.notifications.service import UsageNotificationService
from usage_monitor.modules.poll.policy import compute_next_delay, should_pause
from usage_monitor.modules.settings.store import SettingsStore

logger = logging.getLogger(__name__)

SnapshotListener: TypeAlias = Callable[[UsageSnapshot | None], None]


@dataclass(slots=True)
class PollState:
    running: bool = False
    current_fetch_in_flight: bool = False
    pending_immediate_request: bool = False
    last_snapshot: UsageSnapshot | None = None
    scheduled_timer: asyncio.TimerHandle | None = None
    organizations: list[Organization] = field(default_factory=list)
    credential_generation: int = 0


@dataclass(frozen=True, slots=True)
class ControllerState:
    running: bool
    fetching: bool
    pending_immediate: bool
    refresh_interval_seconds: int
    organizations: tuple[Organization, ...]
    selected_organization_id: str | None
    notify_on_usage_reset: bool
    latest_snapshot: UsageSnapshot | None
    next_refresh_in_seconds: float | None


class PollController:
    """Drives fetch -> notify -> publish cycles for one usage source.

    At most one cycle runs at a time. ``refresh_now`` during a cycle only marks a
    follow-up run, and repeated requests collapse into that single follow-up.
    Must be used from within a running event loop.
    """

    def __init__(
        self,
        *,
        client: UsageSourceClient,
        credentials: CredentialProvider,
        store: SettingsStore,
        notifications: UsageNotificationService,
        rng: random.Random | None = None,
    ) -> None:
        self._client = client
        self._credentials = credentials
        self._store = store
        self._notifications = notifications
        self._rng = rng
        self._state = PollState()
        self._cycle_task: asyncio.Task[None] | None = None
        self._listeners: dict[object, SnapshotListener] = {}

    @property
    def credentials(self) -> CredentialProvider:
        return self._credentials

    @property
    def client(self) -> UsageSourceClient:
        return self._client

    @property
    def store(self) -> SettingsStore:
        return self._store

    def on_snapshot_updated(self, listener: SnapshotListener) -> Callable[[], None]:
        token = object()
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def start(self) -> None:
        if self._state.running:
            return
        self._state.running = True
        logger.info("Poll controller started")
        self._schedule_next(0)

    def stop(self) -> None:
        if self._state.running:
            logger.info("Poll controller stopped")
        self._state.running = False
        self._state.pending_immediate_request = False
        self._cancel_timer()

    async def refresh_now(self) -> UsageSnapshot | None:
        if not self._state.running:
            self._state.running = True
            logger.info("Poll controller started by refresh request")

        if self._state.current_fetch_in_flight:
            self._state.pending_immediate_request = True
            return self._state.last_snapshot

        self._state.current_fetch_in_flight = True
        await self._run_claimed_cycle()
        return self._state.last_snapshot

    async def wait_idle(self) -> None:
        task = self._cycle_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def forget_key(self) -> bool:
        # Results of a fetch started with the forgotten key are discarded.
        self._state.credential_generation += 1
        removed = await self._credentials.forget_key()
        self._state.organizations = []
        self._update_snapshot(self._credentials.build_missing_key_snapshot())
        self.stop()
        return removed

    def set_organizations(self, organizations: list[Organization]) -> None:
        self._state.organizations = list(organizations)

    def get_state(self) -> ControllerState:
        timer = self._state.scheduled_timer
        next_refresh_in: float | None = None
        if timer is not None and not timer.cancelled():
            next_refresh_in = max(0.0, timer.when() - asyncio.get_running_loop().time())
        return ControllerState(
            running=self._state.running,
            fetching=self._state.current_fetch_in_flight,
            pending_immediate=self._state.pending_immediate_request,
            refresh_interval_seconds=self._store.get_refresh_interval_seconds(),
            organizations=tuple(self._state.organizations),
            selected_organization_id=self._store.get_selected_organization_id(),
            notify_on_usage_reset=self._store.get_notify_on_usage_reset(),
            latest_snapshot=self._state.last_snapshot,
            next_refresh_in_seconds=next_refresh_in,
        )

    def _schedule_next(self, delay_seconds: float) -> None:
        if not self._state.running:
            return
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._state.scheduled_timer = loop.call_later(delay_seconds, self._on_timer)
        logger.debug("Next usage refresh scheduled delay_seconds=%.1f", delay_seconds)

    def _cancel_timer(self) -> None:
        timer = self._state.scheduled_timer
        self._state.scheduled_timer = None
        if timer is not None:
            timer.cancel()

    def _on_timer(self) -> None:
        self._state.scheduled_timer = None
        if not self._state.running or self._state.current_fetch_in_flight:
            return
        # Claimed before the task starts so refresh_now() sees the cycle as in flight.
        self._state.current_fetch_in_flight = True
        self._cycle_task = asyncio.create_task(self._run_claimed_cycle())

    async def _run_claimed_cycle(self) -> None:
        """Run one cycle. The caller has already set ``current_fetch_in_flight``."""
        try:
            if not self._state.running:
                return
            self._cancel_timer()
            await self._refresh_all()
        finally:
            self._state.current_fetch_in_flight = False

        if not self._state.running:
            return

        latest = self._state.last_snapshot
        if should_pause(latest):
            logger.warning(
                "Polling paused status=%s; restart after resolving credentials",
                latest.status.value if latest else None,
            )
            self.stop()
            return

        if self._state.pending_immediate_request:
            self._state.pending_immediate_request = False
            self._schedule_next(0)
            return

        self._schedule_next(
            compute_next_delay(self._store.get_refresh_interval_seconds(), latest, self._rng)
        )

    async def _refresh_all(self) -> None:
        generation = self._state.credential_generation
        try:
            snapshot = await self._fetch_cycle(generation)
        except Exception as exc:
            logger.exception("Usage refresh cycle failed")
            snapshot = error_snapshot(
                UsageStatus.ERROR, redact_secrets(str(exc)) or "Unexpected error while refreshing usage."
            )

        if generation != self._state.credential_generation:
            logger.info(
                "Discarding usage result fetched with a forgotten credential status=%s",
                snapshot.status.value,
            )
            return
        await self._notify(snapshot)
        self._update_snapshot(snapshot)

    async def _fetch_cycle(self, generation: int) -> UsageSnapshot:
        credential = await self._credentials.get_current_key()
        if not credential:
            return self._credentials.build_missing_key_snapshot()

        try:
            organization_id = await self._resolve_organization_id(credential, generation)
        except UsageRequestError as exc:
            logger.warning(
                "Organization fetch failed status=%s http_status=%s message=%s",
                exc.status.value,
                exc.http_status,
                exc.message,
            )
            return error_snapshot(UsageStatus.ERROR, "Failed to fetch organizations.")

        if organization_id is None:
            return error_snapshot(UsageStatus.ERROR, "No organizations found for this account.")

        snapshot = await self._client.fetch_usage_snapshot(credential, organization_id)
        if snapshot.status != UsageStatus.OK:
            logger.info(
                "Usage snapshot not ok org_id=%s status=%s",
                organization_id,
                snapshot.status.value,
            )
        return snapshot

    async def _resolve_organization_id(self, credential: str, generation: int) -> str | None:
        organizations = await self._client.fetch_organizations(credential)
        if generation == self._state.credential_generation:
            self._state.organizations = list(organizations)
        stored = self._store.get_selected_organization_id()
        if stored and any(org.id == stored for org in organizations):
            return stored
        if not organizations:
            return None
        first = organizations[0].id
        self._store.set_selected_organization_id(first)
        return first

    async def _notify(self, snapshot: UsageSnapshot) -> None:
        try:
            await self._notifications.maybe_notify(snapshot)
        except Exception:
            logger.exception("Usage notification handling failed")

    def _update_snapshot(self, snapshot: UsageSnapshot | None) -> None:
        self._state.last_snapshot = snapshot
        for listener in list(self._listeners.values()):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed")
