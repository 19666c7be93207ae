from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys

from usage_monitor.core.config.settings import Settings, get_settings
from usage_monitor.core.usage.types import UsageSnapshot, UsageSnapshotOk, UsageStatus
from usage_monitor.main import UsageMonitor, create_monitor, lifespan
from usage_monitor.modules.settings.schemas import MIN_REFRESH_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="usage-monitor", description="Monitor Claude usage limits.")
    parser.add_argument("--source", choices=("web", "oauth", "cli"), default=None)
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help=f"Refresh interval in seconds (>= {MIN_REFRESH_INTERVAL_SECONDS}); stored for later runs.",
    )

    subcommands = parser.add_subparsers(dest="command")
    subcommands.add_parser("watch", help="Poll until interrupted and print every snapshot.")
    subcommands.add_parser("once", help="Fetch a single snapshot and print it as JSON.")

    set_key = subcommands.add_parser("set-key", help="Validate and use a claude.ai session key.")
    set_key.add_argument("key")
    set_key.add_argument("--remember", action="store_true", help="Persist the key for later runs.")
    set_key.add_argument("--organization", default=None)
    set_key.add_argument("--notify-on-reset", action=argparse.BooleanOptionalAction, default=None)

    subcommands.add_parser("forget-key", help="Remove the remembered session key.")

    args = parser.parse_args(argv)
    if args.interval is not None and args.interval < MIN_REFRESH_INTERVAL_SECONDS:
        parser.error(f"--interval must be >= {MIN_REFRESH_INTERVAL_SECONDS}")
    return args


def format_snapshot(snapshot: UsageSnapshot | None) -> str:
    if snapshot is None:
        return "no data"
    if not isinstance(snapshot, UsageSnapshotOk):
        return f"{snapshot.status.value}: {snapshot.error_message or 'no details'}"

    parts = [
        f"session {snapshot.session_percent:.0f}%{_resets_suffix(snapshot.session_resets_at)}",
        f"weekly {snapshot.weekly_percent:.0f}%{_resets_suffix(snapshot.weekly_resets_at)}",
    ]
    parts.extend(f"{model.name} {model.percent:.0f}%" for model in snapshot.models)
    return " | ".join(parts)


def _resets_suffix(resets_at: str | None) -> str:
    return f" (resets {resets_at})" if resets_at else ""


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )


async def _watch(monitor: UsageMonitor) -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    def _print(snapshot: UsageSnapshot | None) -> None:
        print(format_snapshot(snapshot), flush=True)

    def _on_snapshot(snapshot: UsageSnapshot | None) -> None:
        _print(snapshot)
        if snapshot is not None and snapshot.status in (UsageStatus.UNAUTHORIZED, UsageStatus.MISSING_KEY):
            stop_event.set()

    unsubscribe = monitor.controller.on_snapshot_updated(_on_snapshot)
    try:
        monitor.controller.start()
        await stop_event.wait()
    finally:
        unsubscribe()

    latest = monitor.controller.get_state().latest_snapshot
    return 0 if latest is None or latest.status == UsageStatus.OK else 1


async def _once(monitor: UsageMonitor) -> int:
    snapshot = await monitor.controller.refresh_now()
    monitor.controller.stop()
    print(json.dumps(snapshot.to_dict() if snapshot is not None else None, indent=2))
    return 0 if snapshot is not None and snapshot.status == UsageStatus.OK else 1


async def _set_key(monitor: UsageMonitor, args: argparse.Namespace) -> int:
    store = monitor.store
    notify_on_reset = args.notify_on_reset
    result = await monitor.settings_service.save_settings(
        {
            "refresh_interval_seconds": store.get_refresh_interval_seconds(),
            "session_key": args.key,
            "selected_organization_id": args.organization,
            "remember_session_key": args.remember,
            "notify_on_usage_reset": (
                store.get_notify_on_usage_reset() if notify_on_reset is None else notify_on_reset
            ),
        }
    )
    monitor.controller.stop()
    if not result.ok:
        code = result.error_code.value if result.error_code else "ERROR"
        print(f"{code}: {result.error_message}", file=sys.stderr)
        return 1
    print(format_snapshot(monitor.controller.get_state().latest_snapshot))
    return 0


async def _forget_key(monitor: UsageMonitor) -> int:
    removed = await monitor.controller.forget_key()
    print("Session key removed." if removed else "No session key was stored.")
    return 0


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    monitor = create_monitor(settings)
    if args.interval is not None:
        monitor.store.set_refresh_interval_seconds(args.interval)

    async with lifespan(monitor):
        command = args.command or "watch"
        if command == "once":
            return await _once(monitor)
        if command == "set-key":
            return await _set_key(monitor, args)
        if command == "forget-key":
            return await _forget_key(monitor)
        return await _watch(monitor)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    if args.source is not None:
        settings = settings.model_copy(update={"source": args.source})
    _configure_logging(settings)
    logger.debug("Starting usage monitor source=%s", settings.source)
    return asyncio.run(_run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
