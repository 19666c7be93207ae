from __future__ import annotations

import asyncio
import logging
import shutil
from typing import Protocol

NOTIFY_TIMEOUT_SECONDS = 5.0
APP_NAME = "Claude Usage Monitor"

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def show(self, title: str, body: str) -> None: ...


class NullNotifier:
    async def show(self, title: str, body: str) -> None:
        return None


class LogNotifier:
    async def show(self, title: str, body: str) -> None:
        logger.info("notification title=%s body=%s", title, body)


class CommandNotifier:
    """Shows desktop notifications through a ``notify-send`` compatible command.

    A missing command or notification daemon is logged and otherwise ignored.
    """

    def __init__(self, command: str = "notify-send", *, timeout_seconds: float = NOTIFY_TIMEOUT_SECONDS) -> None:
        self._command = command
        self._timeout_seconds = timeout_seconds

    def is_available(self) -> bool:
        return shutil.which(self._command) is not None

    async def show(self, title: str, body: str) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                self._command,
                f"--app-name={APP_NAME}",
                title,
                body,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError:
            logger.warning("notification_command_unavailable command=%s", self._command, exc_info=True)
            return

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("notification_command_timeout command=%s", self._command)
            return
        if process.returncode:
            logger.warning(
                "notification_command_failed command=%s return_code=%s stderr=%s",
                self._command,
                process.returncode,
                stderr.decode("utf-8", errors="replace").strip(),
            )


def build_notifier(*, enabled: bool, command: str) -> Notifier:
    if not enabled:
        return NullNotifier()
    notifier = CommandNotifier(command)
    if not notifier.is_available():
        logger.info("notification_command_missing command=%s falling back to log output", command)
        return LogNotifier()
    return notifier
