from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from usage_monitor.core.clients.base import error_snapshot
from usage_monitor.core.config.settings import get_settings
from usage_monitor.core.usage.text_parser import parse_cli_usage_output
from usage_monitor.core.usage.types import (
    Organization,
    TextParseErrorKind,
    TextParseFailure,
    UsageSnapshot,
    UsageSnapshotOk,
    UsageStatus,
)
from usage_monitor.core.utils.redact import redact_secrets
from usage_monitor.core.utils.time import now_iso

CLI_ORGANIZATION_ID = "local-cli"

logger = logging.getLogger(__name__)


class ClaudeCliUsageClient:
    """Runs the Claude CLI ``/usage`` command and parses its terminal output.

    The child process authenticates on its own, so the credential argument is ignored.
    """

    def __init__(
        self,
        *,
        command: str | None = None,
        args: Sequence[str] | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        settings = get_settings()
        self._command = (command or settings.cli_command).strip() or "claude"
        self._args = list(args) if args is not None else list(settings.cli_args)
        self._timeout_seconds = timeout_seconds or settings.request_timeout_seconds

    @property
    def command(self) -> str:
        return self._command

    async def fetch_organizations(self, credential: str) -> list[Organization]:
        return [Organization(id=CLI_ORGANIZATION_ID, name="Claude CLI")]

    async def fetch_usage_snapshot(self, credential: str, organization_id: str) -> UsageSnapshot:
        last_updated_at = now_iso()
        try:
            output = await self._run()
        except FileNotFoundError:
            logger.warning("Claude CLI executable not found command=%s", self._command)
            return error_snapshot(
                UsageStatus.ERROR,
                f"Claude CLI not found ({self._command}).",
                organization_id=organization_id,
                last_updated_at=last_updated_at,
            )
        except asyncio.TimeoutError:
            logger.warning("Claude CLI timed out command=%s timeout=%s", self._command, self._timeout_seconds)
            return error_snapshot(
                UsageStatus.ERROR,
                f"Claude CLI did not respond within {self._timeout_seconds:g}s.",
                organization_id=organization_id,
                last_updated_at=last_updated_at,
            )
        except OSError as exc:
            logger.warning("Claude CLI failed to start command=%s error=%s", self._command, exc)
            return error_snapshot(
                UsageStatus.ERROR,
                f"Failed to run Claude CLI: {exc}",
                organization_id=organization_id,
                last_updated_at=last_updated_at,
            )

        result = parse_cli_usage_output(output)
        if isinstance(result, TextParseFailure):
            status = (
                UsageStatus.UNAUTHORIZED
                if result.kind == TextParseErrorKind.UNAUTHORIZED
                else UsageStatus.ERROR
            )
            logger.warning("Claude CLI usage parse failed kind=%s", result.kind.value)
            return error_snapshot(
                status,
                redact_secrets(result.message),
                organization_id=organization_id,
                last_updated_at=last_updated_at,
            )

        parsed = result.data
        return UsageSnapshotOk(
            organization_id=organization_id,
            session_percent=parsed.session_percent,
            session_resets_at=parsed.session_resets_at,
            weekly_percent=parsed.weekly_percent,
            weekly_resets_at=parsed.weekly_resets_at,
            models=parsed.models,
            last_updated_at=last_updated_at,
        )

    async def _run(self) -> str:
        process = await asyncio.create_subprocess_exec(
            self._command,
            *self._args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise
        if process.returncode:
            logger.debug("Claude CLI exited return_code=%s", process.returncode)
        return stdout.decode("utf-8", errors="replace") + stderr.decode("utf-8", errors="replace")
