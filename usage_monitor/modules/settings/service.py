from __future__ import annotations

import logging
import math
from collections.abc import Mapping

from pydantic import ValidationError

from usage_monitor.core.exceptions import UsageRequestError
from usage_monitor.core.usage.types import UsageStatus
from usage_monitor.core.utils.redact import redact_secrets
from usage_monitor.modules.poll.controller import PollController
from usage_monitor.modules.settings.schemas import (
    MIN_REFRESH_INTERVAL_SECONDS,
    SaveSettingsErrorCode,
    SaveSettingsRequest,
    SaveSettingsResult,
)

logger = logging.getLogger(__name__)


class SettingsService:
    """Applies user settings; a rejected credential leaves stored state untouched."""

    def __init__(self, controller: PollController) -> None:
        self._controller = controller
        self._store = controller.store

    async def save_settings(self, payload: SaveSettingsRequest | Mapping[str, object]) -> SaveSettingsResult:
        try:
            request = (
                payload if isinstance(payload, SaveSettingsRequest) else SaveSettingsRequest.model_validate(payload)
            )
        except ValidationError:
            return SaveSettingsResult.failure(SaveSettingsErrorCode.VALIDATION, "Invalid settings payload.")

        interval = request.refresh_interval_seconds
        if not math.isfinite(interval) or interval < MIN_REFRESH_INTERVAL_SECONDS:
            return SaveSettingsResult.failure(
                SaveSettingsErrorCode.VALIDATION,
                f"Refresh interval must be >= {MIN_REFRESH_INTERVAL_SECONDS} seconds.",
            )

        candidate_key = (request.session_key or "").strip()
        if candidate_key:
            failure = await self._apply_candidate_key(candidate_key, request)
            if failure is not None:
                return failure
        else:
            self._store.set_selected_organization_id(request.selected_organization_id)

        self._store.set_refresh_interval_seconds(int(interval))
        self._store.set_remember_session_key(request.remember_session_key)
        self._store.set_notify_on_usage_reset(request.notify_on_usage_reset)

        await self._controller.refresh_now()
        return SaveSettingsResult.success()

    async def _apply_candidate_key(self, candidate_key: str, request: SaveSettingsRequest) -> SaveSettingsResult | None:
        try:
            organizations = await self._controller.client.fetch_organizations(candidate_key)
        except UsageRequestError as exc:
            logger.warning("Credential validation failed status=%s", exc.status.value)
            if exc.status == UsageStatus.UNAUTHORIZED:
                return SaveSettingsResult.failure(SaveSettingsErrorCode.UNAUTHORIZED, "Unauthorized.")
            if exc.status == UsageStatus.RATE_LIMITED:
                return SaveSettingsResult.failure(SaveSettingsErrorCode.RATE_LIMITED, "Rate limited.")
            return SaveSettingsResult.failure(SaveSettingsErrorCode.NETWORK, redact_secrets(exc.message))
        except Exception as exc:
            logger.warning("Credential validation error", exc_info=True)
            message = redact_secrets(str(exc)) or "Failed to validate session key."
            return SaveSettingsResult.failure(SaveSettingsErrorCode.NETWORK, message)

        self._controller.set_organizations(organizations)
        if not organizations:
            return SaveSettingsResult.failure(
                SaveSettingsErrorCode.VALIDATION,
                "No organizations found for this account.",
            )

        chosen = (request.selected_organization_id or "").strip() or self._store.get_selected_organization_id()
        resolved = chosen if chosen and any(org.id == chosen for org in organizations) else organizations[0].id
        self._store.set_selected_organization_id(resolved)

        credentials = self._controller.credentials
        credentials.set_in_memory(candidate_key)
        if request.remember_session_key:
            await credentials.remember_key(candidate_key)
        return None
