from __future__ import annotations

import asyncio
import json
import logging

import aiohttp
from aiohttp_retry import RetryClient

from usage_monitor.core.clients.base import error_snapshot
from usage_monitor.core.clients.http import get_http_client, retry_options
from usage_monitor.core.config.settings import get_settings
from usage_monitor.core.usage.json_parser import map_http_status_to_usage_status, parse_usage_from_json
from usage_monitor.core.usage.types import Organization, UsageSnapshot, UsageStatus
from usage_monitor.core.utils.redact import redact_secrets
from usage_monitor.core.utils.time import now_iso

OAUTH_ORGANIZATION_ID = "oauth"
USAGE_PATH = "/api/oauth/usage"
API_KEY_PREFIX = "sk-ant-api"

_STATUS_MESSAGES = {
    UsageStatus.UNAUTHORIZED: "OAuth usage is unauthorized. Re-authenticate (run `claude /login`).",
    UsageStatus.RATE_LIMITED: "OAuth usage is rate limited.",
    UsageStatus.ERROR: "OAuth usage request failed.",
}

logger = logging.getLogger(__name__)


class ClaudeOAuthUsageClient:
    """Reads usage from the Anthropic OAuth usage endpoint with the Claude CLI's access token.

    The endpoint has no organization concept, so a single synthetic organization is reported.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        beta: str | None = None,
        timeout_seconds: float | None = None,
        max_retries: int | None = None,
        client: RetryClient | None = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.oauth_base_url).rstrip("/")
        self._beta = beta or settings.oauth_beta
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.request_timeout_seconds)
        retries = max_retries if max_retries is not None else settings.request_max_retries
        self._retry_options = retry_options(retries + 1)
        self._client = client

    async def fetch_organizations(self, credential: str) -> list[Organization]:
        return [Organization(id=OAUTH_ORGANIZATION_ID, name="Claude account")]

    async def fetch_usage_snapshot(self, credential: str, organization_id: str) -> UsageSnapshot:
        last_updated_at = now_iso()
        client = self._client or get_http_client().retry_client
        try:
            async with client.get(
                f"{self._base_url}{USAGE_PATH}",
                headers=self._headers(credential),
                timeout=self._timeout,
                retry_options=self._retry_options,
            ) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    status = map_http_status_to_usage_status(resp.status)
                    logger.warning(
                        "OAuth usage fetch failed status=%s mapped=%s body=%s",
                        resp.status,
                        status.value,
                        redact_secrets(text)[:300],
                    )
                    return error_snapshot(
                        status,
                        _STATUS_MESSAGES[status],
                        organization_id=organization_id,
                        last_updated_at=last_updated_at,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("OAuth usage fetch error error=%s", redact_secrets(str(exc)))
            return error_snapshot(
                UsageStatus.ERROR,
                "Network error while fetching OAuth usage.",
                organization_id=organization_id,
                last_updated_at=last_updated_at,
            )

        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return error_snapshot(
                UsageStatus.ERROR,
                "Invalid JSON returned by OAuth usage endpoint.",
                organization_id=organization_id,
                last_updated_at=last_updated_at,
            )
        return parse_usage_from_json(payload, organization_id, last_updated_at)

    def _headers(self, credential: str) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "claude-usage-monitor",
        }
        if credential.startswith(API_KEY_PREFIX):
            headers["x-api-key"] = credential
        else:
            headers["Authorization"] = f"Bearer {credential}"
            headers["anthropic-beta"] = self._beta
        return headers
