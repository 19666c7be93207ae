from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, cast
from urllib.parse import quote

import aiohttp
from aiohttp_retry import RetryClient

from usage_monitor.core.clients.base import error_snapshot
from usage_monitor.core.clients.http import get_http_client, retry_options
from usage_monitor.core.config.settings import get_settings
from usage_monitor.core.exceptions import UsageRequestError
from usage_monitor.core.usage.json_parser import map_http_status_to_usage_status, parse_usage_from_json
from usage_monitor.core.usage.types import Organization, UsageSnapshot, UsageStatus
from usage_monitor.core.utils.redact import redact_secrets
from usage_monitor.core.utils.time import now_iso

BODY_PREVIEW_CHARS = 600
_BROWSER_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

logger = logging.getLogger(__name__)


class ClaudeWebUsageClient:
    """Reads usage through the claude.ai web API, authenticated with a ``sessionKey`` cookie."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        max_retries: int | None = None,
        client: RetryClient | None = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.web_base_url).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.request_timeout_seconds)
        retries = max_retries if max_retries is not None else settings.request_max_retries
        self._retry_options = retry_options(retries + 1)
        self._client = client

    async def fetch_organizations(self, credential: str) -> list[Organization]:
        url = f"{self._base_url}/api/organizations"
        try:
            async with self._retry_client().get(
                url,
                headers=_build_headers(credential),
                timeout=self._timeout,
                retry_options=self._retry_options,
            ) as resp:
                if resp.status >= 400:
                    status = map_http_status_to_usage_status(resp.status)
                    body = await _safe_text(resp)
                    logger.debug(
                        "Organizations fetch failed status=%s mapped=%s body=%s",
                        resp.status,
                        status.value,
                        redact_secrets(body)[:BODY_PREVIEW_CHARS],
                    )
                    raise UsageRequestError(
                        f"Failed to fetch organizations ({status.value})",
                        status=status,
                        http_status=resp.status,
                    )
                payload = await _safe_json(resp)
        except UsageRequestError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Organizations fetch error error=%s", redact_secrets(str(exc)))
            raise UsageRequestError(
                f"Failed to fetch organizations: {redact_secrets(str(exc)) or type(exc).__name__}",
                status=UsageStatus.ERROR,
            ) from exc

        return _parse_organizations(payload)

    async def fetch_usage_snapshot(self, credential: str, organization_id: str) -> UsageSnapshot:
        last_updated_at = now_iso()
        url = f"{self._base_url}/api/organizations/{quote(organization_id, safe='')}/usage"
        try:
            async with self._retry_client().get(
                url,
                headers=_build_headers(credential),
                timeout=self._timeout,
                retry_options=self._retry_options,
            ) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    status = map_http_status_to_usage_status(resp.status)
                    logger.warning(
                        "Usage fetch failed org_id=%s status=%s mapped=%s",
                        organization_id,
                        resp.status,
                        status.value,
                    )
                    logger.debug("Usage fetch failed body=%s", redact_secrets(text)[:BODY_PREVIEW_CHARS])
                    return error_snapshot(
                        status,
                        f"Claude API error ({resp.status})",
                        organization_id=organization_id,
                        last_updated_at=last_updated_at,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            message = redact_secrets(str(exc)) or type(exc).__name__
            logger.warning("Usage fetch error org_id=%s error=%s", organization_id, message)
            return error_snapshot(
                UsageStatus.ERROR,
                f"Usage fetch failed: {message}",
                organization_id=organization_id,
                last_updated_at=last_updated_at,
            )

        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Usage fetch invalid payload org_id=%s", organization_id)
            return error_snapshot(
                UsageStatus.ERROR,
                "Invalid JSON returned by the usage endpoint.",
                organization_id=organization_id,
                last_updated_at=last_updated_at,
            )
        if isinstance(payload, dict):
            logger.debug(
                "Usage payload keys org_id=%s keys=%s",
                organization_id,
                sorted(cast(dict[str, Any], payload)),
            )
        return parse_usage_from_json(payload, organization_id, last_updated_at)

    def _retry_client(self) -> RetryClient:
        return self._client or get_http_client().retry_client


def _build_headers(session_key: str) -> dict[str, str]:
    return {
        "Accept": "application/json",
        "Cookie": f"sessionKey={session_key}",
        "User-Agent": _BROWSER_USER_AGENT,
        "Origin": "https://claude.ai",
        "Referer": "https://claude.ai/",
    }


def _parse_organizations(payload: object) -> list[Organization]:
    if not isinstance(payload, list):
        return []
    organizations: list[Organization] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        record = cast(dict[str, object], entry)
        org_id = record.get("uuid")
        if not isinstance(org_id, str) or not org_id.strip():
            continue
        name = record.get("name")
        organizations.append(Organization(id=org_id, name=name if isinstance(name, str) else None))
    return organizations


async def _safe_json(resp: aiohttp.ClientResponse) -> object:
    try:
        return await resp.json(content_type=None)
    except Exception:
        return None


async def _safe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except Exception:
        return ""
