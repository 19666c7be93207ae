from __future__ import annotations

import json

import aiohttp
import pytest

from usage_monitor.core.clients.claude_oauth import OAUTH_ORGANIZATION_ID, ClaudeOAuthUsageClient
from usage_monitor.core.usage.types import UsageSnapshotError, UsageSnapshotOk, UsageStatus

pytestmark = pytest.mark.unit


class FakeResponse:
    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeRetryClient:
    def __init__(self, response: FakeResponse | Exception) -> None:
        self._response = response
        self.calls: list[tuple[str, dict[str, str]]] = []

    def get(self, url: str, **kwargs):
        self.calls.append((url, kwargs["headers"]))
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def _client(fake: FakeRetryClient) -> ClaudeOAuthUsageClient:
    return ClaudeOAuthUsageClient(
        base_url="https://api.example",
        beta="oauth-test",
        timeout_seconds=5,
        max_retries=0,
        client=fake,
    )


@pytest.mark.asyncio
async def test_fetch_organizations_returns_single_synthetic_entry():
    organizations = await _client(FakeRetryClient(FakeResponse(200, "{}"))).fetch_organizations("token")

    assert [org.id for org in organizations] == [OAUTH_ORGANIZATION_ID]


@pytest.mark.asyncio
async def test_fetch_usage_snapshot_uses_bearer_token():
    body = json.dumps(
        {
            "five_hour": {"utilization": 55, "resets_at": "2026-01-01T05:00:00.000Z"},
            "seven_day": {"utilization": 12},
            "seven_day_sonnet": {"utilization": 4},
        }
    )
    fake = FakeRetryClient(FakeResponse(200, body))

    snapshot = await _client(fake).fetch_usage_snapshot("sk-ant-oat01-token", OAUTH_ORGANIZATION_ID)

    assert isinstance(snapshot, UsageSnapshotOk)
    assert snapshot.session_percent == 55
    assert snapshot.weekly_percent == 12
    assert [model.name for model in snapshot.models] == ["Sonnet"]
    url, headers = fake.calls[0]
    assert url == "https://api.example/api/oauth/usage"
    assert headers["Authorization"] == "Bearer sk-ant-oat01-token"
    assert headers["anthropic-beta"] == "oauth-test"
    assert "x-api-key" not in headers


@pytest.mark.asyncio
async def test_fetch_usage_snapshot_uses_api_key_header():
    fake = FakeRetryClient(FakeResponse(200, "{}"))

    await _client(fake).fetch_usage_snapshot("sk-ant-api03-key", OAUTH_ORGANIZATION_ID)

    headers = fake.calls[0][1]
    assert headers["x-api-key"] == "sk-ant-api03-key"
    assert "Authorization" not in headers


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "expected"),
    [(401, UsageStatus.UNAUTHORIZED), (429, UsageStatus.RATE_LIMITED), (502, UsageStatus.ERROR)],
)
async def test_fetch_usage_snapshot_http_error(status_code: int, expected: UsageStatus):
    fake = FakeRetryClient(FakeResponse(status_code, '{"error": "nope"}'))

    snapshot = await _client(fake).fetch_usage_snapshot("token", OAUTH_ORGANIZATION_ID)

    assert isinstance(snapshot, UsageSnapshotError)
    assert snapshot.status == expected
    assert snapshot.error_message


@pytest.mark.asyncio
async def test_fetch_usage_snapshot_network_error():
    fake = FakeRetryClient(aiohttp.ClientConnectionError("dns failure"))

    snapshot = await _client(fake).fetch_usage_snapshot("token", OAUTH_ORGANIZATION_ID)

    assert isinstance(snapshot, UsageSnapshotError)
    assert snapshot.status == UsageStatus.ERROR
    assert snapshot.error_message == "Network error while fetching OAuth usage."
