from __future__ import annotations

import math

import pytest

from usage_monitor.core.usage.types import (
    ModelUsage,
    UsageSnapshotError,
    UsageSnapshotOk,
    UsageStatus,
    clamp_percent,
)

pytestmark = pytest.mark.unit


def test_clamp_percent():
    assert clamp_percent(150) == 100.0
    assert clamp_percent(-10) == 0.0
    assert clamp_percent(math.nan) == 0.0
    assert clamp_percent(55.5) == 55.5


def test_ok_snapshot_clamps_percents():
    snapshot = UsageSnapshotOk(
        organization_id="org-1",
        session_percent=120,
        weekly_percent=-5,
        last_updated_at="2026-01-01T00:00:00.000Z",
        models=[ModelUsage(name="Opus", percent=101)],
    )

    assert snapshot.session_percent == 100.0
    assert snapshot.weekly_percent == 0.0
    assert snapshot.models == (ModelUsage(name="Opus", percent=100.0),)


def test_ok_snapshot_to_dict():
    snapshot = UsageSnapshotOk(
        organization_id="org-1",
        session_percent=8,
        weekly_percent=20,
        last_updated_at="2026-01-01T00:00:00.000Z",
        session_resets_at="2026-01-01T05:00:00.000Z",
        models=(ModelUsage(name="Sonnet", percent=2),),
    )

    assert snapshot.to_dict() == {
        "status": "ok",
        "organization_id": "org-1",
        "session_percent": 8.0,
        "session_resets_at": "2026-01-01T05:00:00.000Z",
        "weekly_percent": 20.0,
        "weekly_resets_at": None,
        "models": [{"name": "Sonnet", "percent": 2.0, "resets_at": None}],
        "last_updated_at": "2026-01-01T00:00:00.000Z",
    }


def test_error_snapshot_rejects_ok_status():
    with pytest.raises(ValueError):
        UsageSnapshotError(status=UsageStatus.OK, last_updated_at="2026-01-01T00:00:00.000Z")


def test_error_snapshot_to_dict():
    snapshot = UsageSnapshotError(
        status=UsageStatus.RATE_LIMITED,
        last_updated_at="2026-01-01T00:00:00.000Z",
        organization_id="org-1",
        error_message="Claude API error (429)",
    )

    assert snapshot.to_dict()["status"] == "rate_limited"
    assert snapshot.to_dict()["error_message"] == "Claude API error (429)"
