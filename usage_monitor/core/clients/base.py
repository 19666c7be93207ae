from __future__ import annotations

from typing import Protocol

from usage_monitor.core.usage.types import Organization, UsageSnapshot, UsageSnapshotError, UsageStatus
from usage_monitor.core.utils.time import now_iso


class UsageSourceClient(Protocol):
    async def fetch_organizations(self, credential: str) -> list[Organization]: ...

    async def fetch_usage_snapshot(self, credential: str, organization_id: str) -> UsageSnapshot: ...


def error_snapshot(
    status: UsageStatus,
    message: str | None,
    *,
    organization_id: str | None = None,
    last_updated_at: str | None = None,
) -> UsageSnapshotError:
    return UsageSnapshotError(
        status=status,
        organization_id=organization_id,
        last_updated_at=last_updated_at or now_iso(),
        error_message=message,
    )
