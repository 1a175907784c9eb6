"""Domain models for the task queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from cam_sync.inventory.models import CloudProvider, CloudResource, SyncError, SyncResult


class TaskType(str, Enum):
    """Task kinds the queue knows how to route."""

    SYNC_ASSETS = "sync_assets"
    DISCOVER_ASSETS = "discover_assets"


class TaskStatus(str, Enum):
    """Task lifecycle states.

    pending -> running -> completed | failed, and pending -> cancelled.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})


@dataclass(slots=True)
class SyncAssetsParams:
    """Sync one account, or every active account of one provider."""

    tenant_id: str
    account_id: str | None = None
    provider: CloudProvider | None = None
    asset_types: tuple[str, ...] = ()
    regions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if (self.account_id is None) == (self.provider is None):
            raise ValueError("sync_assets requires exactly one of account_id or provider")

    def to_payload(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "account_id": self.account_id,
            "provider": self.provider.value if self.provider is not None else None,
            "asset_types": list(self.asset_types),
            "regions": list(self.regions),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SyncAssetsParams:
        provider = payload.get("provider")
        return cls(
            tenant_id=str(payload["tenant_id"]),
            account_id=payload.get("account_id"),
            provider=CloudProvider(provider) if provider else None,
            asset_types=tuple(payload.get("asset_types") or ()),
            regions=tuple(payload.get("regions") or ()),
        )


@dataclass(slots=True)
class DiscoverAssetsParams:
    """Read-only listing of live resources for one account."""

    tenant_id: str
    account_id: str
    region: str | None = None
    asset_types: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "account_id": self.account_id,
            "region": self.region,
            "asset_types": list(self.asset_types),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> DiscoverAssetsParams:
        return cls(
            tenant_id=str(payload["tenant_id"]),
            account_id=str(payload["account_id"]),
            region=payload.get("region"),
            asset_types=tuple(payload.get("asset_types") or ()),
        )


@dataclass(slots=True)
class SyncAssetsResult:
    total_synced: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    accounts_synced: int = 0
    regions_synced: int = 0
    by_asset_type: dict[str, int] = field(default_factory=dict)
    by_region: dict[str, int] = field(default_factory=dict)
    errors: list[SyncError] = field(default_factory=list)
    duration_ms: int = 0

    @classmethod
    def from_sync_result(cls, result: SyncResult) -> SyncAssetsResult:
        return cls(
            total_synced=result.total_synced,
            created=result.created,
            updated=result.updated,
            deleted=result.deleted,
            failed=result.failed,
            accounts_synced=result.accounts_synced,
            regions_synced=result.regions_synced,
            by_asset_type=dict(result.by_asset_type),
            by_region=dict(result.by_region),
            errors=list(result.errors),
            duration_ms=result.duration_ms,
        )

    def summary(self) -> str:
        return (
            f"Synced {self.total_synced} assets "
            f"(created={self.created} updated={self.updated} deleted={self.deleted} "
            f"failed={self.failed})"
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "total_synced": self.total_synced,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "failed": self.failed,
            "accounts_synced": self.accounts_synced,
            "regions_synced": self.regions_synced,
            "by_asset_type": dict(self.by_asset_type),
            "by_region": dict(self.by_region),
            "errors": [error.to_payload() for error in self.errors],
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SyncAssetsResult:
        return cls(
            total_synced=int(payload.get("total_synced", 0)),
            created=int(payload.get("created", 0)),
            updated=int(payload.get("updated", 0)),
            deleted=int(payload.get("deleted", 0)),
            failed=int(payload.get("failed", 0)),
            accounts_synced=int(payload.get("accounts_synced", 0)),
            regions_synced=int(payload.get("regions_synced", 0)),
            by_asset_type={str(k): int(v) for k, v in (payload.get("by_asset_type") or {}).items()},
            by_region={str(k): int(v) for k, v in (payload.get("by_region") or {}).items()},
            errors=[SyncError.from_payload(item) for item in payload.get("errors") or []],
            duration_ms=int(payload.get("duration_ms", 0)),
        )


@dataclass(slots=True)
class DiscoverAssetsResult:
    count: int = 0
    by_asset_type: dict[str, int] = field(default_factory=dict)
    assets: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_resources(cls, resources: list[CloudResource]) -> DiscoverAssetsResult:
        by_asset_type: dict[str, int] = {}
        assets: list[dict[str, Any]] = []
        for resource in resources:
            by_asset_type[resource.asset_type] = by_asset_type.get(resource.asset_type, 0) + 1
            assets.append(
                {
                    "asset_id": resource.asset_id,
                    "asset_name": resource.asset_name,
                    "asset_type": resource.asset_type,
                    "region": resource.region,
                    "attributes": dict(resource.attributes),
                },
            )
        return cls(count=len(assets), by_asset_type=by_asset_type, assets=assets)

    def summary(self) -> str:
        return f"Discovered {self.count} assets"

    def to_payload(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "by_asset_type": dict(self.by_asset_type),
            "assets": list(self.assets),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> DiscoverAssetsResult:
        return cls(
            count=int(payload.get("count", 0)),
            by_asset_type={str(k): int(v) for k, v in (payload.get("by_asset_type") or {}).items()},
            assets=list(payload.get("assets") or []),
        )


TaskParams = SyncAssetsParams | DiscoverAssetsParams
TaskResult = SyncAssetsResult | DiscoverAssetsResult

_PARAMS_TYPES: dict[TaskType, type[SyncAssetsParams] | type[DiscoverAssetsParams]] = {
    TaskType.SYNC_ASSETS: SyncAssetsParams,
    TaskType.DISCOVER_ASSETS: DiscoverAssetsParams,
}
_RESULT_TYPES: dict[TaskType, type[SyncAssetsResult] | type[DiscoverAssetsResult]] = {
    TaskType.SYNC_ASSETS: SyncAssetsResult,
    TaskType.DISCOVER_ASSETS: DiscoverAssetsResult,
}


def parse_params(task_type: TaskType, payload: dict[str, Any]) -> TaskParams:
    return _PARAMS_TYPES[task_type].from_payload(payload)


def parse_result(task_type: TaskType, payload: dict[str, Any]) -> TaskResult:
    return _RESULT_TYPES[task_type].from_payload(payload)


@dataclass(slots=True)
class Task:
    """Unit of asynchronous work.

    ``started_at`` is set only on entering running; ``completed_at`` and
    ``duration_seconds`` only on entering a terminal state.
    """

    task_type: TaskType
    params: TaskParams
    task_id: str = field(default_factory=lambda: str(uuid4()))
    status: TaskStatus = TaskStatus.PENDING
    result: TaskResult | None = None
    error: str | None = None
    progress: int = 0
    message: str | None = None
    created_by: str = ""
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: float | None = None


@dataclass(slots=True)
class TaskFilter:
    task_type: TaskType | None = None
    status: TaskStatus | None = None
    created_by: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    offset: int = 0
    limit: int = 50


@dataclass(slots=True)
class TaskEventView:
    """Task event entry for audit trail."""

    event_id: int
    task_id: str
    event_type: str
    status_from: TaskStatus | None
    status_to: TaskStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TaskDetails:
    task: Task
    events: list[TaskEventView]
