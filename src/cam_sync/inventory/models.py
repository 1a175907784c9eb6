"""Domain models for cloud accounts, live resources and stored instances."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CloudProvider(str, Enum):
    """Supported cloud providers."""

    ALIYUN = "aliyun"
    AWS = "aws"
    AZURE = "azure"
    HUAWEI = "huawei"
    TENCENT = "tencent"
    VOLCANO = "volcano"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


@dataclass(slots=True)
class CloudAccount:
    """Cloud account credentials plus its sync policy."""

    account_id: str
    tenant_id: str
    name: str
    provider: CloudProvider
    access_key_id: str = ""
    access_key_secret: str = ""
    default_region: str = ""
    supported_regions: tuple[str, ...] = ()
    supported_asset_types: tuple[str, ...] = ()
    status: AccountStatus = AccountStatus.ACTIVE
    auto_sync: bool = False
    sync_interval_minutes: int = 0
    last_sync_at: datetime | None = None
    asset_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE


@dataclass(slots=True, frozen=True)
class Region:
    region_id: str
    name: str = ""


@dataclass(slots=True)
class CloudResource:
    """Provider-neutral record of one live resource returned by an adapter."""

    asset_id: str
    asset_type: str
    region: str
    asset_name: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Instance:
    """Stored instance identified by (tenant_id, model_uid, asset_id)."""

    tenant_id: str
    model_uid: str
    asset_id: str
    account_id: str
    region: str
    asset_name: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class SyncError:
    """One non-fatal failure recorded during reconciliation."""

    scope: str
    message: str
    account_id: str | None = None
    region: str | None = None
    asset_type: str | None = None
    asset_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "message": self.message,
            "account_id": self.account_id,
            "region": self.region,
            "asset_type": self.asset_type,
            "asset_id": self.asset_id,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SyncError:
        return cls(
            scope=str(payload.get("scope", "")),
            message=str(payload.get("message", "")),
            account_id=payload.get("account_id"),
            region=payload.get("region"),
            asset_type=payload.get("asset_type"),
            asset_id=payload.get("asset_id"),
        )


@dataclass(slots=True)
class SyncResult:
    """Outcome of one reconciliation pass.

    ``merge`` is associative, and commutative up to the order of ``errors``:
    counters and per-key maps add up, errors concatenate, ``start_time`` takes
    the minimum and ``end_time`` the maximum. ``SyncResult()`` is the identity.
    """

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
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_ms: int = 0

    def merge(self, other: SyncResult) -> SyncResult:
        start_time = _pick(self.start_time, other.start_time, min)
        end_time = _pick(self.end_time, other.end_time, max)
        return SyncResult(
            total_synced=self.total_synced + other.total_synced,
            created=self.created + other.created,
            updated=self.updated + other.updated,
            deleted=self.deleted + other.deleted,
            failed=self.failed + other.failed,
            accounts_synced=self.accounts_synced + other.accounts_synced,
            regions_synced=self.regions_synced + other.regions_synced,
            by_asset_type=_add_counts(self.by_asset_type, other.by_asset_type),
            by_region=_add_counts(self.by_region, other.by_region),
            errors=[*self.errors, *other.errors],
            start_time=start_time,
            end_time=end_time,
            duration_ms=_duration_ms(start_time, end_time),
        )

    def record_failure(self, error: SyncError) -> None:
        self.failed += 1
        self.errors.append(error)

    def count_synced(self, *, asset_type: str, region: str, created: bool) -> None:
        self.total_synced += 1
        if created:
            self.created += 1
        else:
            self.updated += 1
        self.by_asset_type[asset_type] = self.by_asset_type.get(asset_type, 0) + 1
        self.by_region[region] = self.by_region.get(region, 0) + 1

    def finish(self, end_time: datetime) -> SyncResult:
        self.end_time = end_time
        self.duration_ms = _duration_ms(self.start_time, end_time)
        return self


def merge_results(results: list[SyncResult]) -> SyncResult:
    merged = SyncResult()
    for result in results:
        merged = merged.merge(result)
    return merged


def _pick(left: datetime | None, right: datetime | None, choose: Any) -> datetime | None:
    if left is None:
        return right
    if right is None:
        return left
    return choose(left, right)


def _add_counts(left: dict[str, int], right: dict[str, int]) -> dict[str, int]:
    combined = dict(left)
    for key, value in right.items():
        combined[key] = combined.get(key, 0) + value
    return combined


def _duration_ms(start_time: datetime | None, end_time: datetime | None) -> int:
    if start_time is None or end_time is None:
        return 0
    return max(0, int((end_time - start_time).total_seconds() * 1000))
