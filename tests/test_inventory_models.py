from __future__ import annotations

from datetime import UTC, datetime

import allure
import pytest

from cam_sync.inventory.asset_types import expand_asset_types, model_uid
from cam_sync.inventory.models import SyncError, SyncResult, merge_results

pytestmark = [
    allure.epic("Asset Reconciliation"),
    allure.feature("Asset Types & Result Aggregation"),
]


@pytest.mark.parametrize(
    ("requested", "expected"),
    [
        ((), ("ecs",)),
        (("ecs",), ("ecs",)),
        (("database",), ("rds", "redis", "mongodb")),
        (("db", "rds"), ("rds", "redis", "mongodb")),
        (("network", "ecs", "net"), ("vpc", "eip", "ecs")),
        (("storage",), ("nas", "oss")),
        (("mw", "es"), ("kafka", "elasticsearch")),
        (("cloud_vm", "ECS ", ""), ("ecs",)),
    ],
)
def test_expand_asset_types(requested: tuple[str, ...], expected: tuple[str, ...]) -> None:
    assert expand_asset_types(requested) == expected


def test_expand_asset_types_uses_given_default() -> None:
    assert expand_asset_types([], default=("vpc",)) == ("vpc",)


def test_model_uid() -> None:
    assert model_uid("aws", "ecs") == "aws_ecs"


def _result(  # noqa: PLR0913
    *,
    created: int,
    updated: int,
    deleted: int,
    failed: int,
    region: str,
    start: int,
    end: int,
) -> SyncResult:
    result = SyncResult(
        start_time=datetime(2026, 10, 18, 9, start, tzinfo=UTC),
        regions_synced=1,
    )
    for _ in range(created):
        result.count_synced(asset_type="ecs", region=region, created=True)
    for _ in range(updated):
        result.count_synced(asset_type="vpc", region=region, created=False)
    result.deleted = deleted
    for _ in range(failed):
        result.record_failure(SyncError(scope="upsert", message="x", region=region))
    return result.finish(datetime(2026, 10, 18, 9, end, tzinfo=UTC))


def _counts(result: SyncResult) -> tuple[object, ...]:
    return (
        result.total_synced,
        result.created,
        result.updated,
        result.deleted,
        result.failed,
        result.regions_synced,
        result.by_asset_type,
        result.by_region,
        len(result.errors),
        result.start_time,
        result.end_time,
        result.duration_ms,
    )


def test_sync_result_merge_is_associative_and_commutative() -> None:
    a = _result(created=1, updated=2, deleted=0, failed=1, region="r1", start=0, end=5)
    b = _result(created=0, updated=1, deleted=3, failed=0, region="r2", start=2, end=9)
    c = _result(created=4, updated=0, deleted=1, failed=2, region="r1", start=1, end=3)

    left = a.merge(b).merge(c)
    right = a.merge(b.merge(c))
    swapped = c.merge(a).merge(b)

    assert _counts(left) == _counts(right) == _counts(swapped)
    assert left.total_synced == 8
    assert left.created == 5
    assert left.updated == 3
    assert left.deleted == 4
    assert left.failed == 3
    assert left.by_region == {"r1": 7, "r2": 1}
    assert left.by_asset_type == {"ecs": 5, "vpc": 3}
    assert left.start_time == datetime(2026, 10, 18, 9, 0, tzinfo=UTC)
    assert left.end_time == datetime(2026, 10, 18, 9, 9, tzinfo=UTC)
    assert left.duration_ms == 9 * 60 * 1000


def test_empty_result_is_merge_identity() -> None:
    a = _result(created=2, updated=1, deleted=1, failed=0, region="r1", start=0, end=1)

    assert _counts(a.merge(SyncResult())) == _counts(a)
    assert _counts(SyncResult().merge(a)) == _counts(a)
    assert _counts(merge_results([a])) == _counts(a)
    assert merge_results([]).total_synced == 0
