from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest

from cam_sync.errors import AccountNotFoundError
from cam_sync.inventory.models import AccountStatus, CloudProvider, Instance
from cam_sync.inventory.repository import AccountRepository, InstanceRepository

from tests.fakes import make_account

pytestmark = [
    allure.epic("Asset Reconciliation"),
    allure.feature("Instance & Account Store"),
]


def _instance(asset_id: str, *, region: str = "us-east-1", name: str = "") -> Instance:
    return Instance(
        tenant_id="tenant-a",
        model_uid="aws_ecs",
        asset_id=asset_id,
        account_id="acc-1",
        region=region,
        asset_name=name or asset_id,
        attributes={"state": "running"},
    )


def test_schema_is_migrated_to_head(db_path: Path, task_repository) -> None:
    connection = sqlite3.connect(db_path)
    try:
        version = connection.execute("SELECT version_num FROM alembic_version").fetchone()
        tables = {
            row[0]
            for row in connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
    finally:
        connection.close()

    assert version == ("20261018_0001",)
    assert {"tasks", "task_events", "cloud_accounts", "asset_instances"} <= tables


def test_upsert_is_idempotent(instance_repository: InstanceRepository) -> None:
    assert instance_repository.upsert(_instance("i-1", name="first")) is True
    assert instance_repository.upsert(_instance("i-1", name="second")) is False
    assert instance_repository.upsert(_instance("i-1", name="second")) is False

    instances = instance_repository.list_instances(tenant_id="tenant-a")
    assert len(instances) == 1
    assert instances[0].asset_name == "second"
    assert instances[0].attributes == {"state": "running"}


def test_upsert_key_includes_tenant_and_model(instance_repository: InstanceRepository) -> None:
    instance_repository.upsert(_instance("i-1"))
    other_model = _instance("i-1")
    other_model.model_uid = "aws_vpc"
    other_tenant = _instance("i-1")
    other_tenant.tenant_id = "tenant-b"

    assert instance_repository.upsert(other_model) is True
    assert instance_repository.upsert(other_tenant) is True
    assert len(instance_repository.list_instances(tenant_id="tenant-a")) == 2


def test_list_asset_ids_by_region_and_delete(instance_repository: InstanceRepository) -> None:
    for asset_id in ("a", "b", "c"):
        instance_repository.upsert(_instance(asset_id))
    instance_repository.upsert(_instance("z", region="eu-west-1"))

    ids = instance_repository.list_asset_ids_by_region(
        tenant_id="tenant-a",
        model_uid="aws_ecs",
        account_id="acc-1",
        region="us-east-1",
    )
    assert sorted(ids) == ["a", "b", "c"]

    deleted = instance_repository.delete_by_asset_ids(
        tenant_id="tenant-a",
        model_uid="aws_ecs",
        account_id="acc-1",
        region="us-east-1",
        asset_ids={"a", "z", "missing"},
    )
    assert deleted == 1
    assert instance_repository.delete_by_asset_ids(
        tenant_id="tenant-a",
        model_uid="aws_ecs",
        account_id="acc-1",
        region="us-east-1",
        asset_ids=[],
    ) == 0
    assert instance_repository.get_instance(
        tenant_id="tenant-a",
        model_uid="aws_ecs",
        asset_id="a",
    ) is None
    assert instance_repository.get_instance(
        tenant_id="tenant-a",
        model_uid="aws_ecs",
        asset_id="z",
    ) is not None


def test_account_round_trip_and_filters(account_repository: AccountRepository) -> None:
    account_repository.create_account(
        make_account("acc-1", regions=("us-east-1",), asset_types=("ecs", "vpc"), auto_sync=True),
    )
    disabled = make_account("acc-2")
    disabled.status = AccountStatus.DISABLED
    account_repository.create_account(disabled)
    account_repository.create_account(make_account("acc-3", provider=CloudProvider.ALIYUN))
    account_repository.create_account(make_account("acc-4", tenant_id="tenant-b"))

    loaded = account_repository.get_account(tenant_id="tenant-a", account_id="acc-1")
    assert loaded.supported_regions == ("us-east-1",)
    assert loaded.supported_asset_types == ("ecs", "vpc")
    assert loaded.auto_sync is True
    assert loaded.is_active

    active_aws = account_repository.list_accounts(
        tenant_id="tenant-a",
        provider=CloudProvider.AWS,
        status=AccountStatus.ACTIVE,
    )
    assert [account.account_id for account in active_aws] == ["acc-1"]
    assert len(account_repository.list_accounts()) == 4
    assert [a.account_id for a in account_repository.list_accounts(auto_sync=True)] == ["acc-1"]

    with pytest.raises(AccountNotFoundError):
        account_repository.get_account(tenant_id="tenant-b", account_id="acc-1")


def test_update_sync_time(account_repository: AccountRepository) -> None:
    account_repository.create_account(make_account("acc-1"))
    synced_at = datetime(2026, 10, 18, 8, 30, tzinfo=UTC)

    assert account_repository.update_sync_time(
        account_id="acc-1",
        synced_at=synced_at,
        asset_count=12,
    )
    assert not account_repository.update_sync_time(
        account_id="missing",
        synced_at=synced_at,
        asset_count=1,
    )

    loaded = account_repository.get_account(tenant_id="tenant-a", account_id="acc-1")
    assert loaded.last_sync_at == synced_at
    assert loaded.asset_count == 12
