"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from cam_sync.inventory.reconciler import AssetReconciler
from cam_sync.inventory.repository import AccountRepository, InstanceRepository
from cam_sync.tasks.repository import TaskRepository
from tests.fakes import FakeAdapter, make_factory


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "cam-sync.db"


@pytest.fixture()
def task_repository(db_path: Path) -> Iterator[TaskRepository]:
    repository = TaskRepository(db_path)
    repository.init_schema()
    yield repository
    repository.close()


@pytest.fixture()
def account_repository(db_path: Path) -> Iterator[AccountRepository]:
    repository = AccountRepository(db_path)
    repository.init_schema()
    yield repository
    repository.close()


@pytest.fixture()
def instance_repository(db_path: Path) -> Iterator[InstanceRepository]:
    repository = InstanceRepository(db_path)
    repository.init_schema()
    yield repository
    repository.close()


@pytest.fixture()
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture()
def reconciler(
    account_repository: AccountRepository,
    instance_repository: InstanceRepository,
    fake_adapter: FakeAdapter,
) -> AssetReconciler:
    return AssetReconciler(
        accounts=account_repository,
        instances=instance_repository,
        adapters=make_factory(fake_adapter),
        region_concurrency=5,
    )


@pytest.fixture()
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fake credentials so boto3 never reaches a real account under moto."""

    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture(autouse=True)
def _isolate_cam_sync_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("CAM_SYNC_"):
            monkeypatch.delenv(name, raising=False)
