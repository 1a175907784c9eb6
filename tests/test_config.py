from __future__ import annotations

from pathlib import Path

import allure
import pytest

from cam_sync.config import QueueSettings, Settings

pytestmark = [
    allure.epic("Platform"),
    allure.feature("Configuration"),
]


def test_settings_defaults() -> None:
    settings = Settings.from_env()

    assert settings.db_path == Path(".cam_sync.db")
    assert settings.queue.worker_count == 5
    assert settings.queue.queue_capacity == 100
    assert settings.queue.task_timeout_seconds == 3600
    assert settings.sync.region_concurrency == 5
    assert settings.sync.default_asset_types == ("ecs",)
    assert settings.scheduler.enabled is True
    assert settings.scheduler.check_interval_seconds == 60.0
    settings.validate()


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CAM_SYNC_DB_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("CAM_SYNC_QUEUE_WORKERS", "2")
    monkeypatch.setenv("CAM_SYNC_QUEUE_CAPACITY", "7")
    monkeypatch.setenv("CAM_SYNC_TASK_TIMEOUT_SECONDS", "0")
    monkeypatch.setenv("CAM_SYNC_REGION_CONCURRENCY", "3")
    monkeypatch.setenv("CAM_SYNC_DEFAULT_ASSET_TYPES", "ecs, network ,")
    monkeypatch.setenv("CAM_SYNC_SCHEDULER_ENABLED", "off")
    monkeypatch.setenv("CAM_SYNC_TENANT_ID", "tenant-x")
    monkeypatch.setenv("CAM_SYNC_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.db_path == tmp_path / "env.db"
    assert settings.queue == QueueSettings(worker_count=2, queue_capacity=7, task_timeout_seconds=0)
    assert settings.sync.region_concurrency == 3
    assert settings.sync.default_asset_types == ("ecs", "network")
    assert settings.scheduler.enabled is False
    assert settings.tenant_id == "tenant-x"
    assert settings.log_level == "DEBUG"
    settings.validate()


def test_explicit_db_path_wins_over_environment(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setenv("CAM_SYNC_DB_PATH", str(tmp_path / "env.db"))

    settings = Settings.from_env(db_path=tmp_path / "cli.db")

    assert settings.db_path == tmp_path / "cli.db"


def test_invalid_boolean_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CAM_SYNC_SCHEDULER_ENABLED", "maybe")

    with pytest.raises(ValueError, match="CAM_SYNC_SCHEDULER_ENABLED"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("CAM_SYNC_QUEUE_WORKERS", "0", "CAM_SYNC_QUEUE_WORKERS"),
        ("CAM_SYNC_QUEUE_CAPACITY", "0", "CAM_SYNC_QUEUE_CAPACITY"),
        ("CAM_SYNC_TASK_TIMEOUT_SECONDS", "-1", "CAM_SYNC_TASK_TIMEOUT_SECONDS"),
        ("CAM_SYNC_REGION_CONCURRENCY", "0", "CAM_SYNC_REGION_CONCURRENCY"),
        ("CAM_SYNC_SCHEDULER_INTERVAL_SECONDS", "0", "CAM_SYNC_SCHEDULER_INTERVAL_SECONDS"),
    ],
)
def test_validate_rejects_unusable_values(
    monkeypatch: pytest.MonkeyPatch,
    name: str,
    value: str,
    message: str,
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=message):
        Settings.from_env().validate()
