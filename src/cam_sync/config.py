"""Runtime configuration for the task queue, reconciler and scheduler."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class QueueSettings:
    """Worker pool and intake queue settings."""

    worker_count: int = 5
    queue_capacity: int = 100
    task_timeout_seconds: float = 3_600


@dataclass(slots=True)
class SyncSettings:
    """Reconciliation settings."""

    region_concurrency: int = 5
    adapter_timeout_seconds: int = 30
    adapter_max_attempts: int = 5
    default_asset_types: tuple[str, ...] = ("ecs",)


@dataclass(slots=True)
class SchedulerSettings:
    """Auto-sync scheduler settings."""

    enabled: bool = True
    check_interval_seconds: float = 60.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".cam_sync.db")
    sqlite_busy_timeout_ms: int = 5_000
    log_level: str = "INFO"
    tenant_id: str = "default"
    queue: QueueSettings = field(default_factory=QueueSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("CAM_SYNC_DB_PATH", ".cam_sync.db")),
            sqlite_busy_timeout_ms=int(os.getenv("CAM_SYNC_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            log_level=os.getenv("CAM_SYNC_LOG_LEVEL", "INFO").upper(),
            tenant_id=os.getenv("CAM_SYNC_TENANT_ID", "default"),
            queue=QueueSettings(
                worker_count=int(os.getenv("CAM_SYNC_QUEUE_WORKERS", "5")),
                queue_capacity=int(os.getenv("CAM_SYNC_QUEUE_CAPACITY", "100")),
                task_timeout_seconds=float(os.getenv("CAM_SYNC_TASK_TIMEOUT_SECONDS", "3600")),
            ),
            sync=SyncSettings(
                region_concurrency=int(os.getenv("CAM_SYNC_REGION_CONCURRENCY", "5")),
                adapter_timeout_seconds=int(
                    os.getenv("CAM_SYNC_ADAPTER_TIMEOUT_SECONDS", "30"),
                ),
                adapter_max_attempts=int(os.getenv("CAM_SYNC_ADAPTER_MAX_ATTEMPTS", "5")),
                default_asset_types=_split_csv(
                    os.getenv("CAM_SYNC_DEFAULT_ASSET_TYPES", "ecs"),
                ),
            ),
            scheduler=SchedulerSettings(
                enabled=_env_bool("CAM_SYNC_SCHEDULER_ENABLED", default=True),
                check_interval_seconds=float(
                    os.getenv("CAM_SYNC_SCHEDULER_INTERVAL_SECONDS", "60"),
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the runtime cannot honour."""

        if self.queue.worker_count <= 0:
            raise ValueError("CAM_SYNC_QUEUE_WORKERS must be > 0.")
        if self.queue.queue_capacity <= 0:
            raise ValueError("CAM_SYNC_QUEUE_CAPACITY must be > 0.")
        if self.queue.task_timeout_seconds < 0:
            raise ValueError("CAM_SYNC_TASK_TIMEOUT_SECONDS must be >= 0.")
        if self.sync.region_concurrency <= 0:
            raise ValueError("CAM_SYNC_REGION_CONCURRENCY must be > 0.")
        if self.sync.adapter_timeout_seconds <= 0:
            raise ValueError("CAM_SYNC_ADAPTER_TIMEOUT_SECONDS must be > 0.")
        if self.sync.adapter_max_attempts <= 0:
            raise ValueError("CAM_SYNC_ADAPTER_MAX_ATTEMPTS must be > 0.")
        if not self.sync.default_asset_types:
            raise ValueError("CAM_SYNC_DEFAULT_ASSET_TYPES must name at least one asset type.")
        if self.scheduler.check_interval_seconds <= 0:
            raise ValueError("CAM_SYNC_SCHEDULER_INTERVAL_SECONDS must be > 0.")


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
