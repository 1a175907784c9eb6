"""Wiring of repositories, reconciler, queue and scheduler from settings."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from cam_sync.config import Settings
from cam_sync.inventory.adapters.base import AdapterFactory, default_adapter_factory
from cam_sync.inventory.reconciler import AssetReconciler
from cam_sync.inventory.repository import AccountRepository, InstanceRepository
from cam_sync.tasks.executors import DiscoverAssetsExecutor, SyncAssetsExecutor
from cam_sync.tasks.queue import TaskQueue
from cam_sync.tasks.repository import TaskRepository
from cam_sync.tasks.scheduler import AutoSyncScheduler


@dataclass(slots=True)
class Services:
    """Open repositories plus the reconciler built on top of them."""

    settings: Settings
    accounts: AccountRepository
    instances: InstanceRepository
    tasks: TaskRepository
    reconciler: AssetReconciler

    def build_queue(self) -> TaskQueue:
        """Task queue with every shipped executor registered (not started)."""

        task_queue = TaskQueue(repository=self.tasks, settings=self.settings.queue)
        task_queue.register_executor(SyncAssetsExecutor(self.reconciler))
        task_queue.register_executor(DiscoverAssetsExecutor(self.reconciler))
        return task_queue

    def build_scheduler(self, task_queue: TaskQueue) -> AutoSyncScheduler:
        return AutoSyncScheduler(
            accounts=self.accounts,
            task_queue=task_queue,
            settings=self.settings.scheduler,
        )


@contextmanager
def open_services(
    settings: Settings,
    *,
    adapters: AdapterFactory | None = None,
) -> Iterator[Services]:
    """Validate settings, migrate the database and yield wired services."""

    settings.validate()
    busy_timeout_ms = settings.sqlite_busy_timeout_ms
    accounts = AccountRepository(settings.db_path, sqlite_busy_timeout_ms=busy_timeout_ms)
    instances = InstanceRepository(settings.db_path, sqlite_busy_timeout_ms=busy_timeout_ms)
    tasks = TaskRepository(settings.db_path, sqlite_busy_timeout_ms=busy_timeout_ms)
    try:
        tasks.init_schema()
        reconciler = AssetReconciler(
            accounts=accounts,
            instances=instances,
            adapters=adapters
            or default_adapter_factory(
                timeout_seconds=settings.sync.adapter_timeout_seconds,
                max_attempts=settings.sync.adapter_max_attempts,
            ),
            region_concurrency=settings.sync.region_concurrency,
            default_asset_types=settings.sync.default_asset_types,
        )
        yield Services(
            settings=settings,
            accounts=accounts,
            instances=instances,
            tasks=tasks,
            reconciler=reconciler,
        )
    finally:
        tasks.close()
        instances.close()
        accounts.close()
