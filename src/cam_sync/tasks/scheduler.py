"""Periodic auto-sync of accounts whose sync interval has elapsed."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

from cam_sync.config import SchedulerSettings
from cam_sync.errors import CamSyncError
from cam_sync.inventory.models import AccountStatus, CloudAccount
from cam_sync.inventory.repository import AccountRepository
from cam_sync.storage.common import utc_now
from cam_sync.tasks.models import SyncAssetsParams, Task, TaskFilter, TaskStatus, TaskType
from cam_sync.tasks.queue import TaskQueue

logger = logging.getLogger(__name__)

SCHEDULER_ACTOR = "auto-sync-scheduler"
_UNFINISHED_SCAN_LIMIT = 1_000


class AutoSyncScheduler:
    """Submits ``sync_assets`` tasks for due auto-sync accounts.

    The first check runs as soon as the thread starts, then every
    ``check_interval_seconds``.
    """

    def __init__(
        self,
        *,
        accounts: AccountRepository,
        task_queue: TaskQueue,
        settings: SchedulerSettings | None = None,
        tenant_id: str | None = None,
    ) -> None:
        self._accounts = accounts
        self._queue = task_queue
        self._settings = settings or SchedulerSettings()
        self._tenant_id = tenant_id
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._loop,
                daemon=True,
                name="auto-sync-scheduler",
            )
            self._thread.start()
        logger.info(
            "Auto-sync scheduler started: interval=%ss",
            self._settings.check_interval_seconds,
        )

    def stop(self, timeout: float = 15.0) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop.set()
            self._thread = None
        thread.join(timeout=timeout)
        logger.info("Auto-sync scheduler stopped")

    def check_and_sync(self, now: datetime | None = None) -> int:
        """Submit sync tasks for every due account and return how many were submitted."""

        now = now or utc_now()
        accounts = self._accounts.list_accounts(
            tenant_id=self._tenant_id,
            status=AccountStatus.ACTIVE,
            auto_sync=True,
        )
        busy = self._accounts_with_unfinished_sync()
        submitted = 0
        for account in accounts:
            if not is_sync_due(account, now):
                continue
            if account.account_id in busy:
                logger.debug("Account %s already has a sync in flight", account.account_id)
                continue
            task = Task(
                task_type=TaskType.SYNC_ASSETS,
                params=SyncAssetsParams(
                    tenant_id=account.tenant_id,
                    account_id=account.account_id,
                    asset_types=account.supported_asset_types,
                ),
                created_by=SCHEDULER_ACTOR,
            )
            try:
                self._queue.submit(task)
            except CamSyncError as error:
                logger.warning(
                    "Auto-sync submit failed for account %s: %s",
                    account.account_id,
                    error,
                )
                continue
            submitted += 1
            logger.info("Auto-sync submitted for account %s", account.account_id)
        return submitted

    def _accounts_with_unfinished_sync(self) -> set[str]:
        busy: set[str] = set()
        for status in (TaskStatus.PENDING, TaskStatus.RUNNING):
            tasks = self._queue.list_tasks(
                TaskFilter(
                    task_type=TaskType.SYNC_ASSETS,
                    status=status,
                    limit=_UNFINISHED_SCAN_LIMIT,
                ),
            )
            for task in tasks:
                if isinstance(task.params, SyncAssetsParams) and task.params.account_id:
                    busy.add(task.params.account_id)
        return busy

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.check_and_sync()
            except Exception:
                logger.exception("Auto-sync check failed")
            self._stop.wait(timeout=self._settings.check_interval_seconds)


def is_sync_due(account: CloudAccount, now: datetime) -> bool:
    """Never-synced accounts are due; otherwise the interval must have elapsed."""

    if not account.auto_sync or account.sync_interval_minutes <= 0:
        return False
    if account.last_sync_at is None:
        return True
    return now - account.last_sync_at >= timedelta(minutes=account.sync_interval_minutes)
