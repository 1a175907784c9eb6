"""Task executors: the swappable units of work run by queue workers."""

from __future__ import annotations

import logging
from typing import Protocol

from cam_sync.inventory.models import CloudAccount
from cam_sync.inventory.reconciler import AssetReconciler, SyncStage
from cam_sync.runtime import ExecutionContext
from cam_sync.tasks.models import (
    DiscoverAssetsParams,
    DiscoverAssetsResult,
    SyncAssetsParams,
    SyncAssetsResult,
    Task,
    TaskResult,
    TaskType,
)

logger = logging.getLogger(__name__)

FANOUT_PROGRESS_START = 30
FANOUT_PROGRESS_SPAN = 60


class TaskExecutor(Protocol):
    """Interface for task executors.

    Executors read ``task.params``, report progress through the context and
    return a typed result. Raising marks the task failed. Status is owned by
    the queue. The same task id may be executed again, so side effects must
    be idempotent.
    """

    task_type: TaskType

    def execute(self, context: ExecutionContext, task: Task) -> TaskResult:
        """Run the task and return its result."""
        raise NotImplementedError


class SyncAssetsExecutor:
    """Reconciles one account or every active account of a provider."""

    task_type = TaskType.SYNC_ASSETS

    def __init__(self, reconciler: AssetReconciler) -> None:
        self._reconciler = reconciler

    def execute(self, context: ExecutionContext, task: Task) -> SyncAssetsResult:
        params = task.params
        if not isinstance(params, SyncAssetsParams):
            raise TypeError(f"sync_assets expects SyncAssetsParams, got {type(params).__name__}")

        if params.account_id is not None:
            context.report_progress(10, f"Loading account {params.account_id}")
            outcome = self._reconciler.sync_account(
                tenant_id=params.tenant_id,
                account_id=params.account_id,
                asset_types=params.asset_types,
                regions=params.regions,
                context=context,
                on_region_done=lambda done, total, region: context.report_progress(
                    _fanout_progress(done, total),
                    f"Synced region {region} ({done}/{total})",
                ),
                on_stage=_StageProgress(context, "Listing regions"),
            )
        elif params.provider is not None:
            context.report_progress(10, f"Loading {params.provider.value} accounts")

            def on_account_done(done: int, total: int, account: CloudAccount) -> None:
                context.report_progress(
                    _fanout_progress(done, total),
                    f"Synced account {account.name or account.account_id} ({done}/{total})",
                )

            outcome = self._reconciler.sync_provider(
                tenant_id=params.tenant_id,
                provider=params.provider,
                asset_types=params.asset_types,
                context=context,
                on_account_done=on_account_done,
                on_stage=_StageProgress(context, "Syncing accounts"),
            )
        else:
            raise ValueError("sync_assets requires an account_id or a provider")

        context.report_progress(95, "Saving results")
        result = SyncAssetsResult.from_sync_result(outcome)
        logger.info("sync_assets task %s: %s", task.task_id, result.summary())
        return result


class DiscoverAssetsExecutor:
    """Lists live resources of one account without touching the store."""

    task_type = TaskType.DISCOVER_ASSETS

    def __init__(self, reconciler: AssetReconciler) -> None:
        self._reconciler = reconciler

    def execute(self, context: ExecutionContext, task: Task) -> DiscoverAssetsResult:
        params = task.params
        if not isinstance(params, DiscoverAssetsParams):
            raise TypeError(
                f"discover_assets expects DiscoverAssetsParams, got {type(params).__name__}",
            )

        context.report_progress(10, f"Discovering assets for account {params.account_id}")
        resources = self._reconciler.discover(
            tenant_id=params.tenant_id,
            account_id=params.account_id,
            region=params.region,
            asset_types=params.asset_types,
            context=context,
        )
        context.report_progress(95, "Saving results")
        return DiscoverAssetsResult.from_resources(resources)


class _StageProgress:
    """Maps reconciler stages to the 20 and 30 progress steps.

    Provider syncs create one adapter per account; only the first one moves
    progress to the fan-out start.
    """

    def __init__(self, context: ExecutionContext, fan_out_message: str) -> None:
        self._context = context
        self._fan_out_message = fan_out_message
        self._fan_out_started = False

    def __call__(self, stage: SyncStage) -> None:
        if stage == SyncStage.ACCOUNTS_LOADED:
            self._context.report_progress(20, "Creating cloud adapter")
        elif stage == SyncStage.ADAPTER_READY and not self._fan_out_started:
            self._fan_out_started = True
            self._context.report_progress(FANOUT_PROGRESS_START, self._fan_out_message)


def _fanout_progress(done: int, total: int) -> int:
    if total <= 0:
        return FANOUT_PROGRESS_START + FANOUT_PROGRESS_SPAN
    return FANOUT_PROGRESS_START + done * FANOUT_PROGRESS_SPAN // total
