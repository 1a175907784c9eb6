from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure
import pytest

from cam_sync.errors import InvalidTransitionError, TaskNotFoundError
from cam_sync.inventory.models import CloudProvider, SyncError
from cam_sync.tasks.models import (
    DiscoverAssetsParams,
    SyncAssetsParams,
    SyncAssetsResult,
    Task,
    TaskFilter,
    TaskStatus,
    TaskType,
)
from cam_sync.tasks.repository import TaskRepository

pytestmark = [
    allure.epic("Task Engine"),
    allure.feature("Task Store"),
]


def _sync_task(*, created_by: str = "tester", created_at: datetime | None = None) -> Task:
    return Task(
        task_type=TaskType.SYNC_ASSETS,
        params=SyncAssetsParams(tenant_id="tenant-a", account_id="acc-1", asset_types=("ecs",)),
        created_by=created_by,
        created_at=created_at,
    )


def test_create_persists_pending_task_with_params(task_repository: TaskRepository) -> None:
    stored = task_repository.create(_sync_task())

    assert stored.status == TaskStatus.PENDING
    assert stored.progress == 0
    assert stored.started_at is None
    assert stored.completed_at is None
    assert stored.params == SyncAssetsParams(
        tenant_id="tenant-a",
        account_id="acc-1",
        asset_types=("ecs",),
    )


def test_sync_params_require_exactly_one_scope() -> None:
    with pytest.raises(ValueError, match="exactly one"):
        SyncAssetsParams(tenant_id="tenant-a")
    with pytest.raises(ValueError, match="exactly one"):
        SyncAssetsParams(tenant_id="tenant-a", account_id="acc-1", provider=CloudProvider.AWS)


def test_successful_lifecycle_records_timestamps_and_events(
    task_repository: TaskRepository,
) -> None:
    stored = task_repository.create(_sync_task())

    running = task_repository.mark_running(task_id=stored.task_id)
    assert running is not None
    assert running.status == TaskStatus.RUNNING
    assert running.started_at is not None

    assert task_repository.update_progress(task_id=stored.task_id, progress=150, message="half")
    progressed = task_repository.get_task(task_id=stored.task_id)
    assert progressed is not None
    assert progressed.progress == 100

    result = SyncAssetsResult(
        total_synced=3,
        created=1,
        updated=2,
        errors=[SyncError(scope="upsert", message="x", region="us-east-1")],
    )
    assert task_repository.complete_task(
        task_id=stored.task_id,
        result=result,
        message=result.summary(),
    )

    details = task_repository.get_task_details(task_id=stored.task_id)
    assert details is not None
    task = details.task
    assert task.status == TaskStatus.COMPLETED
    assert task.progress == 100
    assert task.message == "Synced 3 assets (created=1 updated=2 deleted=0 failed=0)"
    assert task.result == result
    assert task.completed_at is not None
    assert task.started_at is not None
    assert task.completed_at >= task.started_at
    assert task.duration_seconds is not None
    assert task.duration_seconds >= 0
    assert [event.event_type for event in details.events] == ["submitted", "started", "completed"]
    assert details.events[-1].status_from == TaskStatus.RUNNING
    assert details.events[-1].status_to == TaskStatus.COMPLETED


def test_failure_keeps_error_and_no_result(task_repository: TaskRepository) -> None:
    stored = task_repository.create(_sync_task())
    task_repository.mark_running(task_id=stored.task_id)

    assert task_repository.fail_task(task_id=stored.task_id, error="adapter exploded")

    task = task_repository.get_task(task_id=stored.task_id)
    assert task is not None
    assert task.status == TaskStatus.FAILED
    assert task.error == "adapter exploded"
    assert task.result is None
    assert task.completed_at is not None


def test_terminal_transitions_require_running(task_repository: TaskRepository) -> None:
    stored = task_repository.create(_sync_task())

    assert not task_repository.complete_task(
        task_id=stored.task_id,
        result=SyncAssetsResult(),
        message="done",
    )
    assert not task_repository.fail_task(task_id=stored.task_id, error="x")
    assert not task_repository.update_progress(task_id=stored.task_id, progress=50, message="x")
    assert not task_repository.fail_task(task_id="missing", error="x")

    task_repository.mark_running(task_id=stored.task_id)
    assert task_repository.mark_running(task_id=stored.task_id) is None
    assert task_repository.fail_task(task_id=stored.task_id, error="first")
    assert not task_repository.complete_task(
        task_id=stored.task_id,
        result=SyncAssetsResult(),
        message="late",
    )
    failed = task_repository.get_task(task_id=stored.task_id)
    assert failed is not None
    assert failed.status == TaskStatus.FAILED


def test_cancel_only_from_pending(task_repository: TaskRepository) -> None:
    pending = task_repository.create(_sync_task())
    cancelled = task_repository.cancel_task(task_id=pending.task_id)

    assert cancelled.status == TaskStatus.CANCELLED
    assert cancelled.completed_at is not None
    assert cancelled.started_at is None
    assert task_repository.mark_running(task_id=pending.task_id) is None

    running = task_repository.create(_sync_task())
    task_repository.mark_running(task_id=running.task_id)
    with pytest.raises(InvalidTransitionError, match="status=running"):
        task_repository.cancel_task(task_id=running.task_id)

    with pytest.raises(InvalidTransitionError, match="status=cancelled"):
        task_repository.cancel_task(task_id=pending.task_id)

    with pytest.raises(TaskNotFoundError):
        task_repository.cancel_task(task_id="missing")


def test_list_and_count_with_filters(task_repository: TaskRepository) -> None:
    base = datetime(2026, 10, 18, 8, 0, tzinfo=UTC)
    first = task_repository.create(_sync_task(created_by="alice", created_at=base))
    second = task_repository.create(
        _sync_task(created_by="bob", created_at=base + timedelta(minutes=1)),
    )
    discover = task_repository.create(
        Task(
            task_type=TaskType.DISCOVER_ASSETS,
            params=DiscoverAssetsParams(tenant_id="tenant-a", account_id="acc-1"),
            created_by="alice",
            created_at=base + timedelta(minutes=2),
        ),
    )
    task_repository.mark_running(task_id=second.task_id)

    newest_first = task_repository.list_tasks()
    assert [task.task_id for task in newest_first] == [
        discover.task_id,
        second.task_id,
        first.task_id,
    ]
    assert task_repository.count_tasks() == 3

    by_type = TaskFilter(task_type=TaskType.SYNC_ASSETS)
    assert task_repository.count_tasks(by_type) == 2

    by_status = TaskFilter(status=TaskStatus.RUNNING)
    assert [task.task_id for task in task_repository.list_tasks(by_status)] == [second.task_id]

    by_creator = TaskFilter(created_by="alice", created_after=base + timedelta(seconds=30))
    assert [task.task_id for task in task_repository.list_tasks(by_creator)] == [discover.task_id]

    page = task_repository.list_tasks(TaskFilter(offset=1, limit=1))
    assert [task.task_id for task in page] == [second.task_id]


def test_details_for_unknown_task(task_repository: TaskRepository) -> None:
    assert task_repository.get_task(task_id="missing") is None
    assert task_repository.get_task_details(task_id="missing") is None
