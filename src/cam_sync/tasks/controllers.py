"""Controllers for task queue CLI commands."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

from cam_sync.config import Settings
from cam_sync.inventory.controllers import parse_provider
from cam_sync.services import open_services
from cam_sync.tasks.models import (
    DiscoverAssetsParams,
    DiscoverAssetsResult,
    SyncAssetsParams,
    SyncAssetsResult,
    Task,
    TaskFilter,
    TaskParams,
    TaskStatus,
    TaskType,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskSubmitCommand:
    """CLI input for submitting one task to an in-process queue."""

    db_path: Path | None
    tenant_id: str | None
    task_type: str
    account_id: str | None
    provider: str | None
    asset_types: tuple[str, ...]
    regions: tuple[str, ...]
    created_by: str


@dataclass(slots=True)
class TaskListCommand:
    db_path: Path | None
    status: str | None
    task_type: str | None
    created_by: str | None
    offset: int
    limit: int


@dataclass(slots=True)
class TaskInspectCommand:
    db_path: Path | None
    task_id: str


@dataclass(slots=True)
class TaskCancelCommand:
    db_path: Path | None
    task_id: str


@dataclass(slots=True)
class ServeCommand:
    """CLI input for the long-running queue + scheduler process."""

    db_path: Path | None
    duration_seconds: float | None
    scheduler: bool | None


class TaskCliController:
    """Coordinates task submission, inspection and the serve loop."""

    def __init__(self, stop_event: threading.Event | None = None) -> None:
        self._stop_event = stop_event or threading.Event()

    def submit(self, command: TaskSubmitCommand) -> list[str]:
        """Submit a task, drain the queue and report the final task state."""

        settings = Settings.from_env(db_path=command.db_path)
        tenant_id = command.tenant_id or settings.tenant_id
        task_type = _parse_task_type(command.task_type)
        task = Task(
            task_type=task_type,
            params=_build_params(command, task_type=task_type, tenant_id=tenant_id),
            created_by=command.created_by,
        )
        with open_services(settings) as services:
            task_queue = services.build_queue()
            task_queue.start()
            try:
                submitted = task_queue.submit(task)
            finally:
                task_queue.stop()
            final = task_queue.get_task_status(submitted.task_id)
        return [f"Task submitted: task_id={final.task_id} type={final.task_type.value}"] + (
            render_task(final)
        )

    def list_tasks(self, command: TaskListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        task_filter = TaskFilter(
            task_type=_parse_task_type(command.task_type) if command.task_type else None,
            status=_parse_status(command.status) if command.status else None,
            created_by=command.created_by,
            offset=command.offset,
            limit=command.limit,
        )
        with open_services(settings) as services:
            tasks = services.tasks.list_tasks(task_filter)
            total = services.tasks.count_tasks(task_filter)

        lines = [f"Tasks: {len(tasks)} of {total}"]
        for task in tasks:
            created = task.created_at.isoformat() if task.created_at else "-"
            lines.append(
                f"  {task.task_id} type={task.task_type.value} status={task.status.value} "
                f"progress={task.progress} created_by={task.created_by or '-'} "
                f"created_at={created}",
            )
        return lines

    def inspect_task(self, command: TaskInspectCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_services(settings) as services:
            details = services.tasks.get_task_details(task_id=command.task_id)
        if details is None:
            return [f"Task not found: {command.task_id}"]

        lines = render_task(details.task)
        lines.append(f"Events: {len(details.events)}")
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def cancel_task(self, command: TaskCancelCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_services(settings) as services:
            services.tasks.cancel_task(task_id=command.task_id)
        return [f"Task cancelled: {command.task_id}"]

    def serve(self, command: ServeCommand) -> list[str]:
        """Run queue workers and the auto-sync scheduler until stopped."""

        settings = Settings.from_env(db_path=command.db_path)
        scheduler_enabled = (
            settings.scheduler.enabled if command.scheduler is None else command.scheduler
        )
        with open_services(settings) as services:
            task_queue = services.build_queue()
            scheduler = services.build_scheduler(task_queue)
            task_queue.start()
            if scheduler_enabled:
                scheduler.start()
            try:
                self._stop_event.wait(timeout=command.duration_seconds)
            except KeyboardInterrupt:
                logger.info("Interrupted, shutting down")
            finally:
                scheduler.stop()
                task_queue.stop()
            processed = services.tasks.count_tasks()
        state = "on" if scheduler_enabled else "off"
        return [f"Server stopped: scheduler={state} tasks={processed}"]


def render_task(task: Task) -> list[str]:
    lines = [
        f"Task: {task.task_id}",
        f"Type: {task.task_type.value}",
        f"Status: {task.status.value}",
        f"Progress: {task.progress}",
        f"Message: {task.message or '-'}",
        f"Created by: {task.created_by or '-'}",
        f"Started: {task.started_at.isoformat() if task.started_at else '-'}",
        f"Completed: {task.completed_at.isoformat() if task.completed_at else '-'}",
        f"Duration: {_format_duration(task.duration_seconds)}",
        f"Error: {task.error or '-'}",
    ]
    if isinstance(task.result, SyncAssetsResult):
        lines.append(f"Result: {task.result.summary()}")
        for error in task.result.errors:
            lines.append(
                f"  error scope={error.scope} region={error.region or '-'}: {error.message}",
            )
    elif isinstance(task.result, DiscoverAssetsResult):
        lines.append(f"Result: {task.result.summary()}")
        for asset_type, count in sorted(task.result.by_asset_type.items()):
            lines.append(f"  asset_type {asset_type}: {count}")
    return lines


def _build_params(
    command: TaskSubmitCommand,
    *,
    task_type: TaskType,
    tenant_id: str,
) -> TaskParams:
    if task_type == TaskType.DISCOVER_ASSETS:
        if not command.account_id:
            raise ValueError("discover_assets requires --account-id")
        return DiscoverAssetsParams(
            tenant_id=tenant_id,
            account_id=command.account_id,
            region=command.regions[0] if command.regions else None,
            asset_types=command.asset_types,
        )
    return SyncAssetsParams(
        tenant_id=tenant_id,
        account_id=command.account_id,
        provider=parse_provider(command.provider) if command.provider else None,
        asset_types=command.asset_types,
        regions=command.regions,
    )


def _parse_task_type(raw: str) -> TaskType:
    try:
        return TaskType(raw)
    except ValueError as error:
        supported = ", ".join(task_type.value for task_type in TaskType)
        raise ValueError(f"Unsupported task type {raw!r}; expected one of: {supported}") from error


def _parse_status(raw: str) -> TaskStatus:
    try:
        return TaskStatus(raw)
    except ValueError as error:
        supported = ", ".join(status.value for status in TaskStatus)
        raise ValueError(f"Unsupported status {raw!r}; expected one of: {supported}") from error


def _format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    return f"{seconds:.3f}s"
