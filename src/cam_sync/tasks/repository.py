"""Persistent task store with conditional status transitions."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from cam_sync.errors import InvalidTransitionError, TaskNotFoundError
from cam_sync.storage.alembic_runner import upgrade_head
from cam_sync.storage.common import (
    build_sqlite_engine,
    dump_json,
    load_json_object,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from cam_sync.storage.sqlmodel_models import TaskEventRow, TaskRow
from cam_sync.tasks.models import (
    Task,
    TaskDetails,
    TaskEventView,
    TaskFilter,
    TaskResult,
    TaskStatus,
    TaskType,
    parse_params,
    parse_result,
)


class TaskRepository:
    """Task persistence facade backed by SQLModel + SQLite.

    Every transition is a conditional ``UPDATE ... WHERE status = ?``; a
    transition whose precondition no longer holds affects zero rows and is
    reported as rejected rather than applied.
    """

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def create(self, task: Task) -> Task:
        """Persist a new pending task."""

        now = utc_now()
        created_at = task.created_at or now
        with Session(self.engine) as session:
            row = TaskRow(
                task_id=task.task_id,
                task_type=task.task_type.value,
                status=TaskStatus.PENDING.value,
                params_json=dump_json(task.params.to_payload()) or "{}",
                progress=0,
                message=task.message,
                created_by=task.created_by,
                created_at=to_db_datetime(created_at),
                updated_at=to_db_datetime(now),
            )
            session.add(row)
            self._add_event(
                session=session,
                task_id=task.task_id,
                event_type="submitted",
                status_from=None,
                status_to=TaskStatus.PENDING,
                details={"task_type": task.task_type.value, "created_by": task.created_by},
            )
            session.commit()
            session.refresh(row)
            return _to_task(row)

    def mark_running(self, *, task_id: str) -> Task | None:
        """Move a pending task to running; ``None`` when the task is no longer pending."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_update(TaskRow)
                .where(
                    col(TaskRow.task_id) == task_id,
                    col(TaskRow.status) == TaskStatus.PENDING.value,
                )
                .values(
                    status=TaskStatus.RUNNING.value,
                    started_at=now,
                    message="Task started",
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return None
            self._add_event(
                session=session,
                task_id=task_id,
                event_type="started",
                status_from=TaskStatus.PENDING,
                status_to=TaskStatus.RUNNING,
                details={},
            )
            session.commit()
            row = session.exec(select(TaskRow).where(TaskRow.task_id == task_id)).one()
            return _to_task(row)

    def update_progress(self, *, task_id: str, progress: int, message: str) -> bool:
        """Record progress of a running task."""

        with Session(self.engine) as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_update(TaskRow)
                .where(
                    col(TaskRow.task_id) == task_id,
                    col(TaskRow.status) == TaskStatus.RUNNING.value,
                )
                .values(
                    progress=max(0, min(100, progress)),
                    message=message,
                    updated_at=to_db_datetime(utc_now()),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def complete_task(self, *, task_id: str, result: TaskResult, message: str) -> bool:
        """Mark a running task as completed with its result payload."""

        return self._finish(
            task_id=task_id,
            status=TaskStatus.COMPLETED,
            values={
                "result_json": dump_json(result.to_payload()),
                "progress": 100,
                "message": message,
            },
            details={"message": message},
        )

    def fail_task(self, *, task_id: str, error: str) -> bool:
        """Mark a running task as failed."""

        return self._finish(
            task_id=task_id,
            status=TaskStatus.FAILED,
            values={"error": error, "message": "Task failed"},
            details={"error": error},
        )

    def cancel_task(self, *, task_id: str) -> Task:
        """Cancel a pending task; any other status is rejected."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = session.exec(select(TaskRow).where(TaskRow.task_id == task_id)).one_or_none()
            if row is None:
                raise TaskNotFoundError(f"Task not found: {task_id}")
            if row.status != TaskStatus.PENDING.value:
                raise InvalidTransitionError(
                    f"Task {task_id} cannot be cancelled from status={row.status}",
                )
            result = session.exec(  # type: ignore[call-overload]
                sa_update(TaskRow)
                .where(
                    col(TaskRow.task_id) == task_id,
                    col(TaskRow.status) == TaskStatus.PENDING.value,
                )
                .values(
                    status=TaskStatus.CANCELLED.value,
                    completed_at=now,
                    duration_seconds=_elapsed_seconds(row.created_at, now),
                    message="Task cancelled",
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise InvalidTransitionError(
                    f"Task {task_id} changed status concurrently while cancelling",
                )
            self._add_event(
                session=session,
                task_id=task_id,
                event_type="cancelled",
                status_from=TaskStatus.PENDING,
                status_to=TaskStatus.CANCELLED,
                details={},
            )
            session.commit()
            row = session.exec(select(TaskRow).where(TaskRow.task_id == task_id)).one()
            return _to_task(row)

    def get_task(self, *, task_id: str) -> Task | None:
        with Session(self.engine) as session:
            row = session.exec(select(TaskRow).where(TaskRow.task_id == task_id)).one_or_none()
        return _to_task(row) if row is not None else None

    def get_task_details(self, *, task_id: str) -> TaskDetails | None:
        """Return task with its event stream."""

        with Session(self.engine) as session:
            row = session.exec(select(TaskRow).where(TaskRow.task_id == task_id)).one_or_none()
            if row is None:
                return None
            event_rows = session.exec(
                select(TaskEventRow)
                .where(TaskEventRow.task_id == task_id)
                .order_by(col(TaskEventRow.created_at).asc(), col(TaskEventRow.id).asc()),
            ).all()

        events = [
            TaskEventView(
                event_id=event.id or 0,
                task_id=event.task_id,
                event_type=event.event_type,
                status_from=TaskStatus(event.status_from) if event.status_from else None,
                status_to=TaskStatus(event.status_to) if event.status_to else None,
                created_at=to_utc_aware_datetime(event.created_at),
                details=load_json_object(event.details_json),
            )
            for event in event_rows
        ]
        return TaskDetails(task=_to_task(row), events=events)

    def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        """List tasks newest first."""

        task_filter = task_filter or TaskFilter()
        with Session(self.engine) as session:
            statement = _apply_filter(select(TaskRow), task_filter)
            statement = (
                statement.order_by(col(TaskRow.created_at).desc())
                .offset(max(0, task_filter.offset))
                .limit(max(1, task_filter.limit))
            )
            rows = session.exec(statement).all()
        return [_to_task(row) for row in rows]

    def count_tasks(self, task_filter: TaskFilter | None = None) -> int:
        task_filter = task_filter or TaskFilter()
        with Session(self.engine) as session:
            statement = _apply_filter(select(func.count()).select_from(TaskRow), task_filter)
            return int(session.exec(statement).one())

    def _finish(
        self,
        *,
        task_id: str,
        status: TaskStatus,
        values: dict[str, Any],
        details: dict[str, object],
    ) -> bool:
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = session.exec(select(TaskRow).where(TaskRow.task_id == task_id)).one_or_none()
            if row is None:
                return False
            result = session.exec(  # type: ignore[call-overload]
                sa_update(TaskRow)
                .where(
                    col(TaskRow.task_id) == task_id,
                    col(TaskRow.status) == TaskStatus.RUNNING.value,
                )
                .values(
                    status=status.value,
                    completed_at=now,
                    duration_seconds=_elapsed_seconds(row.started_at or row.created_at, now),
                    updated_at=now,
                    **values,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                task_id=task_id,
                event_type=status.value,
                status_from=TaskStatus.RUNNING,
                status_to=status,
                details=details,
            )
            session.commit()
            return True

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        task_id: str,
        event_type: str,
        status_from: TaskStatus | None,
        status_to: TaskStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            TaskEventRow(
                task_id=task_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=dump_json(details) if details else None,
                created_at=utc_now(),
            ),
        )


def _apply_filter(statement: Any, task_filter: TaskFilter) -> Any:
    if task_filter.task_type is not None:
        statement = statement.where(TaskRow.task_type == task_filter.task_type.value)
    if task_filter.status is not None:
        statement = statement.where(TaskRow.status == task_filter.status.value)
    if task_filter.created_by is not None:
        statement = statement.where(TaskRow.created_by == task_filter.created_by)
    if task_filter.created_after is not None:
        statement = statement.where(
            col(TaskRow.created_at) >= to_db_datetime(task_filter.created_after),
        )
    if task_filter.created_before is not None:
        statement = statement.where(
            col(TaskRow.created_at) <= to_db_datetime(task_filter.created_before),
        )
    return statement


def _elapsed_seconds(start: datetime, end: datetime) -> float:
    return max(0.0, (to_utc_aware_datetime(end) - to_utc_aware_datetime(start)).total_seconds())


def _to_task(row: TaskRow) -> Task:
    task_type = TaskType(row.task_type)
    result_payload = load_json_object(row.result_json)
    return Task(
        task_id=row.task_id,
        task_type=task_type,
        params=parse_params(task_type, load_json_object(row.params_json)),
        status=TaskStatus(row.status),
        result=parse_result(task_type, result_payload) if row.result_json else None,
        error=row.error,
        progress=row.progress,
        message=row.message,
        created_by=row.created_by,
        created_at=to_utc_aware_datetime(row.created_at),
        started_at=optional_utc(row.started_at),
        completed_at=optional_utc(row.completed_at),
        duration_seconds=row.duration_seconds,
    )
