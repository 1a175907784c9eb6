"""Bounded in-process task queue drained by a fixed pool of worker threads."""

from __future__ import annotations

import logging
import queue
import threading

from cam_sync.config import QueueSettings
from cam_sync.errors import (
    NoExecutorRegisteredError,
    QueueClosedError,
    QueueFullError,
    TaskNotFoundError,
)
from cam_sync.runtime import ExecutionContext
from cam_sync.storage.common import utc_now
from cam_sync.tasks.executors import TaskExecutor
from cam_sync.tasks.models import Task, TaskFilter, TaskStatus, TaskType
from cam_sync.tasks.repository import TaskRepository

logger = logging.getLogger(__name__)

_STOP = object()


class ExecutorRegistry:
    """Task type to executor mapping shared by submitters and workers."""

    def __init__(self) -> None:
        self._executors: dict[TaskType, TaskExecutor] = {}
        self._lock = threading.Lock()

    def register(self, executor: TaskExecutor) -> None:
        with self._lock:
            previous = self._executors.get(executor.task_type)
            self._executors[executor.task_type] = executor
        if previous is not None and previous is not executor:
            logger.info("Replaced executor for task type %s", executor.task_type.value)

    def unregister(self, task_type: TaskType) -> TaskExecutor | None:
        with self._lock:
            return self._executors.pop(task_type, None)

    def get(self, task_type: TaskType) -> TaskExecutor | None:
        with self._lock:
            return self._executors.get(task_type)

    def task_types(self) -> list[TaskType]:
        with self._lock:
            return list(self._executors)


class TaskQueue:
    """Persist-then-enqueue task queue.

    ``submit`` never blocks on queue space: a full intake queue raises
    ``QueueFullError`` and the already persisted task stays ``pending``.
    ``stop`` closes intake, lets workers drain what is already queued and
    joins them.
    """

    def __init__(
        self,
        *,
        repository: TaskRepository,
        settings: QueueSettings | None = None,
        registry: ExecutorRegistry | None = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or QueueSettings()
        if self._settings.worker_count <= 0:
            raise ValueError("worker_count must be > 0")
        if self._settings.queue_capacity <= 0:
            raise ValueError("queue_capacity must be > 0")
        self._registry = registry or ExecutorRegistry()
        self._intake: queue.Queue[object] = queue.Queue(maxsize=self._settings.queue_capacity)
        self._state_lock = threading.Lock()
        self._workers: list[threading.Thread] = []
        self._started = False
        self._closed = False

    @property
    def registry(self) -> ExecutorRegistry:
        return self._registry

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._started and not self._closed

    def register_executor(self, executor: TaskExecutor) -> None:
        self._registry.register(executor)

    def start(self) -> None:
        """Launch worker threads; repeated calls are no-ops."""

        with self._state_lock:
            if self._closed:
                raise QueueClosedError("Task queue is closed")
            if self._started:
                logger.debug("Task queue already started")
                return
            self._started = True
            for index in range(self._settings.worker_count):
                worker = threading.Thread(
                    target=self._worker_loop,
                    args=(index,),
                    daemon=True,
                    name=f"task-worker-{index}",
                )
                worker.start()
                self._workers.append(worker)
        logger.info(
            "Task queue started: workers=%d capacity=%d",
            self._settings.worker_count,
            self._settings.queue_capacity,
        )

    def stop(self, timeout: float | None = None) -> None:
        """Close intake, drain queued tasks and wait for workers to exit."""

        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            workers = list(self._workers)
        if not workers:
            logger.info("Task queue closed before start")
            return
        for _ in workers:
            self._intake.put(_STOP)
        for worker in workers:
            worker.join(timeout=timeout)
        alive = [worker.name for worker in workers if worker.is_alive()]
        if alive:
            logger.warning("Task queue stop timed out; still running: %s", ", ".join(alive))
        else:
            logger.info("Task queue stopped")

    def submit(self, task: Task) -> Task:
        """Persist ``task`` as pending and hand it to the worker pool."""

        if self._registry.get(task.task_type) is None:
            raise NoExecutorRegisteredError(
                f"No executor registered for task type: {task.task_type.value}",
            )
        with self._state_lock:
            if self._closed:
                raise QueueClosedError("Task queue is closed")
        task.status = TaskStatus.PENDING
        if task.created_at is None:
            task.created_at = utc_now()
        stored = self._repository.create(task)
        with self._state_lock:
            if self._closed:
                logger.warning(
                    "Task queue closed during submit, task %s left pending",
                    stored.task_id,
                )
                raise QueueClosedError("Task queue is closed")
            try:
                self._intake.put_nowait(stored.task_id)
            except queue.Full as error:
                logger.warning("Task queue full, task %s left pending", stored.task_id)
                raise QueueFullError(
                    f"Task queue is full (capacity={self._settings.queue_capacity})",
                    task_id=stored.task_id,
                ) from error
        logger.info("Task submitted: task_id=%s type=%s", stored.task_id, stored.task_type.value)
        return stored

    def get_task_status(self, task_id: str) -> Task:
        task = self._repository.get_task(task_id=task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return task

    def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        return self._repository.list_tasks(task_filter)

    def count_tasks(self, task_filter: TaskFilter | None = None) -> int:
        return self._repository.count_tasks(task_filter)

    def cancel_task(self, task_id: str) -> Task:
        """Cancel a pending task; running and terminal tasks are rejected."""

        task = self._repository.cancel_task(task_id=task_id)
        logger.info("Task cancelled: task_id=%s", task_id)
        return task

    def _worker_loop(self, index: int) -> None:
        logger.debug("Task worker %d started", index)
        while True:
            item = self._intake.get()
            try:
                if item is _STOP:
                    break
                self._run_task(str(item))
            except Exception:
                logger.exception("Task worker %d error", index)
            finally:
                self._intake.task_done()
        logger.debug("Task worker %d stopped", index)

    def _run_task(self, task_id: str) -> None:
        task = self._repository.mark_running(task_id=task_id)
        if task is None:
            logger.info("Skipping task %s: no longer pending", task_id)
            return

        executor = self._registry.get(task.task_type)
        if executor is None:
            self._repository.fail_task(
                task_id=task_id,
                error=f"No executor registered for task type: {task.task_type.value}",
            )
            return

        context = ExecutionContext.with_timeout(
            task_id=task_id,
            timeout_seconds=self._settings.task_timeout_seconds,
            on_progress=lambda progress, message: self._report_progress(task_id, progress, message),
        )
        try:
            result = executor.execute(context, task)
        except Exception as error:
            logger.warning("Task %s failed: %s", task_id, error)
            self._repository.fail_task(task_id=task_id, error=str(error) or type(error).__name__)
            return

        if not self._repository.complete_task(
            task_id=task_id,
            result=result,
            message=result.summary(),
        ):
            logger.warning("Task %s left running state before completion", task_id)
            return
        logger.info("Task %s completed: %s", task_id, result.summary())

    def _report_progress(self, task_id: str, progress: int, message: str) -> None:
        try:
            self._repository.update_progress(task_id=task_id, progress=progress, message=message)
        except Exception:
            logger.warning("Failed to record progress for task %s", task_id, exc_info=True)
