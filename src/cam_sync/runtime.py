"""Execution context handed to task executors."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from cam_sync.errors import TaskTimeoutError

ProgressCallback = Callable[[int, str], None]


def _ignore_progress(_progress: int, _message: str) -> None:
    return None


@dataclass(slots=True)
class ExecutionContext:
    """Deadline and progress sink for one task run.

    ``deadline`` is a ``time.monotonic()`` value; ``None`` disables the deadline.
    """

    task_id: str = ""
    deadline: float | None = None
    on_progress: ProgressCallback = field(default=_ignore_progress)

    @classmethod
    def with_timeout(
        cls,
        *,
        task_id: str,
        timeout_seconds: float,
        on_progress: ProgressCallback | None = None,
    ) -> ExecutionContext:
        deadline = time.monotonic() + timeout_seconds if timeout_seconds > 0 else None
        return cls(task_id=task_id, deadline=deadline, on_progress=on_progress or _ignore_progress)

    def remaining_seconds(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise ``TaskTimeoutError`` once the deadline has passed."""

        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise TaskTimeoutError(f"Task {self.task_id or '-'} exceeded its execution deadline")

    def report_progress(self, progress: int, message: str) -> None:
        self.on_progress(max(0, min(100, int(progress))), message)
