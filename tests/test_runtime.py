from __future__ import annotations

import allure
import pytest

from cam_sync.errors import TaskTimeoutError
from cam_sync.runtime import ExecutionContext

pytestmark = [
    allure.epic("Task Engine"),
    allure.feature("Execution Context"),
]


def test_zero_timeout_means_no_deadline() -> None:
    context = ExecutionContext.with_timeout(task_id="t-1", timeout_seconds=0)

    assert context.deadline is None
    assert context.remaining_seconds() is None
    context.check()


def test_expired_deadline_raises() -> None:
    context = ExecutionContext(task_id="t-1", deadline=0.0)

    assert context.remaining_seconds() == 0.0
    with pytest.raises(TaskTimeoutError, match="t-1 exceeded its execution deadline"):
        context.check()


def test_progress_is_clamped() -> None:
    seen: list[tuple[int, str]] = []
    context = ExecutionContext.with_timeout(
        task_id="t-1",
        timeout_seconds=60,
        on_progress=lambda progress, message: seen.append((progress, message)),
    )

    context.report_progress(-5, "low")
    context.report_progress(250, "high")

    assert seen == [(0, "low"), (100, "high")]
    remaining = context.remaining_seconds()
    assert remaining is not None
    assert 0 < remaining <= 60
