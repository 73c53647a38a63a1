"""Error types raised by the minitask runtime."""

from __future__ import annotations

from typing import Any


class MinitaskError(Exception):
    """Base class for errors raised by the runtime itself."""


class ComputationAlreadyDoneError(MinitaskError):
    """Raised when a computation is advanced again after it returned Ready.

    Advancing a finished computation is a bug in the caller of ``advance``.
    The executor drops a task as soon as its computation resolves, so this
    only surfaces when computations are driven by hand.
    """

    def __init__(self, computation: Any) -> None:
        self.computation = computation
        super().__init__(f"{computation!r} was advanced after it already resolved")


class ExecutorClosedError(MinitaskError):
    """Raised when work is spawned on an executor that has been closed."""


class TaskNotDoneError(MinitaskError):
    """Raised when a task's result is read before the task has finished."""

    def __init__(self, task_name: str) -> None:
        self.task_name = task_name
        super().__init__(f"{task_name} has not finished yet")


__all__ = [
    "ComputationAlreadyDoneError",
    "ExecutorClosedError",
    "MinitaskError",
    "TaskNotDoneError",
]
