"""
minitask - a minimal wake-driven task executor.

Computations are state machines advanced by an executor. A computation that
cannot make progress returns ``PENDING`` after arranging for the waker in its
context to be called; the waker re-enqueues the owning task from any thread.

Example:
    >>> from minitask import Delay, do, run
    >>>
    >>> @do
    ... def job():
    ...     yield Delay.after(0.01)
    ...     return "done"
    >>>
    >>> run(job())
    'done'
"""

from minitask.computation import PENDING, Computation, Context, Poll, Ready, is_ready
from minitask.config import ExecutorConfig
from minitask.do import GeneratorComputation, as_computation, do, from_coroutine
from minitask.errors import (
    ComputationAlreadyDoneError,
    ExecutorClosedError,
    MinitaskError,
    TaskNotDoneError,
)
from minitask.executor import Executor, RoundRobinExecutor, run
from minitask.sync import Notified, Notify, notify_delay
from minitask.task import Task, TaskHandle, TaskState
from minitask.timer import Delay, sleep
from minitask.waker import CallbackWaker, NoopWaker, TaskWaker, Waker

__version__ = "0.1.0"

__all__ = [
    "PENDING",
    "CallbackWaker",
    "Computation",
    "ComputationAlreadyDoneError",
    "Context",
    "Delay",
    "Executor",
    "ExecutorClosedError",
    "ExecutorConfig",
    "GeneratorComputation",
    "MinitaskError",
    "NoopWaker",
    "Notified",
    "Notify",
    "Poll",
    "Ready",
    "RoundRobinExecutor",
    "Task",
    "TaskHandle",
    "TaskNotDoneError",
    "TaskState",
    "TaskWaker",
    "Waker",
    "as_computation",
    "do",
    "from_coroutine",
    "is_ready",
    "notify_delay",
    "run",
    "sleep",
]
