"""Executor tasks.

A ``Task`` wraps one top-level computation. It is shared between the ready
queue and every ``TaskWaker`` built for it, so a waker may outlive the task's
stay in the queue.

Scheduling state::

    IDLE ------ schedule() -----> SCHEDULED
    SCHEDULED - begin() --------> RUNNING
    RUNNING --- schedule() -----> NOTIFIED     (wake arrived mid-advance)
    RUNNING --- pending --------> IDLE
    NOTIFIED -- pending --------> SCHEDULED    (re-enqueued by the executor)
    RUNNING/NOTIFIED - ready/error -> COMPLETE

``schedule()`` only enqueues on the IDLE -> SCHEDULED edge, so a task is in
the ready queue at most once no matter how many wakes race, and a wake that
arrives during an advance is deferred until that advance has returned.
"""

from __future__ import annotations

import enum
import threading
from collections.abc import Callable
from itertools import count
from typing import Any, Generic, TypeVar

from loguru import logger

from minitask.computation import Computation, Context, Ready
from minitask.errors import TaskNotDoneError
from minitask.waker import TaskWaker, Waker

T = TypeVar("T")

_task_ids = count(1)
_log = logger.bind(component="task")


class TaskState(enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    NOTIFIED = "notified"
    COMPLETE = "complete"


class TaskHandle(Generic[T]):
    """Caller-facing view of a spawned task's outcome."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._done = threading.Event()
        self._value: T | None = None
        self._exception: BaseException | None = None

    @property
    def name(self) -> str:
        return self._name

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the task finishes. Returns ``False`` on timeout."""
        return self._done.wait(timeout)

    def result(self) -> T:
        """Return the task's value, or raise the exception that ended it."""
        if not self._done.is_set():
            raise TaskNotDoneError(self._name)
        if self._exception is not None:
            raise self._exception
        return self._value  # type: ignore[return-value]

    def exception(self) -> BaseException | None:
        if not self._done.is_set():
            raise TaskNotDoneError(self._name)
        return self._exception

    def _set_result(self, value: T) -> None:
        self._value = value
        self._done.set()

    def _set_exception(self, exc: BaseException) -> None:
        self._exception = exc
        self._done.set()

    def __repr__(self) -> str:
        if not self._done.is_set():
            return f"TaskHandle({self._name}, pending)"
        if self._exception is not None:
            return f"TaskHandle({self._name}, failed={self._exception!r})"
        return f"TaskHandle({self._name}, result={self._value!r})"


class Task(Generic[T]):
    """Scheduler-owned wrapper around a top-level computation.

    Args:
        computation: The computation to drive.
        enqueue: Pushes the task onto its executor's ready queue. ``None`` for
            executors that never re-enqueue on wake (round-robin mode).
        name: Optional name used in logs and reprs.
    """

    def __init__(
        self,
        computation: Computation[T],
        enqueue: Callable[[Task[Any]], None] | None = None,
        *,
        name: str | None = None,
    ) -> None:
        self._computation = computation
        self._enqueue = enqueue
        self._name = name or f"task-{next(_task_ids)}"
        # Guards the computation: at most one thread advances it at a time.
        self._guard = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = TaskState.IDLE
        self._advance_count = 0
        self.handle: TaskHandle[T] = TaskHandle(self._name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> TaskState:
        with self._state_lock:
            return self._state

    @property
    def advance_count(self) -> int:
        return self._advance_count

    def waker(self) -> Waker:
        return TaskWaker(self)

    def schedule(self) -> bool:
        """Request an advance. Returns ``True`` if the task was enqueued.

        Safe to call from any thread, any number of times.
        """
        with self._state_lock:
            if self._state is TaskState.IDLE:
                self._state = TaskState.SCHEDULED
            elif self._state is TaskState.RUNNING:
                self._state = TaskState.NOTIFIED
                return False
            else:
                return False
        if self._enqueue is None:
            return False
        self._enqueue(self)
        return True

    def begin(self) -> bool:
        """Claim the task for one advance. ``False`` for stale queue entries."""
        with self._state_lock:
            if self._state is not TaskState.SCHEDULED:
                return False
            self._state = TaskState.RUNNING
            return True

    def poll(self, waker: Waker) -> bool:
        """Advance the computation once under ``waker``.

        Returns ``True`` once the task has finished, successfully or not.
        Exceptions raised by the computation end the task and are recorded on
        its handle; ``KeyboardInterrupt`` and ``SystemExit`` propagate.
        """
        if not self._guard.acquire(blocking=False):
            raise RuntimeError(f"{self._name} is already being advanced by another thread")
        try:
            self._advance_count += 1
            try:
                poll = self._computation.advance(Context(waker))
            except (KeyboardInterrupt, SystemExit):
                raise
            except Exception as exc:
                _log.opt(exception=exc).error("{} failed", self._name)
                self._finish()
                self.handle._set_exception(exc)
                return True
        finally:
            self._guard.release()

        if isinstance(poll, Ready):
            self._finish()
            self.handle._set_result(poll.value)
            return True
        return False

    def suspend(self) -> bool:
        """Record a pending advance. Returns ``True`` if the task was re-enqueued."""
        with self._state_lock:
            if self._state is TaskState.NOTIFIED:
                self._state = TaskState.SCHEDULED
            else:
                self._state = TaskState.IDLE
                return False
        if self._enqueue is None:
            return False
        self._enqueue(self)
        return True

    def run(self) -> bool:
        """Advance once under this task's own waker, as the wake-driven executor does."""
        done = self.poll(self.waker())
        if not done:
            self.suspend()
        return done

    def _finish(self) -> None:
        with self._state_lock:
            self._state = TaskState.COMPLETE

    def __repr__(self) -> str:
        return f"Task({self._name}, {self.state.value})"


__all__ = [
    "Task",
    "TaskHandle",
    "TaskState",
]
