"""Wake handles.

A waker is the token a suspended computation keeps so that whatever it is
waiting on can ask for it to be advanced again. ``wake()`` may be called from
any thread, any number of times. Redundant wakes at most cause one extra
advance that finds the computation still pending.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from minitask.task import Task


class Waker(ABC):
    __slots__ = ()

    @abstractmethod
    def wake(self) -> None:
        """Signal that the associated computation should be advanced again."""

    @abstractmethod
    def will_wake(self, other: Waker) -> bool:
        """Return ``True`` if ``other`` wakes the same target as this waker."""

    def clone(self) -> Waker:
        # Wakers are immutable, so sharing the instance is a valid clone.
        return self


class NoopWaker(Waker):
    """Waker that does nothing.

    Only valid under the round-robin executor, which re-advances every
    outstanding task on every pass regardless of notifications.
    """

    def wake(self) -> None:
        return None

    def will_wake(self, other: Waker) -> bool:
        return isinstance(other, NoopWaker)

    def __repr__(self) -> str:
        return "NoopWaker()"


class CallbackWaker(Waker):
    """Waker that invokes an arbitrary callable.

    Useful for driving a computation by hand, outside of an executor.
    """

    __slots__ = ("_callback",)

    def __init__(self, callback: Callable[[], object]) -> None:
        self._callback = callback

    def wake(self) -> None:
        self._callback()

    def will_wake(self, other: Waker) -> bool:
        return isinstance(other, CallbackWaker) and other._callback is self._callback

    def __repr__(self) -> str:
        return f"CallbackWaker({self._callback!r})"


class TaskWaker(Waker):
    """Waker bound to an executor task; waking re-enqueues the task."""

    __slots__ = ("_task",)

    def __init__(self, task: Task) -> None:
        self._task = task

    @property
    def task(self) -> Task:
        return self._task

    def wake(self) -> None:
        self._task.schedule()

    def will_wake(self, other: Waker) -> bool:
        return isinstance(other, TaskWaker) and other._task is self._task

    def __repr__(self) -> str:
        return f"TaskWaker({self._task.name})"


__all__ = [
    "CallbackWaker",
    "NoopWaker",
    "TaskWaker",
    "Waker",
]
