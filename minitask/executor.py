"""Executors: drive spawned computations to completion.

Two scheduling policies are provided as separate classes and are never mixed:

- ``Executor`` (wake-driven, the default). A task enters the ready queue only
  when it is spawned or when its waker fires. Each dequeued task is advanced
  exactly once; a pending task is *not* re-enqueued by the executor, only by a
  later ``wake()``. No CPU is spent on a task unless progress is plausible.

- ``RoundRobinExecutor`` (simplified mode). Tasks sit in a FIFO list and are
  advanced in turn with a ``NoopWaker``; pending tasks go to the back. This
  busy-polls and relies on outside state (e.g. time passing) changing between
  passes rather than on notifications.

Both run on the calling thread: one thread advances tasks, any thread may
wake them.
"""

from __future__ import annotations

import queue
import threading
import time
from collections import deque
from typing import Any, Final, TypeVar

from loguru import logger

from minitask.computation import Computation
from minitask.config import ExecutorConfig
from minitask.do import as_computation
from minitask.errors import ExecutorClosedError
from minitask.task import Task, TaskHandle, TaskState
from minitask.waker import NoopWaker

T = TypeVar("T")

_log = logger.bind(component="executor")


class _Stop:
    def __repr__(self) -> str:
        return "STOP"


_STOP: Final = _Stop()


class Executor:
    """Wake-driven single-threaded executor.

    Example::

        executor = Executor()
        handle = executor.spawn(job())
        executor.run()
        assert handle.result() == "done"
    """

    def __init__(self, config: ExecutorConfig | None = None) -> None:
        self._config = config or ExecutorConfig()
        self._ready: queue.Queue[Task[Any] | _Stop] = queue.Queue()
        self._lock = threading.Lock()
        self._live = 0
        self._closed = False

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    @property
    def live_tasks(self) -> int:
        """Number of spawned tasks that have not finished yet."""
        with self._lock:
            return self._live

    @property
    def ready_count(self) -> int:
        """Approximate number of entries in the ready queue."""
        return self._ready.qsize()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def spawn(self, computation: Computation[T] | Any, *, name: str | None = None) -> TaskHandle[T]:
        """Submit work. Never blocks beyond a queue push.

        Accepts a ``Computation``, a generator yielding computations, or a
        coroutine awaiting them. Callable from any thread, including from
        inside a running computation.
        """
        comp = as_computation(computation)
        task: Task[T] = Task(comp, self._enqueue, name=name)
        with self._lock:
            if self._closed:
                raise ExecutorClosedError("cannot spawn on a closed executor")
            self._live += 1
        if self._config.debug:
            _log.debug("spawn {} ({!r})", task.name, comp)
        task.schedule()
        return task.handle

    def run(self) -> None:
        """Drive all spawned work until every task has finished.

        Blocks while tasks are suspended waiting for a wake. A computation
        that never resolves blocks forever.
        """
        if self.closed:
            raise ExecutorClosedError("cannot run a closed executor")
        while True:
            with self._lock:
                if self._live == 0:
                    break
            item = self._ready.get()
            if item is _STOP:
                break
            self._run_task(item)
        self._discard_stale()

    def run_forever(self) -> None:
        """Drive tasks until ``stop()`` is called, idling when nothing is ready."""
        while True:
            item = self._ready.get()
            if item is _STOP:
                break
            self._run_task(item)

    def stop(self) -> None:
        """Make ``run``/``run_forever`` return after the current advance."""
        self._ready.put(_STOP)

    def close(self) -> None:
        """Refuse further spawns and ignore wakes from now on.

        A ``run``/``run_forever`` blocked on another thread returns once the
        entries already queued have been advanced.
        """
        with self._lock:
            self._closed = True
        self._discard_stale()
        self._ready.put(_STOP)

    def __enter__(self) -> Executor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _enqueue(self, task: Task[Any]) -> None:
        # Called from TaskWaker.wake(), possibly on a foreign thread.
        with self._lock:
            if self._closed:
                return
        self._ready.put(task)

    def _run_task(self, task: Task[Any]) -> None:
        if not task.begin():
            return
        if self._config.debug:
            _log.debug("advance {} (#{})", task.name, task.advance_count + 1)
        if task.run():
            with self._lock:
                self._live -= 1
            if self._config.debug:
                _log.debug("{} finished", task.name)
        elif self._config.debug and task.state is TaskState.SCHEDULED:
            _log.debug("{} woken during advance, re-enqueued", task.name)

    def _discard_stale(self) -> None:
        # Drop entries left behind by redundant wakes of finished tasks.
        kept: list[Task[Any]] = []
        while True:
            try:
                item = self._ready.get_nowait()
            except queue.Empty:
                break
            if isinstance(item, Task) and item.state is not TaskState.COMPLETE:
                kept.append(item)
        for task in kept:
            self._ready.put(task)


class RoundRobinExecutor:
    """Cooperative round-robin executor using no-op wakers.

    Every outstanding task is re-advanced on every pass whether or not
    anything woke it. Simpler, but burns CPU while tasks wait; use
    ``ExecutorConfig.idle_sleep`` to pause between passes.
    """

    def __init__(self, config: ExecutorConfig | None = None) -> None:
        self._config = config or ExecutorConfig()
        self._tasks: deque[Task[Any]] = deque()
        self._waker = NoopWaker()

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, computation: Computation[T] | Any, *, name: str | None = None) -> TaskHandle[T]:
        comp = as_computation(computation)
        task: Task[T] = Task(comp, None, name=name)
        if self._config.debug:
            _log.debug("spawn {} ({!r}) [round-robin]", task.name, comp)
        self._tasks.append(task)
        return task.handle

    def run_once(self) -> int:
        """Advance each task present at the start of the pass exactly once.

        Returns the number of tasks that finished during the pass.
        """
        finished = 0
        for _ in range(len(self._tasks)):
            task = self._tasks.popleft()
            if task.poll(self._waker):
                finished += 1
                if self._config.debug:
                    _log.debug("{} finished [round-robin]", task.name)
            else:
                self._tasks.append(task)
        return finished

    def run(self) -> None:
        """Pass over the task list until it is empty."""
        while self._tasks:
            finished = self.run_once()
            if not finished and self._tasks and self._config.idle_sleep > 0:
                time.sleep(self._config.idle_sleep)


def run(computation: Computation[T] | Any, *, config: ExecutorConfig | None = None) -> T:
    """Run one computation on a fresh executor and return its value.

    Raises whatever exception ended the computation.
    """
    with Executor(config) as executor:
        handle = executor.spawn(computation)
        executor.run()
    return handle.result()


__all__ = [
    "Executor",
    "RoundRobinExecutor",
    "run",
]
