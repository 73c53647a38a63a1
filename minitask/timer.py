"""Timer suspension source.

``Delay`` resolves once a deadline on the monotonic clock has passed. The
first advance before the deadline stores the current waker and starts one
background thread that sleeps until the deadline and then calls ``wake()``
on whatever waker is stored at that moment.

State machine::

    Unarmed --(deadline passed)--------------------------> Resolved
    Unarmed --(deadline ahead: store waker, start thread)-> Armed
    Armed   --(deadline passed)--------------------------> Resolved

Between advances the owning computation may be driven under a different
waker, so an armed ``Delay`` replaces its stored waker whenever the new one
would not wake the same target. The slot is guarded by a lock and the timer
thread reads it under that lock, never a cached copy.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from itertools import count

from minitask.computation import PENDING, Computation, Context, Poll, Ready
from minitask.errors import ComputationAlreadyDoneError
from minitask.waker import Waker

_timer_ids = count(1)


class Delay(Computation[None]):
    """Computation that resolves to ``None`` once ``deadline`` has passed.

    Args:
        deadline: Target instant on the same clock as ``now``
            (``time.monotonic`` by default).
        now: Clock function. Injectable for tests.
        sleep: Blocking sleep used by the timer thread. Injectable for tests.
    """

    def __init__(
        self,
        deadline: float,
        *,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if math.isnan(deadline) or math.isinf(deadline):
            raise ValueError(f"deadline must be finite, got {deadline}")
        self._deadline = deadline
        self._now = now
        self._sleep = sleep
        self._lock = threading.Lock()
        self._waker: Waker | None = None
        self._thread: threading.Thread | None = None
        self._resolved = False

    @classmethod
    def after(
        cls,
        seconds: float,
        *,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Delay:
        """Create a delay that resolves ``seconds`` from now."""
        if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
            raise ValueError(f"seconds must be finite and non-negative, got {seconds}")
        return cls(now() + seconds, now=now, sleep=sleep)

    @property
    def deadline(self) -> float:
        return self._deadline

    @property
    def is_armed(self) -> bool:
        return self._thread is not None

    @property
    def is_resolved(self) -> bool:
        return self._resolved

    @property
    def timer_thread(self) -> threading.Thread | None:
        """The background thread, or ``None`` if the delay was never armed."""
        return self._thread

    @property
    def stored_waker(self) -> Waker | None:
        with self._lock:
            return self._waker

    def advance(self, ctx: Context) -> Poll[None]:
        if self._resolved:
            raise ComputationAlreadyDoneError(self)

        if self._thread is None:
            if self._now() >= self._deadline:
                self._resolved = True
                return Ready(None)
            with self._lock:
                self._waker = ctx.waker.clone()
            self._thread = self._start_timer_thread()
            return PENDING

        with self._lock:
            if self._waker is None or not self._waker.will_wake(ctx.waker):
                self._waker = ctx.waker.clone()

        if self._now() >= self._deadline:
            self._resolved = True
            return Ready(None)
        return PENDING

    def _start_timer_thread(self) -> threading.Thread:
        thread = threading.Thread(
            target=self._fire,
            name=f"minitask-timer-{next(_timer_ids)}",
            daemon=True,
        )
        thread.start()
        return thread

    def _fire(self) -> None:
        # Recompute: the thread may start well after the delay was armed.
        remaining = self._deadline - self._now()
        if remaining > 0:
            self._sleep(remaining)
        with self._lock:
            waker = self._waker
        if waker is not None:
            waker.wake()

    def __repr__(self) -> str:
        if self._resolved:
            state = "resolved"
        elif self._thread is not None:
            state = "armed"
        else:
            state = "unarmed"
        return f"Delay(deadline={self._deadline:.6f}, {state})"


def sleep(seconds: float) -> Delay:
    """Return a computation that resolves after ``seconds`` have elapsed."""
    return Delay.after(seconds)


__all__ = ["Delay", "sleep"]
