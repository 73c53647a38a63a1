"""Notification primitive for handing wakes across threads.

``Notify`` hides waker bookkeeping behind two calls: a computation waits on
``notify.notified()`` and any thread calls ``notify.notify_one()``. If nobody
is waiting, a single permit is stored and consumed by the next waiter.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable

from minitask.computation import PENDING, Computation, Context, Poll, Ready
from minitask.do import ComputationGenerator, do
from minitask.errors import ComputationAlreadyDoneError
from minitask.waker import Waker


class _Waiter:
    __slots__ = ("notified", "waker")

    def __init__(self, waker: Waker) -> None:
        self.waker = waker
        self.notified = False


class Notify:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._permit = False
        self._waiters: deque[_Waiter] = deque()

    @property
    def waiter_count(self) -> int:
        with self._lock:
            return len(self._waiters)

    def notified(self) -> Notified:
        """Return a computation that resolves on the next notification."""
        return Notified(self)

    def notify_one(self) -> None:
        """Wake the longest-waiting ``Notified``, or store a permit."""
        with self._lock:
            if not self._waiters:
                self._permit = True
                return
            waiter = self._waiters.popleft()
            waiter.notified = True
            waker = waiter.waker
        waker.wake()

    def notify_waiters(self) -> int:
        """Wake every current waiter without storing a permit.

        Returns the number of waiters woken.
        """
        with self._lock:
            waiters = list(self._waiters)
            self._waiters.clear()
            for waiter in waiters:
                waiter.notified = True
        for waiter in waiters:
            waiter.waker.wake()
        return len(waiters)


class Notified(Computation[None]):
    """Waits for one notification from its ``Notify``."""

    def __init__(self, notify: Notify) -> None:
        self._notify = notify
        self._waiter: _Waiter | None = None
        self._resolved = False

    def advance(self, ctx: Context) -> Poll[None]:
        if self._resolved:
            raise ComputationAlreadyDoneError(self)
        notify = self._notify
        with notify._lock:
            if self._waiter is None:
                if notify._permit:
                    notify._permit = False
                    self._resolved = True
                    return Ready(None)
                self._waiter = _Waiter(ctx.waker.clone())
                notify._waiters.append(self._waiter)
                return PENDING
            if self._waiter.notified:
                self._resolved = True
                return Ready(None)
            if not self._waiter.waker.will_wake(ctx.waker):
                self._waiter.waker = ctx.waker.clone()
            return PENDING


@do
def notify_delay(
    seconds: float,
    *,
    now: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> ComputationGenerator[None]:
    """Delay built from a ``Notify`` and a one-shot thread.

    Equivalent to ``Delay.after(seconds)`` but the waker bookkeeping lives in
    ``Notify`` instead of the timer itself.
    """
    deadline = now() + seconds
    notify = Notify()

    def _timer() -> None:
        remaining = deadline - now()
        if remaining > 0:
            sleep(remaining)
        notify.notify_one()

    threading.Thread(target=_timer, name="minitask-notify-timer", daemon=True).start()
    yield notify.notified()


__all__ = [
    "Notified",
    "Notify",
    "notify_delay",
]
