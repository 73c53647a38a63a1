"""Suspendable computations and the poll protocol.

A computation is a state machine with a single operation, ``advance``. Each
call either finishes with ``Ready(value)`` or returns ``PENDING``.

The contract every implementation must uphold:

    If ``advance(ctx)`` returns ``PENDING``, the computation has arranged,
    directly or through an inner computation, for ``ctx.waker.wake()`` to be
    called once advancing again could make progress.

Returning ``PENDING`` without arranging a wake leaves the owning task
suspended forever. The runtime cannot detect this; tests must.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Generator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, Generic, TypeAlias, TypeVar, final

if TYPE_CHECKING:
    from minitask.waker import Waker

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


@dataclass(frozen=True)
class Ready(Generic[T_co]):
    """Terminal poll outcome carrying the computation's value."""

    value: T_co


@final
class _Pending:
    __slots__ = ()
    _instance: _Pending | None = None

    def __new__(cls) -> _Pending:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PENDING"

    def __bool__(self) -> bool:
        return False


PENDING: Final = _Pending()

Poll: TypeAlias = Ready[T] | _Pending


@dataclass(frozen=True)
class Context:
    """Per-advance context handed to ``Computation.advance``."""

    waker: Waker

    def current_wake_handle(self) -> Waker:
        return self.waker


class Computation(ABC, Generic[T]):
    """Base class for anything the executor can drive.

    Computations are awaitable and can be yielded from ``@do`` generators::

        @do
        def job():
            yield Delay.after(0.01)
            return "done"

        async def job():
            await Delay.after(0.01)
            return "done"
    """

    @abstractmethod
    def advance(self, ctx: Context) -> Poll[T]:
        """Make as much progress as possible without blocking."""

    def __await__(self) -> Generator[Computation[T], Any, T]:
        return (yield self)


def is_ready(poll: Poll[Any]) -> bool:
    return poll is not PENDING


__all__ = [
    "PENDING",
    "Computation",
    "Context",
    "Poll",
    "Ready",
    "is_ready",
]
