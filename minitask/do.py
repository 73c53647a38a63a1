"""
Generator and coroutine composition.

``@do`` turns a generator function into a factory of computations. Inside the
generator, ``value = yield computation`` suspends until the inner computation
is ready and resumes with its value::

    @do
    def fetch_twice():
        yield Delay.after(0.01)
        yield Delay.after(0.01)
        return "done"

Native coroutines work the same way because every ``Computation`` is
awaitable; ``from_coroutine`` (or ``Executor.spawn``) adapts them::

    async def fetch_twice():
        await Delay.after(0.01)
        return "done"

The inner computation is advanced with the outer context, so whatever waker
drives the outer computation is the one the inner suspension source stores.
Exceptions raised by an inner computation are thrown into the generator at
the ``yield``/``await`` and may be caught there.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Coroutine, Generator
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from minitask.computation import PENDING, Computation, Context, Poll, Ready
from minitask.errors import ComputationAlreadyDoneError

P = ParamSpec("P")
T = TypeVar("T")

ComputationGenerator = Generator[Computation[Any], Any, T]


class GeneratorComputation(Computation[T]):
    """Drives a generator or coroutine that yields computations."""

    def __init__(
        self,
        gen: ComputationGenerator[T] | Coroutine[Computation[Any], Any, T],
        *,
        name: str | None = None,
    ) -> None:
        self._gen = gen
        self._name = name or getattr(gen, "__qualname__", type(gen).__name__)
        self._current: Computation[Any] | None = None
        self._finished = False

    @property
    def name(self) -> str:
        return self._name

    def advance(self, ctx: Context) -> Poll[T]:
        if self._finished:
            raise ComputationAlreadyDoneError(self)

        send_value: Any = None
        error: BaseException | None = None

        while True:
            if self._current is not None:
                try:
                    poll = self._current.advance(ctx)
                except Exception as exc:
                    self._current = None
                    error = exc
                else:
                    if poll is PENDING:
                        return PENDING
                    self._current = None
                    send_value = poll.value

            try:
                if error is not None:
                    pending_error, error = error, None
                    yielded = self._gen.throw(pending_error)
                else:
                    yielded = self._gen.send(send_value)
            except StopIteration as stop:
                self._finished = True
                return Ready(stop.value)
            except BaseException:
                self._finished = True
                raise

            send_value = None
            if isinstance(yielded, Computation):
                self._current = yielded
            else:
                error = TypeError(
                    f"{self._name} yielded {type(yielded).__name__}; "
                    "only Computation instances can be awaited"
                )

    def __repr__(self) -> str:
        state = "finished" if self._finished else "running"
        return f"GeneratorComputation({self._name}, {state})"


def from_coroutine(coro: Coroutine[Any, Any, T]) -> GeneratorComputation[T]:
    """Adapt a native coroutine whose awaits are all computations."""
    if not inspect.iscoroutine(coro):
        raise TypeError(f"expected a coroutine object, got {type(coro).__name__}")
    return GeneratorComputation(coro)


def as_computation(obj: Any) -> Computation[Any]:
    """Return ``obj`` as a computation, adapting generators and coroutines."""
    if isinstance(obj, Computation):
        return obj
    if inspect.iscoroutine(obj) or inspect.isgenerator(obj):
        return GeneratorComputation(obj)
    raise TypeError(
        f"cannot drive {type(obj).__name__}; expected a Computation, generator or coroutine"
    )


def do(
    func: Callable[P, ComputationGenerator[T]],
) -> Callable[P, GeneratorComputation[T]]:
    """Decorator that turns a generator function into a computation factory.

    Each call creates a fresh generator, so the decorated function can be
    called repeatedly to build independent computations.
    """

    @wraps(func)
    def factory(*args: P.args, **kwargs: P.kwargs) -> GeneratorComputation[T]:
        gen = func(*args, **kwargs)
        if not inspect.isgenerator(gen):
            raise TypeError(f"@do function {func.__qualname__} must be a generator function")
        return GeneratorComputation(gen, name=func.__qualname__)

    return factory


__all__ = [
    "ComputationGenerator",
    "GeneratorComputation",
    "as_computation",
    "do",
    "from_coroutine",
]
