"""
Pytest configuration for minitask tests.

Provides a fresh executor per test, a controllable clock for timer tests, a
counter for timer threads started by ``Delay`` and a loguru sink that collects
log records.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator

import pytest
from loguru import logger

from minitask import Delay, Executor


class FakeClock:
    """Manually advanced monotonic clock.

    ``sleep`` advances the clock instead of blocking, so a timer thread using
    it fires immediately with the clock at its deadline.
    """

    def __init__(self, start: float = 100.0) -> None:
        self._now = start
        self._lock = threading.Lock()
        self.sleeps: list[float] = []

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self._now += seconds


class TimerSpawnCounter:
    def __init__(self) -> None:
        self.threads: list[threading.Thread] = []

    @property
    def count(self) -> int:
        return len(self.threads)


@pytest.fixture
def executor() -> Iterator[Executor]:
    """Wake-driven executor, closed after the test."""
    ex = Executor()
    yield ex
    ex.close()


@pytest.fixture
def log_records() -> Iterator[list[dict]]:
    """Capture loguru records emitted during the test, DEBUG and above."""
    records: list[dict] = []
    sink_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(sink_id)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timer_spawns(monkeypatch: pytest.MonkeyPatch) -> TimerSpawnCounter:
    """Count timer threads started by any ``Delay``."""
    counter = TimerSpawnCounter()
    original = Delay._start_timer_thread

    def counting(self: Delay) -> threading.Thread:
        thread = original(self)
        counter.threads.append(thread)
        return thread

    monkeypatch.setattr(Delay, "_start_timer_thread", counting)
    return counter
