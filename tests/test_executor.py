"""Tests for the wake-driven Executor."""

from __future__ import annotations

import threading
import time

import pytest

from minitask import (
    PENDING,
    Computation,
    Context,
    Delay,
    Executor,
    ExecutorClosedError,
    ExecutorConfig,
    Notify,
    Ready,
    TaskNotDoneError,
    Waker,
    do,
    run,
)

# =============================================================================
# Test computations
# =============================================================================


class Latch(Computation[str]):
    """Resolves once ``release()`` is called from any thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._released = False
        self._waker: Waker | None = None

    def release(self) -> None:
        with self._lock:
            self._released = True
            waker = self._waker
        if waker is not None:
            waker.wake()

    def advance(self, ctx: Context) -> Ready[str] | object:
        with self._lock:
            if self._released:
                return Ready("released")
            self._waker = ctx.waker.clone()
            return PENDING


class NeverWakes(Computation[None]):
    """Breaks the suspend contract: pending without arranging a wake."""

    def __init__(self) -> None:
        self.advances = 0

    def advance(self, ctx: Context) -> object:
        self.advances += 1
        return PENDING


class CountingResolver(Computation[int]):
    """Wakes itself immediately and resolves on the n-th advance."""

    def __init__(self, ready_after: int) -> None:
        self.ready_after = ready_after
        self.advances = 0
        self.resolved = False

    def advance(self, ctx: Context) -> Ready[int] | object:
        assert not self.resolved, "advanced after resolving"
        self.advances += 1
        if self.advances >= self.ready_after:
            self.resolved = True
            return Ready(self.advances)
        ctx.waker.wake()
        return PENDING


class Exploding(Computation[None]):
    def advance(self, ctx: Context) -> object:
        raise ValueError("boom")


@do
def wait_then_done(seconds: float):
    yield Delay.after(seconds)
    return "done"


# =============================================================================
# Scenarios
# =============================================================================


def test_ten_millisecond_timer_scenario(executor):
    handle = executor.spawn(wait_then_done(0.01))

    start = time.monotonic()
    executor.run()
    elapsed = time.monotonic() - start

    assert handle.result() == "done"
    assert 0.01 <= elapsed < 0.1


def test_past_deadline_resolves_on_first_advance_without_thread(executor, timer_spawns):
    delay = Delay(time.monotonic() - 1.0)
    handle = executor.spawn(delay)

    executor.run()

    assert handle.done()
    assert handle.result() is None
    assert timer_spawns.count == 0


def test_thousand_concurrent_timers(executor):
    delays = [Delay.after(0.001) for _ in range(1000)]
    handles = [executor.spawn(delay) for delay in delays]

    executor.run()

    assert all(handle.done() for handle in handles)
    assert all(handle.exception() is None for handle in handles)
    assert executor.ready_count == 0
    assert executor.live_tasks == 0

    threads = [d.timer_thread for d in delays if d.timer_thread is not None]
    for thread in threads:
        thread.join(timeout=2.0)
    assert not any(thread.is_alive() for thread in threads)


@pytest.mark.parametrize("seconds", [-0.5, 0.0, 0.005, 0.03])
def test_liveness_for_any_deadline(executor, seconds):
    handle = executor.spawn(Delay(time.monotonic() + seconds))

    runner = threading.Thread(target=executor.run, daemon=True)
    runner.start()
    runner.join(timeout=max(seconds, 0) + 2.0)

    assert not runner.is_alive()
    assert handle.done()


# =============================================================================
# Wake protocol
# =============================================================================


def test_wake_from_foreign_thread_resumes_task(executor):
    latch = Latch()
    handle = executor.spawn(latch)

    threading.Timer(0.02, latch.release).start()
    executor.run()

    assert handle.result() == "released"


def test_pending_task_is_not_requeued_without_wake(executor):
    latch = Latch()
    handle = executor.spawn(latch)
    runner = threading.Thread(target=executor.run, daemon=True)
    runner.start()

    time.sleep(0.05)
    assert not handle.done()
    assert executor.ready_count == 0

    latch.release()
    runner.join(timeout=2.0)
    assert handle.result() == "released"


def test_contract_violation_stalls_the_task(executor):
    comp = NeverWakes()
    handle = executor.spawn(comp)
    runner = threading.Thread(target=executor.run, daemon=True)
    runner.start()

    runner.join(timeout=0.1)
    assert runner.is_alive()
    assert comp.advances == 1
    assert not handle.done()

    executor.stop()
    runner.join(timeout=2.0)
    assert not runner.is_alive()
    with pytest.raises(TaskNotDoneError):
        handle.result()


def test_resolved_computation_is_never_advanced_again(executor):
    comp = CountingResolver(ready_after=3)
    handle = executor.spawn(comp)

    executor.run()

    assert handle.result() == 3
    assert comp.advances == 3


def test_redundant_wakes_after_completion_are_discarded(executor):
    latch = Latch()
    handle = executor.spawn(latch)
    threading.Timer(0.01, latch.release).start()
    executor.run()

    # The stored waker outlives the task; waking it again is harmless.
    latch._waker.wake()
    latch._waker.wake()

    assert handle.result() == "released"
    assert executor.ready_count == 0


class OverlapProbe(Computation[int]):
    """Records the peak number of concurrent advances."""

    def __init__(self, advances_needed: int) -> None:
        self._lock = threading.Lock()
        self._active = 0
        self.peak = 0
        self.advances = 0
        self.advances_needed = advances_needed
        self.waker: Waker | None = None
        self.waker_ready = threading.Event()
        self.finished = threading.Event()

    def advance(self, ctx: Context) -> Ready[int] | object:
        with self._lock:
            self._active += 1
            self.peak = max(self.peak, self._active)
        try:
            self.waker = ctx.waker.clone()
            self.waker_ready.set()
            self.advances += 1
            time.sleep(0.0005)
            if self.advances >= self.advances_needed:
                self.finished.set()
                return Ready(self.advances)
            return PENDING
        finally:
            with self._lock:
                self._active -= 1


def test_concurrent_wakes_never_overlap_advances(executor):
    probe = OverlapProbe(advances_needed=40)
    handle = executor.spawn(probe)

    def hammer() -> None:
        probe.waker_ready.wait(timeout=2.0)
        while not probe.finished.is_set():
            probe.waker.wake()

    hammers = [threading.Thread(target=hammer, daemon=True) for _ in range(4)]
    for thread in hammers:
        thread.start()

    executor.run()
    for thread in hammers:
        thread.join(timeout=2.0)

    assert handle.result() == 40
    assert probe.peak == 1


# =============================================================================
# Failure isolation
# =============================================================================


def test_failing_task_does_not_affect_siblings(executor, log_records):
    bad = executor.spawn(Exploding())
    good = executor.spawn(wait_then_done(0.005))
    other = executor.spawn(CountingResolver(ready_after=2))

    executor.run()

    assert isinstance(bad.exception(), ValueError)
    with pytest.raises(ValueError, match="boom"):
        bad.result()
    assert good.result() == "done"
    assert other.result() == 2
    assert executor.live_tasks == 0
    assert executor.ready_count == 0

    errors = [r for r in log_records if r["level"].name == "ERROR"]
    assert [r["message"] for r in errors] == [f"{bad.name} failed"]
    assert errors[0]["extra"]["component"] == "task"
    assert errors[0]["exception"].type is ValueError
    assert errors[0]["exception"].value is bad.exception()


def test_failure_is_not_retried(executor):
    attempts = []

    class FailsOnce(Computation[str]):
        def advance(self, ctx: Context) -> object:
            attempts.append(1)
            raise RuntimeError("no retry")

    handle = executor.spawn(FailsOnce())
    executor.run()

    assert len(attempts) == 1
    assert isinstance(handle.exception(), RuntimeError)


# =============================================================================
# Spawning and lifecycle
# =============================================================================


def test_spawn_from_inside_a_running_computation(executor):
    @do
    def child():
        yield Delay.after(0.005)
        return "child"

    @do
    def parent():
        handle = executor.spawn(child())
        yield Delay.after(0.001)
        return handle

    parent_handle = executor.spawn(parent())
    executor.run()

    child_handle = parent_handle.result()
    assert child_handle.result() == "child"


def test_spawn_accepts_coroutines(executor):
    async def job():
        await Delay.after(0.001)
        return 7

    handle = executor.spawn(job())
    executor.run()

    assert handle.result() == 7


def test_spawn_rejects_plain_values(executor):
    with pytest.raises(TypeError, match="cannot drive"):
        executor.spawn(42)


def test_run_with_no_tasks_returns_immediately(executor):
    executor.run()
    assert executor.live_tasks == 0


def test_executor_can_run_again_after_draining(executor):
    first = executor.spawn(wait_then_done(0.001))
    executor.run()
    second = executor.spawn(wait_then_done(0.001))
    executor.run()

    assert first.result() == "done"
    assert second.result() == "done"


def test_run_forever_until_stop():
    executor = Executor()
    runner = threading.Thread(target=executor.run_forever, daemon=True)
    runner.start()

    handle = executor.spawn(wait_then_done(0.005))
    assert handle.wait(timeout=2.0)

    executor.stop()
    runner.join(timeout=2.0)
    assert not runner.is_alive()
    assert handle.result() == "done"


def test_closed_executor_rejects_spawn_and_run():
    executor = Executor()
    executor.close()

    with pytest.raises(ExecutorClosedError):
        executor.spawn(Delay.after(0))
    with pytest.raises(ExecutorClosedError):
        executor.run()


def test_close_unblocks_run_waiting_on_another_thread(executor):
    notify = Notify()
    handle = executor.spawn(notify.notified())
    runner = threading.Thread(target=executor.run, daemon=True)
    runner.start()
    runner.join(timeout=0.05)
    assert runner.is_alive()

    executor.close()
    notify.notify_one()
    runner.join(timeout=1.0)

    assert not runner.is_alive()
    assert not handle.done()


def test_context_manager_closes():
    with Executor() as executor:
        handle = executor.spawn(wait_then_done(0))
        executor.run()

    assert executor.closed
    assert handle.result() == "done"


def test_debug_config_runs_with_tracing(log_records):
    executor = Executor(ExecutorConfig(debug=True))
    handle = executor.spawn(wait_then_done(0.02), name="traced")
    executor.run()

    assert handle.result() == "done"
    debug = [r["message"] for r in log_records if r["level"].name == "DEBUG"]
    assert debug[0].startswith("spawn traced (")
    assert "advance traced (#1)" in debug
    assert "advance traced (#2)" in debug
    assert debug[-1] == "traced finished"


def test_default_config_does_not_trace(executor, log_records):
    handle = executor.spawn(wait_then_done(0.001))
    executor.run()

    assert handle.result() == "done"
    assert not [r for r in log_records if r["level"].name == "DEBUG"]


def test_run_helper_returns_value():
    assert run(wait_then_done(0.001)) == "done"


def test_run_helper_raises_task_exception():
    with pytest.raises(ValueError, match="boom"):
        run(Exploding())
