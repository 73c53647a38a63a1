"""Timers, wakers and the wake-driven executor.

This example spawns a handful of computations on one executor and shows that
the executor only advances a task when something woke it.

Key concepts:
- A ``Delay`` arms a background thread on its first pending advance
- The timer thread calls ``wake()`` on the waker of whichever task owns it
- ``@do`` generators and ``async def`` coroutines compose computations

Run with: uv run python examples/timer_demo.py
"""

import time

from minitask import Delay, Executor, ExecutorConfig, Notify, do


# ============================================================================
# Step 1: Compose computations
# ============================================================================


@do
def staged(label: str, *delays: float):
    for seconds in delays:
        yield Delay.after(seconds)
    return f"{label} finished after {sum(delays) * 1000:.0f}ms"


async def waits_for(notify: Notify) -> str:
    await notify.notified()
    return "notified by a sibling task"


@do
def signals(notify: Notify):
    yield Delay.after(0.015)
    notify.notify_one()
    return "sent notification"


# ============================================================================
# Step 2: Spawn and run
# ============================================================================


def main() -> None:
    executor = Executor(ExecutorConfig.from_env())
    notify = Notify()

    handles = [
        executor.spawn(staged("fast", 0.005)),
        executor.spawn(staged("slow", 0.01, 0.01, 0.01)),
        executor.spawn(waits_for(notify)),
        executor.spawn(signals(notify)),
    ]

    start = time.monotonic()
    executor.run()
    elapsed = (time.monotonic() - start) * 1000

    for handle in handles:
        print(f"{handle.name}: {handle.result()}")
    print(f"all tasks done in {elapsed:.1f}ms")


if __name__ == "__main__":
    main()
