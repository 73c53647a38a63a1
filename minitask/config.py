"""Executor configuration.

Values are passed explicitly or read from the environment:

- ``MINITASK_DEBUG``: ``1``/``true``/``yes`` turns on debug tracing of spawn,
  advance and re-enqueue events.
- ``MINITASK_IDLE_SLEEP``: seconds the round-robin executor pauses between
  passes that made no progress (``0`` busy-polls).
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass

_TRUTHY = ("1", "true", "yes")
_FALSY = ("", "0", "false", "no")


def _parse_flag(raw: str, *, name: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{name} must be one of {_TRUTHY + _FALSY}, got {raw!r}")


def _parse_seconds(raw: str, *, name: str) -> float:
    try:
        seconds = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from None
    if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        raise ValueError(f"{name} must be finite and non-negative, got {raw!r}")
    return seconds


@dataclass(frozen=True)
class ExecutorConfig:
    debug: bool = False
    idle_sleep: float = 0.0

    def __post_init__(self) -> None:
        if math.isnan(self.idle_sleep) or math.isinf(self.idle_sleep) or self.idle_sleep < 0:
            raise ValueError(f"idle_sleep must be finite and non-negative, got {self.idle_sleep!r}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ExecutorConfig:
        """Build a config from ``MINITASK_*`` environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            debug=_parse_flag(env.get("MINITASK_DEBUG", ""), name="MINITASK_DEBUG"),
            idle_sleep=_parse_seconds(
                env.get("MINITASK_IDLE_SLEEP", "0"), name="MINITASK_IDLE_SLEEP"
            ),
        )


__all__ = ["ExecutorConfig"]
