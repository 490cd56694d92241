"""Bounded polling for a condition to become true."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable


@dataclass
class ConditionResult:
    satisfied: bool
    attempts: int
    value: Any = None


async def await_condition(
    predicate: Callable[[], Awaitable[Any]],
    max_attempts: int = 20,
    interval: float = 0.5,
    wait: Callable[[float], Awaitable[Any]] | None = None,
) -> ConditionResult:
    """Evaluate ``predicate`` up to ``max_attempts`` times.

    Between attempts ``wait(interval)`` is awaited; pass a DOM-mutation wait
    to re-check only when the page changes. Defaults to ``asyncio.sleep``.
    The predicate is evaluated exactly ``max_attempts`` times when it never
    succeeds.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    pause = wait or asyncio.sleep
    for attempt in range(1, max_attempts + 1):
        value = await predicate()
        if value:
            return ConditionResult(satisfied=True, attempts=attempt, value=value)
        if attempt < max_attempts:
            await pause(interval)
    return ConditionResult(satisfied=False, attempts=max_attempts)
