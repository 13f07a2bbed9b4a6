import asyncio
import inspect
import re
from dataclasses import dataclass
from typing import Any, Callable

from outcomes import WaitTimeout


DEFAULT_POLL_INTERVAL_MS = 100


@dataclass(frozen=True)
class SatisfiedAt:
    elapsed_ms: float
    value: Any = True

    def __bool__(self) -> bool:
        return True

    def unwrap(self, what: str = "condition") -> Any:
        return self.value


@dataclass(frozen=True)
class TimedOut:
    elapsed_ms: float
    timeout_ms: float

    def __bool__(self) -> bool:
        return False

    def unwrap(self, what: str = "condition") -> Any:
        raise WaitTimeout(what, self.elapsed_ms, self.timeout_ms)


async def wait_until(
    predicate: Callable[[], Any],
    timeout_ms: float,
    poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS,
    min_evaluation_ms: float | None = None,
) -> SatisfiedAt | TimedOut:
    """Poll predicate at a fixed interval until it returns something truthy.

    The first evaluation happens immediately. TimedOut is only returned once the
    deadline (measured from this call) has passed. An async evaluation is
    cancelled once it has run for the remaining time, or for min_evaluation_ms
    (default: one poll interval) if that is longer. Exceptions raised by the
    predicate propagate.
    """
    if timeout_ms is None:
        raise ValueError("wait_until requires an explicit timeout_ms")
    if timeout_ms < 0:
        raise ValueError(f"timeout_ms must be >= 0, got {timeout_ms}")
    if poll_interval_ms <= 0:
        raise ValueError(f"poll_interval_ms must be > 0, got {poll_interval_ms}")

    if min_evaluation_ms is None:
        min_evaluation_ms = poll_interval_ms

    loop = asyncio.get_running_loop()
    start = loop.time()
    deadline = start + timeout_ms / 1000

    def elapsed_ms() -> float:
        return (loop.time() - start) * 1000

    while True:
        value = predicate()
        if inspect.isawaitable(value):
            remaining = deadline - loop.time()
            try:
                value = await asyncio.wait_for(value, timeout=max(remaining, min_evaluation_ms / 1000))
            except asyncio.TimeoutError:
                value = None
        if value:
            return SatisfiedAt(elapsed_ms(), value)
        now = loop.time()
        if now >= deadline:
            return TimedOut(elapsed_ms(), timeout_ms)
        await asyncio.sleep(min(poll_interval_ms / 1000, deadline - now))


async def wait_for_text(locator, timeout_ms: float, poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS) -> SatisfiedAt | TimedOut:
    """Wait until the locator has non-empty text content; the value is the stripped text."""
    async def text_present():
        if await locator.count() == 0:
            return None
        return ((await locator.text_content()) or "").strip()

    return await wait_until(text_present, timeout_ms, poll_interval_ms)


async def wait_for_stable_text(locator, timeout_ms: float, poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS) -> SatisfiedAt | TimedOut:
    """Wait until two consecutive polls read the same non-empty text."""
    last = {"text": None}

    async def settled():
        if await locator.count() == 0:
            return None
        text = ((await locator.text_content()) or "").strip()
        stable = text and text == last["text"]
        last["text"] = text
        return text if stable else None

    return await wait_until(settled, timeout_ms, poll_interval_ms)


async def wait_for_url(page, pattern: str, timeout_ms: float, poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS) -> SatisfiedAt | TimedOut:
    """Wait until page.url matches the regex pattern (case-insensitive)."""
    rx = re.compile(pattern, re.I)
    return await wait_until(lambda: page.url if rx.search(page.url or "") else None, timeout_ms, poll_interval_ms)
