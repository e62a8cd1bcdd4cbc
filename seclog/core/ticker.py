from __future__ import annotations

import asyncio
import time
from typing import Callable


class Ticker:
    """Async iterator that yields once per tick until ``stop_event`` is set.

    ``delay_fn`` returns the number of seconds to wait before the next tick.
    The wait is interruptible: setting the stop event ends iteration at once,
    but a tick that has already been yielded runs to completion in the
    caller's loop body.

        async for _ in Ticker.every(10, stop_event):
            await poll_once()
    """

    def __init__(
        self,
        delay_fn: Callable[[], float],
        stop_event: asyncio.Event,
        *,
        immediate: bool = False,
    ) -> None:
        self._delay_fn = delay_fn
        self._stop_event = stop_event
        self._immediate = immediate
        self.ticks = 0
        self.last_fire: float | None = None

    @classmethod
    def every(cls, interval: float, stop_event: asyncio.Event, *, immediate: bool = True) -> "Ticker":
        ticker: Ticker

        def _remaining() -> float:
            # Interval counts from the start of the previous tick.
            if ticker.last_fire is None:
                return float(interval)
            elapsed = time.monotonic() - ticker.last_fire
            return max(0.0, float(interval) - elapsed)

        ticker = cls(_remaining, stop_event, immediate=immediate)
        return ticker

    def __aiter__(self) -> "Ticker":
        return self

    async def __anext__(self) -> int:
        if self._stop_event.is_set():
            raise StopAsyncIteration

        if self._immediate and self.ticks == 0:
            return self._fire()

        delay = max(0.0, float(self._delay_fn()))
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return self._fire()
        raise StopAsyncIteration

    def _fire(self) -> int:
        self.ticks += 1
        self.last_fire = time.monotonic()
        return self.ticks
