"""Countdown ticker.

A single periodic task owned by whoever holds the timer. Starting it again
cancels the previous task first, so there is never more than one ticking.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from duelsync.config import DEFAULT_TICK_INTERVAL_S

log = logging.getLogger("timer")

TickCallback = Callable[[float], None]


class CountdownTimer:
    def __init__(
        self,
        *,
        interval_s: float = DEFAULT_TICK_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._interval_s = interval_s
        self._clock = clock

        self._task: asyncio.Task | None = None
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def generation(self) -> int:
        return self._generation

    async def _loop(self, generation: int, on_tick: TickCallback, interval_s: float) -> None:
        last = self._clock()
        try:
            while generation == self._generation:
                await asyncio.sleep(interval_s)
                if generation != self._generation:
                    return
                now = self._clock()
                elapsed_ms = (now - last) * 1000.0
                last = now
                on_tick(elapsed_ms)
        except asyncio.CancelledError:
            return

    def start(self, on_tick: TickCallback, *, interval_s: float | None = None) -> None:
        """Cancel any running countdown and start ticking `on_tick`.

        `on_tick` receives the measured milliseconds since the previous tick,
        which tolerates event loop drift better than the nominal interval.
        """
        self.stop()
        self._generation += 1
        self._task = asyncio.create_task(
            self._loop(self._generation, on_tick, interval_s or self._interval_s)
        )

    def stop(self) -> None:
        task = self._task
        self._task = None
        # Bumping the generation also silences a tick already scheduled to run.
        self._generation += 1
        if task and not task.done():
            task.cancel()

    async def wait_stopped(self) -> None:
        """Stop and wait for the tick task to unwind."""
        task = self._task
        self.stop()
        if task:
            # asyncio.wait leaves a cancellation of the caller alone.
            await asyncio.wait({task})
