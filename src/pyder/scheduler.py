"""Self-correcting control-loop scheduler.

Provides :class:`ResourceLoop`, which drives
:meth:`pyder.controller.ResourceController.tick` on a fixed target period
while accounting for the time each tick takes:

- each cycle measures how long the tick itself ran
- it then sleeps only the remainder of the period, clamped at zero
- missed time is never made up by sleeping less on later cycles; the next
  tick simply receives the true elapsed time

Usage::

    stop = asyncio.Event()
    loop = ResourceLoop(controller, period_ms=500)
    task = asyncio.create_task(loop.run(stop))

    # Later:
    stop.set()
    await task
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from pyder._constants import TICK_PERIOD_MS
from pyder.controller import ResourceController

_logger = logging.getLogger(__name__)


class ResourceLoop:
    """Runs ``controller.tick(elapsed_ms)`` every *period_ms* until stopped.

    This loop is the sole source of elapsed-time values fed to the
    controller. ``elapsed_ms`` is measured between consecutive tick starts
    with a monotonic clock, so irregular cycles are integrated correctly.
    """

    def __init__(
        self,
        controller: ResourceController,
        *,
        period_ms: float = TICK_PERIOD_MS,
        clock: Callable[[], float] = time.monotonic,
        final_tick: bool = True,
    ) -> None:
        if period_ms <= 0:
            raise ValueError(f"period_ms must be positive, got {period_ms}")
        self._controller = controller
        self._period_ms = float(period_ms)
        self._clock = clock
        self._final_tick = final_tick

        self._tick_count = 0
        self._last_tick_duration_ms = 0.0
        self._running = False

    @property
    def period_ms(self) -> float:
        return self._period_ms

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tick_count(self) -> int:
        """Number of ticks executed (including the final one)."""
        return self._tick_count

    @property
    def last_tick_duration_ms(self) -> float:
        """Wall time spent inside the most recent tick."""
        return self._last_tick_duration_ms

    def _tick(self, previous_start: float) -> float:
        start = self._clock()
        elapsed_ms = max(0.0, (start - previous_start) * 1000.0)
        try:
            self._controller.tick(elapsed_ms)
        except Exception:
            _logger.warning("Control loop tick failed (elapsed=%.3f ms)", elapsed_ms, exc_info=True)
        self._tick_count += 1
        self._last_tick_duration_ms = (self._clock() - start) * 1000.0
        return start

    async def run(self, stop: asyncio.Event) -> None:
        """Tick until *stop* is set.

        *stop* is checked at the top of every cycle and also cuts the sleep
        short. A tick that has started always completes before this
        coroutine returns. When ``final_tick`` is enabled, one last tick
        accounts for the time between the previous tick and the stop.
        """
        if self._running:
            raise RuntimeError("ResourceLoop is already running")
        self._running = True
        _logger.debug("Control loop started period=%.0f ms", self._period_ms)

        previous_start = self._clock()
        try:
            while not stop.is_set():
                previous_start = self._tick(previous_start)

                remaining_s = max(0.0, self._period_ms - self._last_tick_duration_ms) / 1000.0
                if remaining_s <= 0:
                    _logger.debug(
                        "Control loop overran period (tick took %.3f ms)",
                        self._last_tick_duration_ms,
                    )
                    await asyncio.sleep(0)
                    continue
                try:
                    await asyncio.wait_for(stop.wait(), remaining_s)
                except TimeoutError:
                    pass

            if self._final_tick:
                self._tick(previous_start)
        finally:
            self._running = False
            _logger.debug("Control loop stopped after %d ticks", self._tick_count)
