from __future__ import annotations

import asyncio
import time

import pytest

from pyder.controller import ResourceController
from pyder.scheduler import ResourceLoop


class _RecordingController(ResourceController):
    def __init__(self, *, tick_cost_s: float = 0.0) -> None:
        super().__init__()
        self.tick_cost_s = tick_cost_s
        self.elapsed: list[float] = []

    def tick(self, elapsed_ms: float) -> None:
        self.elapsed.append(elapsed_ms)
        if self.tick_cost_s:
            time.sleep(self.tick_cost_s)
        super().tick(elapsed_ms)


@pytest.mark.asyncio
async def test_scheduler_integrates_wall_time() -> None:
    controller = ResourceController()
    controller.set_import_watts(1000)
    loop = ResourceLoop(controller, period_ms=500)
    stop = asyncio.Event()

    task = asyncio.create_task(loop.run(stop))
    await asyncio.sleep(2.0)
    stop.set()
    await task

    # 1000 W for ~2000 ms is ~0.5556 Wh
    assert controller.import_energy == pytest.approx(1000 * 2000 / 3_600_000, rel=0.1)
    assert controller.export_energy == 0.0
    assert 4 <= loop.tick_count <= 7


@pytest.mark.asyncio
async def test_elapsed_values_sum_to_wall_time() -> None:
    controller = _RecordingController()
    loop = ResourceLoop(controller, period_ms=20)
    stop = asyncio.Event()

    started = time.monotonic()
    task = asyncio.create_task(loop.run(stop))
    await asyncio.sleep(0.3)
    stop.set()
    await task
    wall_ms = (time.monotonic() - started) * 1000

    assert all(value >= 0 for value in controller.elapsed)
    assert sum(controller.elapsed) == pytest.approx(wall_ms, abs=30)


@pytest.mark.asyncio
async def test_sleep_is_shortened_by_tick_duration() -> None:
    controller = _RecordingController(tick_cost_s=0.03)
    loop = ResourceLoop(controller, period_ms=50)
    stop = asyncio.Event()

    task = asyncio.create_task(loop.run(stop))
    await asyncio.sleep(0.5)
    stop.set()
    await task

    # Period includes the tick cost, so cycles stay close to 50 ms, not 80 ms.
    steady = controller.elapsed[1:-1]
    assert steady
    assert sum(steady) / len(steady) == pytest.approx(50, abs=15)
    assert loop.last_tick_duration_ms >= 25


@pytest.mark.asyncio
async def test_overrunning_tick_does_not_sleep() -> None:
    controller = _RecordingController(tick_cost_s=0.04)
    loop = ResourceLoop(controller, period_ms=10)
    stop = asyncio.Event()

    task = asyncio.create_task(loop.run(stop))
    await asyncio.sleep(0.3)
    stop.set()
    await task

    steady = controller.elapsed[1:-1]
    assert steady
    assert max(steady) < 80


@pytest.mark.asyncio
async def test_stop_wakes_the_sleep_promptly() -> None:
    loop = ResourceLoop(ResourceController(), period_ms=10_000)
    stop = asyncio.Event()

    task = asyncio.create_task(loop.run(stop))
    await asyncio.sleep(0.05)
    started = time.monotonic()
    stop.set()
    await asyncio.wait_for(task, timeout=1.0)

    assert time.monotonic() - started < 0.5
    assert not loop.is_running


@pytest.mark.asyncio
async def test_stop_set_before_start_runs_only_final_tick() -> None:
    controller = _RecordingController()
    loop = ResourceLoop(controller, period_ms=500)
    stop = asyncio.Event()
    stop.set()

    await loop.run(stop)

    assert loop.tick_count == 1
    assert len(controller.elapsed) == 1


@pytest.mark.asyncio
async def test_final_tick_can_be_disabled() -> None:
    controller = _RecordingController()
    loop = ResourceLoop(controller, period_ms=500, final_tick=False)
    stop = asyncio.Event()
    stop.set()

    await loop.run(stop)

    assert loop.tick_count == 0


@pytest.mark.asyncio
async def test_running_twice_is_rejected() -> None:
    loop = ResourceLoop(ResourceController(), period_ms=50)
    stop = asyncio.Event()

    task = asyncio.create_task(loop.run(stop))
    await asyncio.sleep(0)
    with pytest.raises(RuntimeError):
        await loop.run(stop)
    stop.set()
    await task


def test_period_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ResourceLoop(ResourceController(), period_ms=0)
