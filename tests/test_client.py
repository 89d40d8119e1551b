from __future__ import annotations

import asyncio
from collections.abc import Collection, Mapping, Sequence
from typing import Any

import pytest

from pyder.client import DerClient
from pyder.config import DerConfig
from pyder.exceptions import DerError
from pyder.models.signal import PublisherState


class _FakeTransport:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def allow_nested_calls(self) -> None:
        pass

    def subscribe(self, address: str, property_names: Sequence[str]) -> None:
        self.calls.append(("subscribe", address))

    def unsubscribe(self, address: str) -> None:
        self.calls.append(("unsubscribe", address))

    def notify(self, observers: Collection[str], properties: Mapping[str, Any]) -> None:
        self.calls.append(("notify", sorted(observers), dict(properties)))


def _config() -> DerConfig:
    return DerConfig(device_name="der-1", path="/der", tick_period_ms=50, transport_timeout=1.0)


def test_components_require_context() -> None:
    der = DerClient(_config(), transport=_FakeTransport())

    with pytest.raises(DerError):
        _ = der.subscriptions
    with pytest.raises(DerError):
        _ = der.publisher


def test_listener_callbacks_before_start_are_ignored() -> None:
    der = DerClient(_config(), transport=_FakeTransport())

    der.on_discovered(":1.1")
    der.on_observer_joined("obs-1")

    assert der.signals() == {}


@pytest.mark.asyncio
async def test_signal_lifecycle_through_listener() -> None:
    transport = _FakeTransport()

    async with DerClient(_config(), transport=transport) as der:
        der.on_discovered(":1.7")
        await der.subscriptions.wait_pending()
        assert der.subscriptions.publishers() == {":1.7": PublisherState.SUBSCRIBED}

        der.on_properties_changed(":1.7", {"price": 12, "Time": 900})
        der.on_lost(":1.7")
        await der.subscriptions.wait_pending()

        sample = der.signals()[":1.7"]
        assert (sample.time, sample.price) == (900, 12)

    assert transport.calls == [("subscribe", ":1.7"), ("unsubscribe", ":1.7")]


@pytest.mark.asyncio
async def test_push_reaches_joined_observers() -> None:
    transport = _FakeTransport()

    async with DerClient(_config(), transport=transport) as der:
        assert await der.push() is False
        der.on_observer_joined("obs-1")
        der.set_import_watts("800")
        assert await der.push() is True
        der.on_observer_left("obs-1")
        assert await der.push() is False

    [(_kind, observers, properties)] = transport.calls
    assert observers == ["obs-1"]
    assert properties["DeviceName"] == "der-1"
    assert properties["Path"] == "/der"
    assert properties["ImportPower"] == 800


@pytest.mark.asyncio
async def test_control_loop_runs_while_entered() -> None:
    der = DerClient(_config(), transport=_FakeTransport())
    der.set_export_watts(3600)

    async with der:
        await asyncio.sleep(0.3)
        assert der.scheduler.is_running

    assert not der.scheduler.is_running
    assert der.scheduler.tick_count >= 3
    # 3600 W accumulates 1 Wh per second.
    assert der.snapshot().export_energy_wh == pytest.approx(0.3, abs=0.1)


@pytest.mark.asyncio
async def test_request_stop_ends_control_loop() -> None:
    async with DerClient(_config(), transport=_FakeTransport()) as der:
        der.request_stop()
        await asyncio.sleep(0.05)
        assert not der.scheduler.is_running
