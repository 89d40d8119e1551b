"""High-level async client for a distributed energy resource."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from pyder._client.publisher import DevicePublisher
from pyder._client.subscriptions import SubscriptionManager
from pyder._mqtt import MqttBus
from pyder._transport import BusTransport
from pyder.config import DerConfig
from pyder.controller import ResourceController
from pyder.exceptions import DerError, DerTransportError
from pyder.models.resource import PublishedProperties, ResourceState
from pyder.models.signal import SignalSample
from pyder.scheduler import ResourceLoop
from pyder.state.store import SignalStore

_logger = logging.getLogger(__name__)


class DerClient:
    """Async client wiring the bus, signal subscriptions, controller and publisher.

    Usage::

        async with DerClient(config) as der:
            der.set_import_watts(1000)
            await der.push()

    Entering the context connects to the bus and starts the control loop;
    leaving it stops the loop (the in-flight tick completes) and then
    disconnects. Pass *transport* to use an already-running bus instead of
    creating an :class:`pyder._mqtt.MqttBus`; its callbacks must then be
    routed to this client, which implements the listener interface.
    """

    def __init__(
        self,
        config: DerConfig,
        *,
        transport: BusTransport | None = None,
        controller: ResourceController | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._bus: MqttBus | None = None
        self._store = SignalStore()
        self._controller = controller or ResourceController()
        self._scheduler = ResourceLoop(self._controller, period_ms=config.tick_period_ms)
        self._stop = asyncio.Event()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._subscriptions: SubscriptionManager | None = None
        self._publisher: DevicePublisher | None = None
        self._scheduler_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DerClient:
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._stop.clear()

        if self._transport is None:
            self._bus = MqttBus(config=self._config, listener=self, loop=loop, logger=_logger)
            self._transport = self._bus

        self._subscriptions = SubscriptionManager(
            transport=self._transport,
            store=self._store,
            loop=loop,
            timeout=self._config.transport_timeout,
            unsubscribe_on_loss=self._config.unsubscribe_on_loss,
        )
        self._publisher = DevicePublisher(
            transport=self._transport,
            controller=self._controller,
            device_name=self._config.device_name,
            path=self._config.path,
            timeout=self._config.transport_timeout,
        )

        if self._bus is not None:
            try:
                await asyncio.wait_for(loop.run_in_executor(None, self._bus.start), self._config.transport_timeout)
            except TimeoutError as exc:
                raise DerTransportError(
                    f"Bus start timed out after {self._config.transport_timeout:.1f}s",
                    operation="connect",
                ) from exc

        self._scheduler_task = loop.create_task(self._scheduler.run(self._stop))
        _logger.info("Device %s started", self._config.device_name)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._stop.set()
        task = self._scheduler_task
        self._scheduler_task = None
        if task is not None:
            await task

        if self._subscriptions is not None:
            self._subscriptions.close()

        bus = self._bus
        self._bus = None
        if bus is not None:
            try:
                await asyncio.get_running_loop().run_in_executor(None, bus.stop)
            except Exception:
                _logger.debug("MQTT bus stop failed", exc_info=True)
            self._transport = None
        _logger.info("Device %s stopped", self._config.device_name)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> DerConfig:
        return self._config

    @property
    def controller(self) -> ResourceController:
        return self._controller

    @property
    def store(self) -> SignalStore:
        return self._store

    @property
    def scheduler(self) -> ResourceLoop:
        return self._scheduler

    @property
    def stop_event(self) -> asyncio.Event:
        """Cancellation token shared by the control loop and the command loop."""
        return self._stop

    @property
    def subscriptions(self) -> SubscriptionManager:
        if self._subscriptions is None:
            raise DerError("Client not initialized. Use 'async with DerClient(...) as der:'")
        return self._subscriptions

    @property
    def publisher(self) -> DevicePublisher:
        if self._publisher is None:
            raise DerError("Client not initialized. Use 'async with DerClient(...) as der:'")
        return self._publisher

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def set_import_watts(self, value: Any) -> int:
        return self._controller.set_import_watts(value)

    def set_export_watts(self, value: Any) -> int:
        return self._controller.set_export_watts(value)

    def snapshot(self) -> ResourceState:
        return self._controller.snapshot()

    def properties(self) -> PublishedProperties:
        return self.publisher.properties()

    async def push(self) -> bool:
        return await self.publisher.push()

    def signals(self) -> dict[str, SignalSample]:
        """Latest known signal sample for every publisher seen so far."""
        return self._store.snapshot()

    def request_stop(self) -> None:
        self._stop.set()

    # ------------------------------------------------------------------
    # Bus listener
    # ------------------------------------------------------------------

    def on_discovered(self, address: str) -> None:
        if self._subscriptions is not None:
            self._subscriptions.on_discovered(address)

    def on_lost(self, address: str) -> None:
        if self._subscriptions is not None:
            self._subscriptions.on_lost(address)

    def on_properties_changed(self, address: str, changed: Any, invalidated: Sequence[str] = ()) -> None:
        if self._subscriptions is not None:
            self._subscriptions.on_properties_changed(address, changed, invalidated)

    def on_observer_joined(self, address: str) -> None:
        if self._publisher is not None:
            self._publisher.add_observer(address)

    def on_observer_left(self, address: str) -> None:
        if self._publisher is not None:
            self._publisher.remove_observer(address)
