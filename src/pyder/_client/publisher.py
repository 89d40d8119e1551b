"""Local device property publisher."""

from __future__ import annotations

import asyncio
import logging
import threading

from pyder._transport import BusTransport
from pyder.controller import ResourceController
from pyder.exceptions import DerTransportError
from pyder.models.resource import PublishedProperties

_logger = logging.getLogger(__name__)


class DevicePublisher:
    """Pushes the device's current properties to every registered observer.

    Pushes are serialized: a snapshot is built and sent while holding an
    asyncio lock, so a push in progress never sees its properties change.
    """

    def __init__(
        self,
        *,
        transport: BusTransport,
        controller: ResourceController,
        device_name: str,
        path: str,
        timeout: float = 5.0,
    ) -> None:
        self._transport = transport
        self._controller = controller
        self._device_name = device_name
        self._path = path
        self._timeout = timeout

        self._observers_lock = threading.Lock()
        self._observers: set[str] = set()
        self._push_lock = asyncio.Lock()
        self._last_pushed: PublishedProperties | None = None

    @property
    def observers(self) -> frozenset[str]:
        with self._observers_lock:
            return frozenset(self._observers)

    @property
    def last_pushed(self) -> PublishedProperties | None:
        return self._last_pushed

    def add_observer(self, address: str) -> None:
        with self._observers_lock:
            self._observers.add(address)
        _logger.debug("Observer %s registered", address)

    def remove_observer(self, address: str) -> None:
        with self._observers_lock:
            self._observers.discard(address)
        _logger.debug("Observer %s removed", address)

    def properties(self) -> PublishedProperties:
        """Build a fresh property snapshot from the controller."""
        return PublishedProperties.from_state(
            device_name=self._device_name,
            path=self._path,
            state=self._controller.snapshot(),
        )

    async def push(self) -> bool:
        """Send the current properties to all observers.

        Returns ``False`` without touching the bus when nobody is observing.
        Raises :class:`DerTransportError` when the notify call fails or
        exceeds the timeout.
        """
        observers = self.observers
        if not observers:
            return False

        async with self._push_lock:
            snapshot = self.properties()
            loop = asyncio.get_running_loop()
            try:
                await asyncio.wait_for(
                    loop.run_in_executor(None, self._transport.notify, observers, snapshot.to_bus()),
                    self._timeout,
                )
            except TimeoutError as exc:
                raise DerTransportError(
                    f"Property notification timed out after {self._timeout:.1f}s",
                    operation="notify",
                ) from exc
            self._last_pushed = snapshot

        _logger.debug("Pushed properties to %d observer(s)", len(observers))
        return True
