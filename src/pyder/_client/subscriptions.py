"""Signal publisher subscriptions.

Owns:
- the lifecycle of every discovered remote publisher
- attaching/detaching the property-change subscription on the bus
- decoding incoming change sets into signal-store updates
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import functools
import logging
import threading
from collections.abc import Callable, Coroutine, Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from pyder._constants import SIGNAL_PROPERTIES
from pyder._transport import BusTransport
from pyder.exceptions import DerDeltaFormatError, DerTransportError
from pyder.ingestion.properties import decode_delta
from pyder.models.signal import PublisherState, RemotePublisher, SignalSample
from pyder.state.store import SignalStore

_logger = logging.getLogger(__name__)

_SUBSCRIBE = "Subscribe"
_UNSUBSCRIBE = "Unsubscribe"


def _clean_address(address: Any, event: str) -> str | None:
    if isinstance(address, str) and address.strip():
        return address.strip()
    _logger.warning("Ignoring %s for invalid publisher address %r", event, address)
    return None


class SubscriptionManager:
    """Tracks remote publishers and feeds their property changes into a store.

    The ``on_*`` callbacks never block and never raise: bus calls are
    scheduled onto *loop* and run in its default executor under
    *timeout* seconds. Calls for one address run one at a time, in the
    order the callbacks scheduled them. Failures are logged and leave the
    publisher in its previous state; nothing is retried.
    """

    def __init__(
        self,
        *,
        transport: BusTransport,
        store: SignalStore,
        loop: asyncio.AbstractEventLoop,
        timeout: float = 5.0,
        unsubscribe_on_loss: bool = True,
        property_names: Sequence[str] = SIGNAL_PROPERTIES,
    ) -> None:
        self._transport = transport
        self._store = store
        self._loop = loop
        self._timeout = timeout
        self._unsubscribe_on_loss = unsubscribe_on_loss
        self._property_names = tuple(property_names)

        self._lock = threading.Lock()
        self._publishers: dict[str, RemotePublisher] = {}
        self._pending: set[concurrent.futures.Future[Any]] = set()
        # Only touched from coroutines running on the loop.
        self._call_locks: dict[str, asyncio.Lock] = {}

    @property
    def store(self) -> SignalStore:
        return self._store

    def publishers(self) -> dict[str, PublisherState]:
        with self._lock:
            return {address: publisher.state for address, publisher in self._publishers.items()}

    def publisher(self, address: str) -> RemotePublisher | None:
        with self._lock:
            publisher = self._publishers.get(address)
            return publisher.model_copy() if publisher is not None else None

    def sample(self, address: str) -> SignalSample | None:
        return self._store.get(address)

    # ------------------------------------------------------------------
    # Bus callbacks
    # ------------------------------------------------------------------

    def on_discovered(self, address: str) -> None:
        """A remote device advertised the signal interface."""
        cleaned = _clean_address(address, "discovery")
        if cleaned is None:
            return
        try:
            publisher = RemotePublisher(address=cleaned)
        except ValidationError as exc:
            _logger.warning("Ignoring discovery of %r: %s", address, exc.errors()[0]["msg"])
            return

        _logger.info("%s has been discovered", cleaned)
        with self._lock:
            self._publishers[cleaned] = publisher
        self._store.ensure(cleaned)
        self._schedule(self._subscribe(cleaned))

    def on_lost(self, address: str) -> None:
        """The remote device is no longer reachable.

        The last known sample stays readable in the store.
        """
        cleaned = _clean_address(address, "loss")
        if cleaned is None:
            return
        with self._lock:
            publisher = self._publishers.get(cleaned)
            if publisher is None:
                _logger.debug("Loss reported for unknown publisher %s", cleaned)
                return
            was_subscribed = publisher.state == PublisherState.SUBSCRIBED
            publisher.state = PublisherState.LOST
            publisher.lost_at = datetime.now(UTC)
        _logger.info("%s connection lost", cleaned)

        if was_subscribed and self._unsubscribe_on_loss:
            self._schedule(self._unsubscribe(cleaned))

    def on_properties_changed(self, address: str, changed: Any, invalidated: Sequence[str] = ()) -> None:
        """Decode a change set and apply it to *address*'s sample.

        *invalidated* is accepted for interface compatibility and ignored.
        """
        cleaned = _clean_address(address, "property change")
        if cleaned is None:
            return
        try:
            updates, errors = decode_delta(changed)
        except DerDeltaFormatError as exc:
            _logger.warning("Dropping property change from %s: %s", cleaned, exc)
            return

        for error in errors:
            _logger.warning("Skipping property change entry from %s: %s", cleaned, error)

        written = 0
        for update in updates:
            if self._store.apply(cleaned, update):
                written += 1
        _logger.debug(
            "Property change from %s: %d entries, %d applied, %d invalid",
            cleaned,
            len(updates) + len(errors),
            written,
            len(errors),
        )

    # ------------------------------------------------------------------
    # Bus calls
    # ------------------------------------------------------------------

    def _schedule(self, coro: Coroutine[Any, Any, Any]) -> None:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: concurrent.futures.Future[Any]) -> None:
        with self._lock:
            self._pending.discard(future)

    def _call_lock(self, address: str) -> asyncio.Lock:
        lock = self._call_locks.get(address)
        if lock is None:
            lock = self._call_locks[address] = asyncio.Lock()
        return lock

    def _state(self, address: str) -> PublisherState | None:
        with self._lock:
            publisher = self._publishers.get(address)
            return publisher.state if publisher is not None else None

    async def _call(self, operation: str, address: str, func: Callable[..., None], *args: Any) -> bool:
        call = self._loop.run_in_executor(None, func, *args)
        try:
            await asyncio.wait_for(asyncio.shield(call), self._timeout)
        except TimeoutError:
            _logger.warning("%s for %s timed out after %.1fs", operation, address, self._timeout)
            call.add_done_callback(functools.partial(self._late_result, operation, address))
            return False
        except DerTransportError:
            _logger.warning("%s for %s failed", operation, address, exc_info=True)
            return False
        return True

    def _late_result(self, operation: str, address: str, call: asyncio.Future[None]) -> None:
        if call.cancelled() or call.exception() is not None:
            _logger.debug("%s for %s did not complete after timing out", operation, address)
            return
        _logger.warning("%s for %s completed after timing out", operation, address)
        if operation == _SUBSCRIBE:
            self._schedule(self._reconcile_subscription(address))

    def _subscribe_call(self, address: str) -> None:
        # The subscribe call can re-enter listener code from the dispatch thread.
        self._transport.allow_nested_calls()
        self._transport.subscribe(address, self._property_names)

    async def _subscribe(self, address: str) -> None:
        async with self._call_lock(address):
            if self._state(address) != PublisherState.DISCOVERED:
                _logger.debug("Skipping subscribe for %s: no longer discovered", address)
                return
            if not await self._call(_SUBSCRIBE, address, self._subscribe_call, address):
                return
            await self._mark_subscribed(address)

    async def _reconcile_subscription(self, address: str) -> None:
        async with self._call_lock(address):
            if self._state(address) == PublisherState.SUBSCRIBED:
                return
            await self._mark_subscribed(address)

    async def _mark_subscribed(self, address: str) -> None:
        """Record a subscribe that reached the bus. Caller holds the address lock."""
        with self._lock:
            publisher = self._publishers.get(address)
            lost = publisher is None or publisher.state == PublisherState.LOST
            if not lost and publisher is not None:
                publisher.state = PublisherState.SUBSCRIBED
        if lost:
            _logger.debug("%s was lost while subscribing", address)
            if self._unsubscribe_on_loss:
                await self._unsubscribe_locked(address)
            return
        _logger.debug("Subscribed to %s properties=%s", address, self._property_names)

    async def _unsubscribe(self, address: str) -> None:
        async with self._call_lock(address):
            if self._state(address) != PublisherState.LOST:
                _logger.debug("Skipping unsubscribe for %s: rediscovered", address)
                return
            await self._unsubscribe_locked(address)

    async def _unsubscribe_locked(self, address: str) -> None:
        if await self._call(_UNSUBSCRIBE, address, self._transport.unsubscribe, address):
            _logger.debug("Unsubscribed from %s", address)

    async def wait_pending(self) -> None:
        """Wait until every scheduled subscribe/unsubscribe call has finished."""
        while True:
            with self._lock:
                pending = list(self._pending)
            if not pending:
                return
            await asyncio.gather(*(asyncio.wrap_future(f) for f in pending), return_exceptions=True)

    def close(self) -> None:
        """Cancel scheduled bus calls that have not finished yet."""
        with self._lock:
            pending = list(self._pending)
            self._pending.clear()
        for future in pending:
            future.cancel()
