"""Message-bus boundary.

The bus itself (connection, advertisement, fan-out) is an external
collaborator. These protocols are the only surface the rest of the library
relies on, which keeps the production implementation
(:class:`pyder._mqtt.MqttBus`) swappable for test doubles.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from typing import Any, Protocol


class BusTransport(Protocol):
    """Outbound bus calls.

    Implementations report failure by raising
    :class:`pyder.exceptions.DerTransportError`. Calls may block; callers
    run them in an executor with a timeout.
    """

    def allow_nested_calls(self) -> None:
        """Permit the calling thread's next bus call while a bus callback is in progress.

        Bus callbacks run on a dispatch thread that forbids nested bus calls.
        The permission is consumed by the next call made from the same thread.
        """
        ...

    def subscribe(self, address: str, property_names: Sequence[str]) -> None:
        ...

    def unsubscribe(self, address: str) -> None:
        ...

    def notify(self, observers: Collection[str], properties: Mapping[str, Any]) -> None:
        ...


class BusListener(Protocol):
    """Inbound bus callbacks.

    Implementations may be invoked from any dispatch context, concurrently
    for different publishers.
    """

    def on_discovered(self, address: str) -> None:
        ...

    def on_lost(self, address: str) -> None:
        ...

    def on_properties_changed(self, address: str, changed: Any, invalidated: Sequence[str] = ()) -> None:
        ...

    def on_observer_joined(self, address: str) -> None:
        ...

    def on_observer_left(self, address: str) -> None:
        ...
