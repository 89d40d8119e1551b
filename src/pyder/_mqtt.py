"""MQTT message-bus transport, topic layout and payload parsing."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from pyder._transport import BusListener
from pyder.config import DerConfig
from pyder.exceptions import DerTransportError

_ANNOUNCE = "announce"
_PROPERTIES = "properties"
_OBSERVERS = "observers"


@dataclass(frozen=True)
class BusTopics:
    """Topic layout shared by publishers, this device and its observers.

    ::

        {prefix}/{server_interface}/{address}/announce
        {prefix}/{server_interface}/{address}/properties
        {prefix}/{device_interface}/{device_id}/announce
        {prefix}/{device_interface}/{device_id}/observers/{observer}
        {prefix}/{device_interface}/{device_id}/properties
    """

    prefix: str
    server_interface: str
    device_interface: str
    device_id: str

    @classmethod
    def from_config(cls, config: DerConfig) -> BusTopics:
        return cls(
            prefix=config.topic_prefix,
            server_interface=config.server_interface,
            device_interface=config.device_interface,
            device_id=config.app_name,
        )

    @property
    def publisher_announce_filter(self) -> str:
        return f"{self.prefix}/{self.server_interface}/+/{_ANNOUNCE}"

    def publisher_properties(self, address: str) -> str:
        return f"{self.prefix}/{self.server_interface}/{address}/{_PROPERTIES}"

    @property
    def device_root(self) -> str:
        return f"{self.prefix}/{self.device_interface}/{self.device_id}"

    @property
    def device_announce(self) -> str:
        return f"{self.device_root}/{_ANNOUNCE}"

    @property
    def device_properties(self) -> str:
        return f"{self.device_root}/{_PROPERTIES}"

    @property
    def observers_filter(self) -> str:
        return f"{self.device_root}/{_OBSERVERS}/+"

    def parse(self, topic: str) -> tuple[str, str] | None:
        """Classify an inbound topic.

        Returns ``(kind, address)`` where kind is ``"announce"``,
        ``"properties"`` or ``"observers"``; ``None`` for foreign topics.
        """
        parts = topic.split("/")
        if len(parts) == 4 and parts[0] == self.prefix and parts[1] == self.server_interface:
            address, kind = parts[2], parts[3]
            if address.strip() and kind in (_ANNOUNCE, _PROPERTIES):
                return kind, address
            return None
        if (
            len(parts) == 5
            and parts[0] == self.prefix
            and parts[1] == self.device_interface
            and parts[2] == self.device_id
            and parts[3] == _OBSERVERS
            and parts[4].strip()
        ):
            return _OBSERVERS, parts[4]
        return None


def decode_announce(payload: bytes) -> bool | None:
    """Return the advertised online flag, ``False`` for an empty (cleared) payload.

    ``None`` means the payload is not a recognisable announcement.
    """
    if not payload.strip():
        return False
    try:
        parsed = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(parsed, dict):
        return None
    online = parsed.get("online")
    return online if isinstance(online, bool) else None


def decode_properties(payload: bytes) -> tuple[Any, list[str]]:
    """Split a properties payload into ``(changed, invalidated)``.

    The envelope is ``{"changed": <delta>, "invalidated": [names]}``; a bare
    JSON delta is accepted too. Unparseable payloads are returned as text so
    the subscriber can drop them as malformed deltas.
    """
    text = payload.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return text, []

    if isinstance(parsed, dict) and "changed" in parsed:
        invalidated = parsed.get("invalidated")
        names = [name for name in invalidated if isinstance(name, str)] if isinstance(invalidated, list) else []
        return parsed["changed"], names
    return parsed, []


def encode_notification(observers: Collection[str], properties: Mapping[str, Any]) -> str:
    return json.dumps({"observers": sorted(observers), "changed": dict(properties)}, separators=(",", ":"))


class MqttBus:
    """Threaded paho-mqtt bus that delivers callbacks onto an asyncio loop.

    Implements :class:`pyder._transport.BusTransport`. Every inbound message
    is parsed on the paho network thread and handed to *listener* through
    ``loop.call_soon_threadsafe``.
    """

    def __init__(
        self,
        *,
        config: DerConfig,
        listener: BusListener,
        loop: asyncio.AbstractEventLoop,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._listener = listener
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._topics = BusTopics.from_config(config)
        self._client: mqtt.Client | None = None
        self._running = False

        self._lock = threading.Lock()
        self._subscribed: set[str] = set()
        self._dispatch_thread: int | None = None
        self._nested = threading.local()

    @property
    def topics(self) -> BusTopics:
        return self._topics

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is actively running."""
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Connect, announce this device and start the network loop.

        Raises :class:`DerTransportError` when the broker cannot be reached.
        """
        self.stop()
        self._logger.debug(
            "MQTT bus start requested host=%s port=%s client_id=%s",
            self._config.broker_host,
            self._config.broker_port,
            self._config.app_name,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._config.app_name,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        client.will_set(self._topics.device_announce, json.dumps({"online": False}), qos=1, retain=True)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._dispatch_thread = threading.get_ident()
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected successfully reason=%s", reason_code)
            c.subscribe(self._topics.publisher_announce_filter, qos=1)
            c.subscribe(self._topics.observers_filter, qos=1)
            with self._lock:
                addresses = list(self._subscribed)
            for address in addresses:
                c.subscribe(self._topics.publisher_properties(address), qos=1)
            c.publish(self._topics.device_announce, json.dumps({"online": True}), qos=1, retain=True)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self._dispatch_thread = threading.get_ident()
            try:
                self._dispatch(msg.topic, msg.payload)
            except Exception:
                self._logger.debug("MQTT message dispatch failure topic=%s", msg.topic, exc_info=True)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.warning("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            client.connect(self._config.broker_host, self._config.broker_port, keepalive=self._config.mqtt_keepalive)
        except OSError as exc:
            raise DerTransportError(
                f"Cannot connect to broker {self._config.broker_host}:{self._config.broker_port}: {exc}",
                operation="connect",
            ) from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Withdraw the device announcement and disconnect."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.publish(self._topics.device_announce, json.dumps({"online": False}), qos=1, retain=True)
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _dispatch(self, topic: str, payload: bytes) -> None:
        parsed = self._topics.parse(topic)
        if parsed is None:
            return
        kind, address = parsed

        if kind == _ANNOUNCE:
            online = decode_announce(payload)
            if online is None:
                self._logger.debug("Ignoring unrecognised announcement topic=%s", topic)
                return
            callback = self._listener.on_discovered if online else self._listener.on_lost
            self._loop.call_soon_threadsafe(callback, address)
            return

        if kind == _OBSERVERS:
            callback = self._listener.on_observer_joined if payload.strip() else self._listener.on_observer_left
            self._loop.call_soon_threadsafe(callback, address)
            return

        with self._lock:
            subscribed = address in self._subscribed
        if not subscribed:
            return
        changed, invalidated = decode_properties(payload)
        self._logger.debug("Received properties topic=%s changed=%s", topic, changed)
        self._loop.call_soon_threadsafe(self._listener.on_properties_changed, address, changed, invalidated)

    # ------------------------------------------------------------------
    # Outbound (BusTransport)
    # ------------------------------------------------------------------

    def allow_nested_calls(self) -> None:
        """Permit the calling thread's next bus call, even from the dispatch thread."""
        self._nested.allowed = True

    def _require_client(self, operation: str, address: str = "") -> mqtt.Client:
        # The permission covers exactly one call.
        nested_allowed = getattr(self._nested, "allowed", False)
        self._nested.allowed = False

        client = self._client
        if client is None or not self._running:
            raise DerTransportError("MQTT bus is not running", operation=operation, address=address)
        if threading.get_ident() == self._dispatch_thread and not nested_allowed:
            raise DerTransportError(
                "Nested bus call from the dispatch thread is not permitted",
                operation=operation,
                address=address,
            )
        return client

    @staticmethod
    def _check(rc: int, operation: str, address: str = "") -> None:
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise DerTransportError(
                f"MQTT {operation} failed: {mqtt.error_string(rc)}",
                operation=operation,
                address=address,
            )

    def subscribe(self, address: str, property_names: Sequence[str]) -> None:
        client = self._require_client("subscribe", address)
        rc, _mid = client.subscribe(self._topics.publisher_properties(address), qos=1)
        self._check(rc, "subscribe", address)
        with self._lock:
            self._subscribed.add(address)
        # Topics carry whole change sets; unknown names are dropped by the decoder.
        self._logger.debug("MQTT subscribed address=%s properties=%s", address, list(property_names))

    def unsubscribe(self, address: str) -> None:
        client = self._require_client("unsubscribe", address)
        with self._lock:
            self._subscribed.discard(address)
        rc, _mid = client.unsubscribe(self._topics.publisher_properties(address))
        self._check(rc, "unsubscribe", address)

    def notify(self, observers: Collection[str], properties: Mapping[str, Any]) -> None:
        client = self._require_client("notify")
        info = client.publish(self._topics.device_properties, encode_notification(observers, properties), qos=1)
        self._check(info.rc, "notify")
