"""Device configuration for pyder."""

from __future__ import annotations

import configparser
import dataclasses
import os
from pathlib import Path
from typing import Any

from pyder._constants import TICK_PERIOD_MS
from pyder.exceptions import DerConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _to_number(kind: type, value: str, source: str) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise DerConfigError(f"{source} must be a {kind.__name__}, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class DerConfig:
    """Device configuration.

    Parameters
    ----------
    app_name : str
        Application name; also used as the MQTT client id.
    device_name : str
        Human readable device identity published to observers.
    broker_host : str
        Message-bus broker hostname.
    broker_port : int
        Message-bus broker port.
    topic_prefix : str
        Root of every topic this device reads or writes.
    server_interface : str
        Interface name advertised by remote price/time publishers.
    device_interface : str
        Interface name this device advertises to its observers.
    path : str
        Object path of the local device, published as part of its identity.
    tick_period_ms : int
        Target control-loop period in milliseconds.
    transport_timeout : float
        Seconds to wait for any single bus call (subscribe, notify).
    unsubscribe_on_loss : bool
        Drop the property subscription when a publisher is lost.
        ``False`` keeps the legacy behaviour of leaving it in place.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    """

    app_name: str = "pyder"
    device_name: str = "der"
    broker_host: str = "localhost"
    broker_port: int = 1883
    topic_prefix: str = "der"
    server_interface: str = "server"
    device_interface: str = "device"
    path: str = "/der"
    tick_period_ms: int = TICK_PERIOD_MS
    transport_timeout: float = 5.0
    unsubscribe_on_loss: bool = True
    mqtt_keepalive: int = 60

    def __post_init__(self) -> None:
        if self.tick_period_ms <= 0:
            raise DerConfigError(f"tick_period_ms must be positive, got {self.tick_period_ms}")
        if self.transport_timeout <= 0:
            raise DerConfigError(f"transport_timeout must be positive, got {self.transport_timeout}")
        for field_name in ("topic_prefix", "server_interface", "device_interface"):
            value = getattr(self, field_name)
            if not value or "/" in value or "+" in value or "#" in value:
                raise DerConfigError(f"{field_name} must be a single topic level, got {value!r}")

    @classmethod
    def from_env(cls, **overrides: Any) -> DerConfig:
        """Create configuration from ``DER_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "DER_APP_NAME": "app_name",
            "DER_DEVICE_NAME": "device_name",
            "DER_BROKER_HOST": "broker_host",
            "DER_TOPIC_PREFIX": "topic_prefix",
            "DER_SERVER_INTERFACE": "server_interface",
            "DER_DEVICE_INTERFACE": "device_interface",
            "DER_PATH": "path",
        }
        _ENV_NUM_MAP: dict[str, tuple[str, type]] = {
            "DER_BROKER_PORT": ("broker_port", int),
            "DER_TICK_PERIOD_MS": ("tick_period_ms", int),
            "DER_TRANSPORT_TIMEOUT": ("transport_timeout", float),
            "DER_MQTT_KEEPALIVE": ("mqtt_keepalive", int),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, (field_name, kind) in _ENV_NUM_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _to_number(kind, val, env_key)

        if "unsubscribe_on_loss" not in overrides:
            config_kwargs["unsubscribe_on_loss"] = _env_bool(env.get("DER_UNSUBSCRIBE_ON_LOSS"), True)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)

    @classmethod
    def from_ini(cls, path: str | Path, **overrides: Any) -> DerConfig:
        """Create configuration from an INI file.

        Recognised sections and keys::

            [AllJoyn]
            app = pyder
            port = 1883
            server_interface = server
            device_interface = device
            path = /der

            [MQTT]
            host = localhost
            port = 1883
            prefix = der

            [DER]
            name = der

        ``[MQTT] port`` wins over ``[AllJoyn] port`` when both are set.
        """
        file_path = Path(path)
        parser = configparser.ConfigParser()
        try:
            with file_path.open(encoding="utf-8") as handle:
                parser.read_file(handle)
        except OSError as exc:
            raise DerConfigError(f"Cannot read configuration file {file_path}: {exc}") from exc
        except configparser.Error as exc:
            raise DerConfigError(f"Malformed configuration file {file_path}: {exc}") from exc

        config_kwargs: dict[str, Any] = {}

        _INI_MAP: dict[tuple[str, str], tuple[str, type]] = {
            ("AllJoyn", "app"): ("app_name", str),
            ("AllJoyn", "port"): ("broker_port", int),
            ("AllJoyn", "server_interface"): ("server_interface", str),
            ("AllJoyn", "device_interface"): ("device_interface", str),
            ("AllJoyn", "path"): ("path", str),
            ("MQTT", "host"): ("broker_host", str),
            ("MQTT", "port"): ("broker_port", int),
            ("MQTT", "prefix"): ("topic_prefix", str),
            ("MQTT", "keepalive"): ("mqtt_keepalive", int),
            ("MQTT", "timeout"): ("transport_timeout", float),
            ("DER", "name"): ("device_name", str),
            ("DER", "tick_period_ms"): ("tick_period_ms", int),
        }
        for (section, key), (field_name, kind) in _INI_MAP.items():
            if not parser.has_option(section, key):
                continue
            raw = parser.get(section, key).strip()
            config_kwargs[field_name] = raw if kind is str else _to_number(kind, raw, f"[{section}] {key}")

        if parser.has_option("DER", "unsubscribe_on_loss"):
            config_kwargs["unsubscribe_on_loss"] = _env_bool(parser.get("DER", "unsubscribe_on_loss"), True)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
