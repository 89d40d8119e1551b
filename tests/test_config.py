from __future__ import annotations

from pathlib import Path

import pytest

from pyder.config import DerConfig
from pyder.exceptions import DerConfigError


def test_defaults() -> None:
    config = DerConfig()

    assert config.tick_period_ms == 500
    assert config.unsubscribe_on_loss is True
    assert config.broker_port == 1883


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DER_DEVICE_NAME", "battery-7")
    monkeypatch.setenv("DER_BROKER_HOST", "broker.local")
    monkeypatch.setenv("DER_BROKER_PORT", "8883")
    monkeypatch.setenv("DER_TRANSPORT_TIMEOUT", "2.5")
    monkeypatch.setenv("DER_UNSUBSCRIBE_ON_LOSS", "no")

    config = DerConfig.from_env()

    assert config.device_name == "battery-7"
    assert config.broker_host == "broker.local"
    assert config.broker_port == 8883
    assert config.transport_timeout == 2.5
    assert config.unsubscribe_on_loss is False


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DER_BROKER_PORT", "8883")

    config = DerConfig.from_env(broker_port=1884, device_name="explicit")

    assert config.broker_port == 1884
    assert config.device_name == "explicit"


def test_from_env_bad_number(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DER_TICK_PERIOD_MS", "fast")

    with pytest.raises(DerConfigError):
        DerConfig.from_env()


def test_from_ini(tmp_path: Path) -> None:
    ini = tmp_path / "der.ini"
    ini.write_text(
        "[AllJoyn]\n"
        "app = der-app\n"
        "port = 25\n"
        "server_interface = ems\n"
        "device_interface = sgd\n"
        "path = /sgd\n"
        "\n"
        "[MQTT]\n"
        "host = 10.0.0.2\n"
        "port = 1885\n"
        "\n"
        "[DER]\n"
        "name = water-heater\n"
        "unsubscribe_on_loss = false\n",
        encoding="utf-8",
    )

    config = DerConfig.from_ini(ini)

    assert config.app_name == "der-app"
    assert config.server_interface == "ems"
    assert config.device_interface == "sgd"
    assert config.path == "/sgd"
    assert config.broker_host == "10.0.0.2"
    assert config.broker_port == 1885
    assert config.device_name == "water-heater"
    assert config.unsubscribe_on_loss is False


def test_from_ini_missing_file(tmp_path: Path) -> None:
    with pytest.raises(DerConfigError):
        DerConfig.from_ini(tmp_path / "missing.ini")


def test_from_ini_bad_port(tmp_path: Path) -> None:
    ini = tmp_path / "der.ini"
    ini.write_text("[AllJoyn]\nport = eighty\n", encoding="utf-8")

    with pytest.raises(DerConfigError):
        DerConfig.from_ini(ini)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"tick_period_ms": 0},
        {"transport_timeout": 0},
        {"topic_prefix": "a/b"},
        {"server_interface": "+"},
        {"device_interface": ""},
    ],
)
def test_invalid_values_rejected(kwargs: dict[str, object]) -> None:
    with pytest.raises(DerConfigError):
        DerConfig(**kwargs)  # type: ignore[arg-type]
