from __future__ import annotations

import io
import logging
from collections.abc import Collection, Mapping, Sequence
from typing import Any

import pytest

from pyder.cli import HELP_TEXT, _command_loop, execute_command, format_properties
from pyder.client import DerClient
from pyder.config import DerConfig
from pyder.controller import ResourceController
from pyder.models.signal import SignalSample


class _RecordingTransport:
    def __init__(self) -> None:
        self.notifications: list[dict[str, Any]] = []

    def allow_nested_calls(self) -> None:
        pass

    def subscribe(self, address: str, property_names: Sequence[str]) -> None:
        pass

    def unsubscribe(self, address: str) -> None:
        pass

    def notify(self, observers: Collection[str], properties: Mapping[str, Any]) -> None:
        self.notifications.append(dict(properties))


def _run(line: str, controller: ResourceController) -> tuple[bool, list[str]]:
    out: list[str] = []
    quit_requested = execute_command(line, controller, write=out.append)
    return quit_requested, out


def test_import_and_export_commands_set_power() -> None:
    controller = ResourceController()

    assert _run("i 1500", controller) == (False, [])
    assert _run("e 250\n", controller) == (False, [])
    assert controller.import_power == 1500
    assert controller.export_power == 250


def test_only_first_letter_of_command_matters() -> None:
    controller = ResourceController()

    _run("import 42", controller)

    assert controller.import_power == 42


@pytest.mark.parametrize("line", ["i abc", "i -5", "e", "e 1.5"])
def test_bad_argument_reports_error_and_keeps_setpoint(line: str) -> None:
    controller = ResourceController(import_watts=7, export_watts=9)

    quit_requested, out = _run(line, controller)

    assert quit_requested is False
    assert out == ["[ERROR]: Invalid Argument."]
    assert controller.import_power == 7
    assert controller.export_power == 9


def test_quit_command() -> None:
    assert _run("q", ResourceController()) == (True, [])


def test_blank_line_is_ignored() -> None:
    assert _run("   \n", ResourceController()) == (False, [])


@pytest.mark.parametrize("line", ["h", "x 1", "?"])
def test_help_for_anything_else(line: str) -> None:
    assert _run(line, ResourceController()) == (False, [HELP_TEXT])


def test_print_command_lists_properties() -> None:
    controller = ResourceController(import_watts=1000)
    controller.tick(3_600_000)

    _quit, out = _run("p", controller)

    assert "Import Power:\t1000" in out[0]
    assert "Import Energy:\t1000.0" in out[0]
    assert "Export Power:\t0" in out[0]


def test_format_properties_with_signals() -> None:
    text = format_properties(
        ResourceController(),
        {":1.2": SignalSample(time=100, price=-3), ":1.1": SignalSample(price=5)},
    )

    assert "[Signals]" in text
    assert text.index(":1.1") < text.index(":1.2")
    assert ":1.2:\ttime=100 price=-3" in text


def test_format_properties_without_signals() -> None:
    assert "[Signals]" not in format_properties(ResourceController(), {})


@pytest.mark.asyncio
async def test_command_loop_pushes_after_each_command(capsys: pytest.CaptureFixture[str]) -> None:
    transport = _RecordingTransport()
    config = DerConfig(device_name="der-cli", tick_period_ms=50)

    async with DerClient(config, transport=transport) as der:
        der.on_observer_joined("obs-1")
        await _command_loop(der, io.StringIO("i 100\n\np\nq\n"))
        assert der.stop_event.is_set()

    assert [props["ImportPower"] for props in transport.notifications] == [100, 100]
    assert "[Properties]" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_command_loop_stops_at_end_of_input() -> None:
    async with DerClient(DerConfig(tick_period_ms=50), transport=_RecordingTransport()) as der:
        await _command_loop(der, io.StringIO(""))
        assert der.stop_event.is_set()


def test_rejected_command_is_logged_under_module_logger(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="pyder.cli"):
        _run("e nope", ResourceController())

    assert [record.name for record in caplog.records] == ["pyder.cli"]
    assert "Rejected command" in caplog.records[0].getMessage()
