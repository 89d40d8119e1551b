"""Interactive command line for a distributed energy resource.

Reads one command per line from stdin while the control loop runs:

    q            quit
    h            display help menu
    i <watts>    import power
    e <watts>    export power
    p            print properties

The device pushes its properties to observers after every command.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading
from collections.abc import Callable, Sequence
from typing import TextIO

from pyder.client import DerClient
from pyder.config import DerConfig
from pyder.controller import ResourceController
from pyder.exceptions import DerConfigError, DerInputError, DerTransportError
from pyder.models.signal import SignalSample

_logger = logging.getLogger(__name__)

HELP_TEXT = """
\t[Help Menu]

> q            quit
> h            display help menu
> i <watts>    import power
> e <watts>    export power
> p            print properties
"""


def format_properties(controller: ResourceController, signals: dict[str, SignalSample] | None = None) -> str:
    lines = [
        "",
        "\t[Properties]",
        "",
        f"Export Energy:\t{controller.export_energy}",
        f"Export Power:\t{controller.export_power}",
        f"Import Energy:\t{controller.import_energy}",
        f"Import Power:\t{controller.import_power}",
    ]
    if signals:
        lines.extend(["", "\t[Signals]", ""])
        for address, sample in sorted(signals.items()):
            lines.append(f"{address}:\ttime={sample.time} price={sample.price}")
    return "\n".join(lines)


def execute_command(
    line: str,
    controller: ResourceController,
    *,
    write: Callable[[str], None] = print,
    signals: Callable[[], dict[str, SignalSample]] | None = None,
) -> bool:
    """Run one command line. Returns ``True`` when the user asked to quit."""
    tokens = line.split()
    if not tokens:
        return False
    cmd = tokens[0][0]

    if cmd == "q":
        return True

    if cmd in ("i", "e"):
        setter = controller.set_import_watts if cmd == "i" else controller.set_export_watts
        try:
            if len(tokens) < 2:
                raise DerInputError("missing watts argument")
            setter(tokens[1])
        except DerInputError as exc:
            _logger.debug("Rejected command %r: %s", line, exc)
            write("[ERROR]: Invalid Argument.")
        return False

    if cmd == "p":
        write(format_properties(controller, signals() if signals is not None else None))
        return False

    write(HELP_TEXT)
    return False


def _start_stdin_reader(
    loop: asyncio.AbstractEventLoop,
    queue: asyncio.Queue[str | None],
    stream: TextIO,
) -> None:
    """Feed stdin lines into *queue* from a daemon thread; ``None`` marks EOF."""

    def _reader() -> None:
        for raw in stream:
            loop.call_soon_threadsafe(queue.put_nowait, raw)
        loop.call_soon_threadsafe(queue.put_nowait, None)

    threading.Thread(target=_reader, name="pyder-stdin", daemon=True).start()


async def _command_loop(der: DerClient, stream: TextIO) -> None:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[str | None] = asyncio.Queue()
    _start_stdin_reader(loop, queue, stream)
    stop = der.stop_event

    print(HELP_TEXT)
    while not stop.is_set():
        get_line = asyncio.ensure_future(queue.get())
        wait_stop = asyncio.ensure_future(stop.wait())
        done, pending = await asyncio.wait({get_line, wait_stop}, return_when=asyncio.FIRST_COMPLETED)
        for fut in pending:
            fut.cancel()
        if get_line not in done:
            break

        line = get_line.result()
        if line is None or execute_command(line, der.controller, signals=der.signals):
            der.request_stop()
            break
        if not line.strip():
            continue
        try:
            await der.push()
        except DerTransportError as exc:
            print(f"[ERROR]: Property update failed: {exc}")


async def run(config: DerConfig, stream: TextIO = sys.stdin) -> int:
    """Start the device, serve commands until quit, then shut down."""
    print("\nProgram initialization...")
    try:
        async with DerClient(config) as der:
            print("\nProgram initialization complete...")
            await _command_loop(der, stream)
            print("\nProgram shutting down...")
    except DerTransportError as exc:
        print(f"[ERROR]: {exc}", file=sys.stderr)
        return 2
    return 0


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pyder",
        description="Distributed energy resource with price/time signal subscriptions.",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="INI configuration file (defaults to DER_* environment variables).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = DerConfig.from_ini(args.config) if args.config else DerConfig.from_env()
    except DerConfigError as exc:
        print(f"[ERROR]: {exc}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(run(config))
    except KeyboardInterrupt:
        return 130
