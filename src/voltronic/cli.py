"""Command-line tool -- issue an Axpert command and print the result.

Issues one catalogue command over the serial port named in a TOML
config file and prints the parsed reply as JSON.  With ``--interval``
the command is repeated until SIGINT or SIGTERM.

Example:
    From the shell::

        voltronic voltronic.toml QPIGS
        voltronic voltronic.toml POP 02
        voltronic voltronic.toml QMOD --interval 30 -v
        voltronic --list
"""

import argparse
import enum
import json
import logging
import signal
import sys
import threading

import serial

from voltronic.axpert import COMMANDS, operation
from voltronic.config import find_config, load_config, operation_options
from voltronic.errors import VoltronicError
from voltronic.serial_channel import SerialChannel

log = logging.getLogger(__name__)

_shutdown = threading.Event()


def _on_signal(signum: int, frame) -> None:
    """Set the module-level shutdown event on SIGINT/SIGTERM."""
    _shutdown.set()


def _json_default(value):
    if isinstance(value, enum.Enum):
        return value.name
    return str(value)


def format_result(value) -> str:
    """Render a parsed reply as a JSON line.

    Example:
        >>> format_result({"serial_number": "92932004102443"})
        '{"serial_number": "92932004102443"}'
    """
    return json.dumps(value, sort_keys=True, default=_json_default)


def format_catalogue() -> str:
    """Return one line per catalogue command with its accepted values."""
    lines = []
    for key, descriptor in COMMANDS.items():
        values = ""
        if descriptor.takes_argument:
            values = " <%s>" % "|".join(descriptor.allowed_values)
        lines.append("%-16s %s" % (key + values, descriptor.description))
    return "\n".join(lines)


def run_poller(op, channel, args: tuple, interval: int,
               shutdown: threading.Event, out=None) -> int:
    """Issue *op* every *interval* seconds until *shutdown* is set.

    Failed cycles, including serial port errors, are logged and the
    loop carries on.  Returns the number of completed cycles.
    """
    cycles = 0

    while not shutdown.is_set():
        try:
            result = op.issue(channel, *args)
        except VoltronicError as exc:
            log.warning("cycle %d failed (%s): %s", cycles + 1, exc.kind.value, exc)
        except serial.SerialException as exc:
            log.warning("cycle %d failed (serial): %s", cycles + 1, exc)
        else:
            print(format_result(result), file=out or sys.stdout, flush=True)
        cycles += 1
        if interval > 0:
            shutdown.wait(interval)

    return cycles


def main(argv=None) -> int:
    """CLI entry point -- parse args, load config, issue the command."""
    _shutdown.clear()

    parser = argparse.ArgumentParser(
        description="Voltronic/Axpert inverter command tool",
    )
    parser.add_argument("config", nargs="?", help="path to TOML config file")
    parser.add_argument("command", nargs="?", help="catalogue command, e.g. QPIGS")
    parser.add_argument("value", nargs="?", help="command value, e.g. 02")
    parser.add_argument(
        "--interval", type=int, default=0,
        help="repeat the command every N seconds",
    )
    parser.add_argument(
        "--list", action="store_true", help="list available commands",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    args = parser.parse_args(argv)

    if args.list:
        print(format_catalogue())
        return 0
    if args.config is None or args.command is None:
        parser.error("config and command are required")
    if args.command.upper() not in COMMANDS:
        parser.error("unknown command: %s (see --list)" % args.command)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    cfg = load_config(find_config(args.config))
    op = operation(args.command, **operation_options(cfg))
    values = () if args.value is None else (args.value,)
    try:
        command_text = op.render(*values)
    except VoltronicError as exc:
        log.error("%s: %s", args.command, exc)
        return 1

    log.info(
        "starting: port=%s baudrate=%d command=%s",
        cfg["port"], cfg["baudrate"], command_text,
    )
    channel = SerialChannel(cfg["port"], cfg["baudrate"])
    try:
        if args.interval > 0:
            signal.signal(signal.SIGINT, _on_signal)
            signal.signal(signal.SIGTERM, _on_signal)
            run_poller(op, channel, values, args.interval, _shutdown)
            return 0
        print(format_result(op.issue(channel, *values)))
        return 0
    except VoltronicError as exc:
        log.error("%s failed (%s): %s", args.command, exc.kind.value, exc)
        return 1
    except serial.SerialException as exc:
        log.error("%s failed (serial): %s", args.command, exc)
        return 1
    finally:
        channel.close()
        log.info("shutting down")


if __name__ == "__main__":
    sys.exit(main())
