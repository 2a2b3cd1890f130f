"""Device operations: one request/response exchange with an inverter.

A ``DeviceOperation`` bundles how to build a command, how to parse the
reply, and the serial settings for the exchange.  It is immutable and
can be issued any number of times against any channel.

The channel is duck-typed; anything with ``set_read_timeout(ms)``,
``set_write_timeout(ms)``, ``write_bytes(data)`` and ``read_byte()``
works (see ``voltronic.serial_channel.SerialChannel``).

Example:
    >>> op = DeviceOperation("QMOD", parser=lambda frame: frame.payload)
    >>> with SerialChannel("/dev/ttyUSB0") as channel:
    ...     op.issue(channel)
    'B'
"""

import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from voltronic.command import CommandDescriptor
from voltronic.errors import (
    DeviceTimeoutError,
    InvalidArgumentError,
    NakReceivedError,
    ParseFailureError,
)
from voltronic.protocol import (
    ProtocolFrame,
    decode_frame,
    decode_reply,
    encode_frame,
)

log = logging.getLogger(__name__)

# Pause between polls of an idle serial port, in seconds.
POLL_INTERVAL = 0.1

DEFAULT_READ_TIMEOUT = 2
DEFAULT_WRITE_TIMEOUT = 2
DEFAULT_TERMINATION_CHARACTER = "\r"

NAK = "NAK"

CONFIG_KEYS = (
    "command",
    "parser",
    "error_on_nak",
    "serial_read_timeout_seconds",
    "serial_write_timeout_seconds",
    "serial_termination_character",
)


def _positive_int(name: str, value) -> int:
    """Coerce *value* to a positive int or raise InvalidArgumentError."""
    if isinstance(value, bool):
        raise InvalidArgumentError("%s must be an int, got bool" % name)
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(
            "%s must be an int, got %r" % (name, value)
        ) from None
    if result != value and not isinstance(value, str):
        raise InvalidArgumentError("%s must be an int, got %r" % (name, value))
    if result <= 0:
        raise InvalidArgumentError("%s must be positive, got %d" % (name, result))
    return result


def _single_byte(value) -> bytes:
    """Return *value* as exactly one byte or raise InvalidArgumentError."""
    if isinstance(value, str):
        try:
            value = value.encode("ascii")
        except UnicodeEncodeError:
            value = b""
    if not isinstance(value, (bytes, bytearray)) or len(value) != 1:
        raise InvalidArgumentError(
            "Expected serial_termination_character to be a single character"
        )
    return bytes(value)


@dataclass(frozen=True)
class DeviceOperation:
    """Immutable specification of one device request/response exchange.

    Args:
        command: Literal command string, or a callable building the
            command string from the arguments passed to ``issue``.
        parser: Callable turning the decoded reply frame into a value.
        error_on_nak: Raise ``NakReceivedError`` instead of parsing a
            NAK reply.
        serial_read_timeout_seconds: Deadline for the complete reply.
        serial_write_timeout_seconds: Deadline for writing the request.
        serial_termination_character: Byte that ends a reply.
        clock: Monotonic clock in seconds.
        sleep: Called with ``POLL_INTERVAL`` between idle polls.

    Raises:
        InvalidArgumentError: On any invalid setting.
    """

    command: str | Callable[..., str]
    parser: Callable[[ProtocolFrame], Any]
    error_on_nak: bool = True
    serial_read_timeout_seconds: int = DEFAULT_READ_TIMEOUT
    serial_write_timeout_seconds: int = DEFAULT_WRITE_TIMEOUT
    serial_termination_character: bytes = DEFAULT_TERMINATION_CHARACTER
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self):
        if isinstance(self.command, str):
            object.__setattr__(self, "command", self.command.strip())
        elif not callable(self.command):
            raise InvalidArgumentError(
                "Expected command to be a String with a device command or "
                "callable, got %s" % type(self.command).__name__
            )
        if not callable(self.parser):
            raise InvalidArgumentError(
                "Expected parser to be callable, got %s"
                % type(self.parser).__name__
            )
        object.__setattr__(self, "error_on_nak", bool(self.error_on_nak))
        object.__setattr__(
            self, "serial_read_timeout_seconds",
            _positive_int("serial_read_timeout_seconds",
                          self.serial_read_timeout_seconds),
        )
        object.__setattr__(
            self, "serial_write_timeout_seconds",
            _positive_int("serial_write_timeout_seconds",
                          self.serial_write_timeout_seconds),
        )
        object.__setattr__(
            self, "serial_termination_character",
            _single_byte(self.serial_termination_character),
        )

    @classmethod
    def from_config(cls, config, **injected) -> "DeviceOperation":
        """Build an operation from a configuration mapping.

        Recognised keys are listed in ``CONFIG_KEYS``; ``command`` and
        ``parser`` are required.  Keyword arguments (e.g. ``clock``)
        are passed through to the constructor.

        Raises:
            InvalidArgumentError: If *config* is not a mapping, a
                required key is missing, or a value is invalid.
        """
        try:
            config = dict(config)
        except (TypeError, ValueError):
            raise InvalidArgumentError("Expected an input mapping") from None
        for key in ("command", "parser"):
            if key not in config:
                raise InvalidArgumentError("missing required key: %s" % key)
        options = {k: config[k] for k in CONFIG_KEYS if k in config}
        return cls(**options, **injected)

    @classmethod
    def from_descriptor(cls, descriptor: CommandDescriptor,
                        **options) -> "DeviceOperation":
        """Build an operation issuing *descriptor*'s command.

        The descriptor's ``render`` validates the argument passed to
        ``issue``; its parser handles the reply.
        """
        def command(*args):
            if len(args) > 1:
                raise InvalidArgumentError(
                    "wrong number of arguments (%d for 0..1)" % len(args)
                )
            return descriptor.render(*args)

        return cls(command, descriptor.parser, **options)

    # -- Request ---------------------------------------------------------

    def render(self, *args) -> str:
        """Return the ASCII command string for *args*.

        A callable command is checked against its signature first;
        builtins without one are called as-is.

        Raises:
            InvalidArgumentError: If *args* do not fit the command.
        """
        if isinstance(self.command, str):
            if args:
                raise InvalidArgumentError(
                    "wrong number of arguments (%d for 0)" % len(args)
                )
            return self.command
        try:
            signature = inspect.signature(self.command)
        except ValueError:
            signature = None
        if signature is not None:
            try:
                signature.bind(*args)
            except TypeError as exc:
                raise InvalidArgumentError(
                    "wrong number of arguments (%d given: %s)" % (len(args), exc)
                ) from None
        return self.command(*args)

    def build_frame(self, *args) -> ProtocolFrame:
        """Return the request frame for *args*."""
        return encode_frame(self.render(*args))

    # -- Exchange --------------------------------------------------------

    def issue(self, channel, *args) -> Any:
        """Send the command over *channel* and return the parsed reply.

        Sets the channel to non-blocking reads, writes the request
        frame, then polls one byte at a time until the termination
        character arrives.  The channel is left open.

        Raises:
            InvalidArgumentError: If *args* do not fit the command.
            InvalidInputError: If the command is not valid ASCII.
            DeviceTimeoutError: If the write or the reply exceeds its
                deadline.
            NakReceivedError: If the device answered NAK and
                ``error_on_nak`` is set.
            ParseFailureError: If the reply cannot be decoded or parsed.
        """
        channel.set_read_timeout(0)
        channel.set_write_timeout(self.serial_write_timeout_seconds * 1000)

        frame = self.build_frame(*args)
        log.debug("TX %s (%s)", frame.command, frame.wire)
        channel.write_bytes(frame.to_bytes())

        raw = self._read_reply(channel)
        log.debug("RX %s", raw.hex().upper())
        return self.parse_result(raw)

    def _read_reply(self, channel) -> bytes:
        """Accumulate bytes from *channel* up to the termination character."""
        buf = bytearray()
        start = self.clock()
        while True:
            ch = channel.read_byte()
            if ch:
                buf += ch
                if bytes(ch) == self.serial_termination_character:
                    return bytes(buf)
            if self.clock() - start > self.serial_read_timeout_seconds:
                log.debug("read timeout after %d bytes", len(buf))
                raise DeviceTimeoutError("IO read timeout reached, giving up")
            if not ch:
                self.sleep(POLL_INTERVAL)

    # -- Reply -----------------------------------------------------------

    def parse_result(self, reply: bytes | str) -> Any:
        """Decode a reply and run it through the parser.

        *reply* is either the raw bytes read from the device or the
        equivalent hex string.

        Raises:
            NakReceivedError: If the reply is NAK and ``error_on_nak``
                is set.
            ParseFailureError: If decoding or parsing fails.
        """
        try:
            if isinstance(reply, (bytes, bytearray)):
                frame = decode_reply(reply)
            else:
                frame = decode_frame(reply)
        except Exception as exc:
            raise ParseFailureError.from_exception(exc) from exc

        if self.error_on_nak and frame.payload.upper() == NAK:
            raise NakReceivedError("Received NAK from device")

        try:
            return self.parser(frame)
        except Exception as exc:
            raise ParseFailureError.from_exception(exc) from exc

    def __str__(self) -> str:
        if isinstance(self.command, str):
            return "{}({!r})".format(type(self).__name__, self.command)
        return type(self).__name__
