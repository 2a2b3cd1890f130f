"""Command descriptors: a command template bound to a reply parser.

A descriptor names one device command.  Commands that take a value
carry a single ``{}`` placeholder and the finite set of accepted
values; the rest take no argument.

Example:
    >>> pop = CommandDescriptor("POP{}", ["00", "01", "02"], parser=parse)
    >>> pop.build("02").wire
    '504F503032E20B0D'
"""

from dataclasses import dataclass
from typing import Any, Callable

from voltronic.errors import InvalidArgumentError, ParseFailureError
from voltronic.protocol import ProtocolFrame, decode_frame, encode_frame

PLACEHOLDER = "{}"


@dataclass(frozen=True)
class CommandDescriptor:
    """Immutable specification of one device command.

    Args:
        name: Command keyword, e.g. ``"QPIGS"`` or ``"POP{}"``.
            Trimmed and upper-cased.
        allowed_values: Accepted values for the placeholder, or None
            (or empty) for commands without an argument.
        parser: Callable turning a decoded ``ProtocolFrame`` into a
            domain value.
        description: Short human-readable summary.

    Raises:
        InvalidArgumentError: If *parser* is missing or not callable,
            or the placeholder count does not match *allowed_values*.
    """

    name: str
    allowed_values: tuple[str, ...] | None = None
    parser: Callable[[ProtocolFrame], Any] | None = None
    description: str = ""

    def __post_init__(self):
        if self.parser is None or not callable(self.parser):
            raise InvalidArgumentError(
                "Expected a parser to deal with the command result"
            )
        name = str(self.name).strip().upper()
        values = tuple(str(v) for v in (self.allowed_values or ()) if v is not None)
        placeholders = name.count(PLACEHOLDER)
        if values and placeholders != 1:
            raise InvalidArgumentError(
                "command {!r} takes a value but has {} placeholders".format(
                    name, placeholders
                )
            )
        if not values and placeholders:
            raise InvalidArgumentError(
                "command {!r} has a placeholder but no allowed values".format(name)
            )
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "allowed_values", values or None)

    @property
    def takes_argument(self) -> bool:
        """True if the command requires exactly one value."""
        return self.allowed_values is not None

    def render(self, arg: str | None = None) -> str:
        """Validate *arg* and return the ASCII command string.

        Raises:
            InvalidArgumentError: If an argument is given to a command
                that takes none, is missing, or is not accepted.
        """
        if self.allowed_values is None:
            if arg is not None:
                raise InvalidArgumentError("wrong number of arguments (1 for 0)")
            return self.name

        if arg is None:
            raise InvalidArgumentError("wrong number of arguments (0 for 1)")
        if arg not in self.allowed_values:
            raise InvalidArgumentError(
                "{!r} is not accepted input (valid input: {})".format(
                    arg, list(self.allowed_values)
                )
            )
        return self.name.replace(PLACEHOLDER, str(arg), 1)

    def build(self, arg: str | None = None) -> ProtocolFrame:
        """Return the frame for this command with *arg* substituted."""
        return encode_frame(self.render(arg))

    def parse_result(self, hex_reply: str) -> Any:
        """Decode a hex reply and run it through the bound parser.

        Raises:
            ParseFailureError: If decoding or parsing fails for any
                reason.
        """
        try:
            return self.parser(decode_frame(hex_reply))
        except Exception as exc:
            raise ParseFailureError.from_exception(exc) from exc

    def __str__(self) -> str:
        return "{}({!r})".format(type(self).__name__, self.name)
