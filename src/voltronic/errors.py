"""Failure taxonomy for the voltronic protocol library.

Every error raised by the library derives from ``VoltronicError`` and
carries a ``kind`` so callers can branch on the failure without
walking the class hierarchy::

    try:
        op.issue(channel)
    except VoltronicError as exc:
        if exc.kind is ErrorKind.NAK_RECEIVED:
            ...
"""

import enum


class ErrorKind(enum.Enum):
    """Kinds of failure a command exchange can end in."""

    INVALID_ARGUMENT = "invalid_argument"
    INVALID_INPUT = "invalid_input"
    TIMEOUT = "timeout"
    NAK_RECEIVED = "nak_received"
    PARSE_FAILURE = "parse_failure"


class VoltronicError(Exception):
    """Base class for all library errors."""

    kind: ErrorKind


class InvalidArgumentError(VoltronicError, ValueError):
    """Bad descriptor configuration or command parameter."""

    kind = ErrorKind.INVALID_ARGUMENT


class InvalidInputError(VoltronicError, ValueError):
    """Malformed ASCII, malformed hex, or CRC mismatch."""

    kind = ErrorKind.INVALID_INPUT


class DeviceTimeoutError(VoltronicError, TimeoutError):
    """A serial write or read exceeded its deadline."""

    kind = ErrorKind.TIMEOUT


class NakReceivedError(VoltronicError):
    """The device rejected the command with NAK."""

    kind = ErrorKind.NAK_RECEIVED


class ParseFailureError(VoltronicError):
    """A reply could not be turned into a domain value.

    The original exception type is not preserved; its class name and
    message are kept as text in ``original_kind`` and ``detail``.
    """

    kind = ErrorKind.PARSE_FAILURE

    def __init__(self, original_kind: str, detail: str):
        super().__init__(
            "Could not parse the result (%s thrown; %s)" % (original_kind, detail)
        )
        self.original_kind = original_kind
        self.detail = detail

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ParseFailureError":
        """Describe *exc* as a ParseFailureError."""
        return cls(type(exc).__name__, str(exc))
