"""Frame encoding and decoding for the Voltronic/Axpert serial protocol.

A frame is the ASCII command followed by a two-byte CRC (high byte
first) and a carriage return::

    Q  P  I  G  S  CRC_HI CRC_LO CR
    51 50 49 47 53 B7     A9     0D

Frames are represented as uppercase hex strings, two digits per byte.
The hex form doubles as the validation path: a frame decoded from hex
is re-encoded and must reproduce the input exactly, which checks the
CRC and catches truncated or corrupted replies at the same time.

Example:
    >>> frame = encode_frame("qpigs")
    >>> frame.command
    'QPIGS'
    >>> frame.wire
    '5150494753B7A90D'
    >>> decode_frame(frame.wire) == frame
    True
"""

import re
from dataclasses import dataclass

from voltronic.errors import InvalidInputError

# -- Protocol constants ------------------------------------------------------

PROTO_CR = 0x0D
# CRC_HI + CRC_LO + CR.
PROTO_TRAILER_LEN = 3
# Replies carry their data after an opening parenthesis, e.g. "(ACK".
PROTO_REPLY_START = "("

_HEX_RE = re.compile(r"[0-9A-F]*")

# -- CRC ---------------------------------------------------------------------

# Nibble-indexed subset of the CRC-16/XMODEM (polynomial 0x1021) table.
CRC_TABLE = (
    0x0000, 0x1021, 0x2042, 0x3063, 0x4084, 0x50A5, 0x60C6, 0x70E7,
    0x8108, 0x9129, 0xA14A, 0xB16B, 0xC18C, 0xD1AD, 0xE1CE, 0xF1EF,
)

# CRC bytes that would collide with framing characters on the wire:
# "(" (0x28), CR (0x0D) and LF (0x0A).
CRC_FORBIDDEN = frozenset((0x28, 0x0D, 0x0A))


def crc16(data: bytes) -> int:
    """Compute the Voltronic CRC-16 over a byte sequence.

    Table-driven XMODEM CRC processed a nibble at a time, followed by
    a correction step: a result byte equal to 0x28, 0x0D or 0x0A is
    bumped by one so it can never be mistaken for a framing byte.
    High and low bytes are corrected independently.

    Example:
        >>> hex(crc16(b"QPIGS"))
        '0xb7a9'
        >>> hex(crc16(b"POP02"))  # raw low byte 0x0A corrected
        '0xe20b'
    """
    crc = 0
    for byte in data:
        for nibble in (byte >> 4, byte & 0x0F):
            da = (crc >> 12) & 0x0F
            crc = ((crc << 4) & 0xFFFF) ^ CRC_TABLE[da ^ nibble]

    low = crc & 0xFF
    high = (crc >> 8) & 0xFF
    if low in CRC_FORBIDDEN:
        low += 1
    if high in CRC_FORBIDDEN:
        high += 1
    return (high << 8) | low


# -- Frame value -------------------------------------------------------------


@dataclass(frozen=True)
class ProtocolFrame:
    """An ASCII command and its hex wire representation.

    Obtain instances through ``encode_frame`` or ``decode_frame``;
    construction checks that *wire* decodes back to *command*.
    """

    command: str
    wire: str

    def __post_init__(self):
        try:
            decoded = bytes.fromhex(self.wire)[:-PROTO_TRAILER_LEN].decode("ascii")
        except ValueError:
            decoded = None
        if decoded != self.command:
            raise RuntimeError(
                "internal check failed: wire {} does not decode to {!r}".format(
                    self.wire, self.command
                )
            )

    @property
    def payload(self) -> str:
        """The command text without the leading reply parenthesis."""
        if self.command.startswith(PROTO_REPLY_START):
            return self.command[len(PROTO_REPLY_START):]
        return self.command

    def to_bytes(self) -> bytes:
        """Return the raw frame bytes to write to the serial port."""
        return bytes.fromhex(self.wire)


# -- Encoding ----------------------------------------------------------------


def encode_frame(command: str) -> ProtocolFrame:
    """Build a frame from a human-readable ASCII command.

    The command is trimmed and upper-cased, then checked to be plain
    7-bit ASCII without control characters.  Characters that would
    need replacing are rejected rather than substituted.

    Raises:
        InvalidInputError: If the command is not a string, or contains
            non-ASCII or control characters.
    """
    if not isinstance(command, str):
        raise InvalidInputError(
            "Expected command to be str, got %s" % type(command).__name__
        )
    command = command.strip().upper()
    check = command.encode("ascii", errors="replace").decode("ascii")
    if check != command:
        raise InvalidInputError("Invalid input in {!r}".format(command))
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in command):
        raise InvalidInputError(
            "control character in {!r}".format(command)
        )

    body = command.encode("ascii")
    crc = crc16(body)
    raw = body + bytes([crc >> 8, crc & 0xFF, PROTO_CR])
    return ProtocolFrame(command, raw.hex().upper())


# -- Decoding ----------------------------------------------------------------


def decode_frame(hex_frame: str) -> ProtocolFrame:
    """Parse a hex-encoded frame into a ProtocolFrame.

    Strips the CRC and terminator, re-encodes the remaining command
    and requires the result to match *hex_frame* exactly.  There is
    no separate CRC-mismatch error; any corruption fails the match.

    Raises:
        InvalidInputError: On odd length, non-hex characters, a frame
            too short to hold the trailer, non-ASCII content, or a
            re-encoding mismatch.
    """
    text = str(hex_frame).upper()
    if len(text) % 2 != 0:
        raise InvalidInputError(
            "odd-length hex: {} digits".format(len(text))
        )
    if not _HEX_RE.fullmatch(text):
        raise InvalidInputError("non-hex characters in {!r}".format(text))

    raw = bytes.fromhex(text)
    if len(raw) < PROTO_TRAILER_LEN:
        raise InvalidInputError(
            "frame too short: {} bytes, minimum is {}".format(
                len(raw), PROTO_TRAILER_LEN
            )
        )

    try:
        command = raw[:-PROTO_TRAILER_LEN].decode("ascii")
    except UnicodeDecodeError:
        raise InvalidInputError(
            "The input hex {} does not appear to be valid".format(text)
        ) from None

    frame = encode_frame(command)
    if frame.wire != text:
        raise InvalidInputError(
            "The input hex {} does not appear to be valid".format(text)
        )
    return frame


def decode_reply(raw: bytes) -> ProtocolFrame:
    """Decode raw reply bytes as read off the serial port.

    Example:
        >>> decode_reply(b"(ACK\\x39\\x20\\r").payload
        'ACK'
    """
    return decode_frame(bytes(raw).hex().upper())
