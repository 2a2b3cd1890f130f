"""Serial channel for talking to an inverter over RS-232.

Wraps pyserial with the small byte-level interface that
``DeviceOperation.issue`` drives: per-call timeouts, a whole-frame
write and a single-byte, non-blocking read.

Example:
    >>> from voltronic.serial_channel import SerialChannel
    >>> with SerialChannel("/dev/ttyUSB0", 2400) as channel:
    ...     channel.write_bytes(b"QMOD\\x49\\xc1\\r")
    ...     channel.read_byte()
    b'('
"""

import serial

from voltronic.errors import DeviceTimeoutError

# Axpert/Voltronic inverters talk 2400 baud 8N1.
DEFAULT_BAUDRATE = 2400


class SerialChannel:
    """Serial port channel for the request/response exchange.

    Duck-typed -- tests can substitute any object with matching
    ``set_read_timeout``, ``set_write_timeout``, ``write_bytes`` and
    ``read_byte`` methods.

    Args:
        port: Serial port device path (e.g. ``"/dev/ttyUSB0"``).
        baudrate: Baud rate (default 2400).
    """

    def __init__(self, port, baudrate=DEFAULT_BAUDRATE):
        """Open the serial port with non-blocking reads."""
        self._ser = serial.Serial(
            port,
            baudrate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=0,
        )

    def set_read_timeout(self, timeout_ms):
        """Set the read timeout; zero or less means non-blocking."""
        self._ser.timeout = timeout_ms / 1000.0 if timeout_ms > 0 else 0

    def set_write_timeout(self, timeout_ms):
        """Set the write timeout; zero or less means non-blocking."""
        self._ser.write_timeout = timeout_ms / 1000.0 if timeout_ms > 0 else 0

    def write_bytes(self, data):
        """Send a complete frame.

        Discards stale input, writes *data*, then flushes the output
        buffer so the frame is fully transmitted before returning.

        Raises:
            DeviceTimeoutError: If the write timeout expires.
        """
        self._ser.reset_input_buffer()
        try:
            self._ser.write(data)
            self._ser.flush()
        except serial.SerialTimeoutException as exc:
            raise DeviceTimeoutError("IO write timeout reached, giving up") from exc

    def read_byte(self):
        """Read a single byte.

        Returns:
            bytes: One byte, or ``b""`` if nothing arrived within the
                read timeout.
        """
        return self._ser.read(1)

    def close(self):
        """Close the serial port."""
        self._ser.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
