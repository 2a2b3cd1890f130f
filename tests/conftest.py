"""Shared pytest fixtures for voltronic tests."""

import pytest

from voltronic.protocol import encode_frame


def make_reply(text: str) -> bytes:
    """Build the raw bytes of a valid device reply carrying *text*."""
    return encode_frame(text).to_bytes()


class FakeChannel:
    """Test double for SerialChannel: canned reply bytes, records writes.

    *idle_reads* empty reads are returned before the reply starts, to
    exercise the poll loop.
    """

    def __init__(self, reply: bytes = b"", idle_reads: int = 0):
        """Initialize with the reply to hand out one byte at a time."""
        self._pending = list(reply)
        self._idle_reads = idle_reads
        self.written = []
        self.read_timeout_ms = None
        self.write_timeout_ms = None
        self.reads = 0
        self.closed = False

    def set_read_timeout(self, timeout_ms) -> None:
        self.read_timeout_ms = timeout_ms

    def set_write_timeout(self, timeout_ms) -> None:
        self.write_timeout_ms = timeout_ms

    def write_bytes(self, data: bytes) -> None:
        """Record *data* for later inspection."""
        self.written.append(bytes(data))

    def read_byte(self) -> bytes:
        """Return the next reply byte, or b"" while idle or exhausted."""
        self.reads += 1
        if self._idle_reads > 0:
            self._idle_reads -= 1
            return b""
        if self._pending:
            return bytes([self._pending.pop(0)])
        return b""

    def close(self) -> None:
        self.closed = True


class FakeClock:
    """Test double for time.monotonic and time.sleep.

    Time only moves when ``sleep`` is called.
    """

    def __init__(self, start: float = 1000.0):
        """Initialize at *start* seconds."""
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        """Record the pause and advance the clock by *seconds*."""
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    """A fresh FakeClock."""
    return FakeClock()
