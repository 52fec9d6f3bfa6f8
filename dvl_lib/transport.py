"""Byte-stream transport layer for DVL communication."""

import logging
import time
from typing import Protocol

from dvl_lib import protocol
from dvl_lib.commands import sanitize
from dvl_lib.errors import SerialIOError

logger = logging.getLogger(__name__)


class SerialLike(Protocol):
    """Protocol for a pyserial-style port (allows test doubles)."""

    def write(self, data: bytes) -> int:
        """Write bytes to the port."""
        ...

    def read(self, size: int = 1) -> bytes:
        """Read up to size bytes from the port."""
        ...

    @property
    def in_waiting(self) -> int:
        """Number of bytes available to read without blocking."""
        ...

    def flush(self) -> None:
        """Flush output buffer (force transmission)."""
        ...

    def reset_input_buffer(self) -> None:
        """Discard pending input."""
        ...

    def close(self) -> None:
        """Close the port."""
        ...

    @property
    def is_open(self) -> bool:
        """Check if port is open."""
        ...


class Transport:
    """Wrapper around a pyserial port with protocol-specific helpers.

    Works the same for a serial device and for a TCP link opened as a
    ``socket://host:port`` URL. All reads are non-blocking; waiting is done
    through ``wait_readable`` with an explicit timeout.
    """

    def __init__(self, serial_port: SerialLike) -> None:
        """Initialize transport with an open port instance.

        Args:
            serial_port: Object implementing SerialLike protocol
                        (e.g., serial.Serial or FakeDvl for testing)
        """
        self._port = serial_port

    @classmethod
    def open(cls, url: str, baud: int = 115200) -> "Transport":
        """Open a real endpoint (requires pyserial).

        Args:
            url: pyserial URL or device name, e.g. "socket://192.168.0.2:9000"
                 or "/dev/ttyUSB0"
            baud: Baud rate, ignored for socket URLs

        Returns:
            Transport instance wrapping the opened port

        Raises:
            SerialIOError: If the endpoint cannot be opened
        """
        try:
            import serial  # type: ignore
        except ImportError as e:
            raise SerialIOError("pyserial not installed. Run: pip install pyserial") from e

        try:
            # timeout=0 makes read() return immediately with what is buffered
            port = serial.serial_for_url(url, baudrate=baud, timeout=0)
            logger.info(f"Opened {url}")
            return cls(port)
        except Exception as e:
            raise SerialIOError(f"Failed to open {url}: {e}") from e

    def close(self) -> None:
        """Close the port."""
        if self._port.is_open:
            self._port.close()
            logger.info("Closed transport")

    @property
    def is_open(self) -> bool:
        """Check if port is currently open."""
        return self._port.is_open

    def write_bytes(self, data: bytes) -> None:
        """Write raw bytes to port (no automatic termination).

        Raises:
            SerialIOError: If port is closed or write fails
        """
        if not self._port.is_open:
            raise SerialIOError("Transport is not open")

        try:
            sent = self._port.write(data)
            self._port.flush()
            logger.debug(f"Sent {sent} bytes: '{sanitize(data)}'")
        except Exception as e:
            raise SerialIOError(f"Failed to write to port: {e}") from e

    def write_line(self, text: str) -> None:
        """Write a text command terminated with CR LF.

        Args:
            text: Command string (e.g., "START", "SETBT,PL=0.000000")

        Raises:
            SerialIOError: If write fails
        """
        self.write_bytes(text.encode("ascii") + protocol.LINE_TERMINATOR)

    def flush_input(self) -> None:
        """Discard all pending input from the device.

        Clears measurement data still streaming in before a break, and late
        replies left over from a previous exchange.

        Raises:
            SerialIOError: If port is closed or the reset fails
        """
        if not self._port.is_open:
            raise SerialIOError("Transport is not open")

        try:
            self._port.reset_input_buffer()
            logger.debug("Flushed input buffer")
        except Exception as e:
            raise SerialIOError(f"Failed to flush input: {e}") from e

    def read_available(self, max_size: int) -> bytes:
        """Read whatever is buffered, up to max_size bytes, without blocking.

        Returns:
            Received bytes, possibly empty

        Raises:
            SerialIOError: If port is closed or read fails
        """
        if not self._port.is_open:
            raise SerialIOError("Transport is not open")
        if max_size <= 0:
            return b""

        try:
            pending = self._port.in_waiting
            if not pending:
                return b""
            return self._port.read(min(pending, max_size))
        except Exception as e:
            raise SerialIOError(f"Failed to read from port: {e}") from e

    def wait_readable(self, timeout: float) -> bool:
        """Wait until data is available or timeout elapses.

        Args:
            timeout: Max seconds to wait; zero or negative checks once

        Returns:
            True if data became available before the deadline

        Raises:
            SerialIOError: If port is closed or the readiness check fails
        """
        if not self._port.is_open:
            raise SerialIOError("Transport is not open")

        deadline = time.monotonic() + max(timeout, 0.0)
        try:
            while True:
                if self._port.in_waiting > 0:
                    return True
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                time.sleep(min(protocol.READY_POLL_INTERVAL, remaining))
        except Exception as e:
            raise SerialIOError(f"Failed to poll port: {e}") from e

