"""Bounded read-until scanner for reply terminators."""

import logging
import time
from enum import Enum

from dvl_lib import protocol
from dvl_lib.commands import sanitize
from dvl_lib.models import ExchangeResult, FailureKind
from dvl_lib.transport import Transport

logger = logging.getLogger(__name__)


class ScanStatus(Enum):
    """Result of feeding one chunk into the scan buffer."""

    MATCHED = "matched"
    PENDING = "pending"
    OVERFLOW = "overflow"


class ReadUntilScanner:
    """Fixed-capacity accumulator that detects a terminal byte sequence.

    Bytes are appended at a write cursor that never passes ``capacity``.
    A match means the buffer contents end with the target sequence; bytes
    that arrive after the terminator in the same chunk stay in the buffer
    and make the suffix check fail for that chunk.

    Only one scan is in flight at a time. ``read_until`` starts from an
    empty buffer, so nothing carries over between exchanges.
    """

    def __init__(self, transport: Transport, capacity: int = protocol.SCAN_BUFFER_SIZE) -> None:
        """Initialize scanner.

        Args:
            transport: Transport to read from
            capacity: Scan buffer size in bytes. Default 256.
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self._transport = transport
        self._capacity = capacity
        self._buffer = bytearray(capacity)
        self._cursor = 0
        self._sequence = b""

    @property
    def capacity(self) -> int:
        """Maximum number of bytes one scan can hold."""
        return self._capacity

    @property
    def received(self) -> bytes:
        """Bytes accumulated by the current (or last) scan."""
        return bytes(self._buffer[: self._cursor])

    def reset(self, sequence: bytes) -> None:
        """Start a new scan for ``sequence`` with an empty buffer."""
        if not sequence:
            raise ValueError("terminal sequence must not be empty")
        self._sequence = bytes(sequence)
        self._cursor = 0

    def feed(self, chunk: bytes) -> ScanStatus:
        """Append a chunk and check for the terminal sequence.

        Args:
            chunk: Newly received bytes

        Returns:
            MATCHED if the buffer now ends with the sequence, OVERFLOW if the
            chunk does not fit in the remaining space, PENDING otherwise
        """
        if self._cursor + len(chunk) > self._capacity:
            return ScanStatus.OVERFLOW

        end = self._cursor + len(chunk)
        self._buffer[self._cursor : end] = chunk
        self._cursor = end

        if self._buffer[: self._cursor].endswith(self._sequence):
            return ScanStatus.MATCHED
        return ScanStatus.PENDING

    def read_until(self, sequence: bytes, timeout: float, trace: bool = False) -> ExchangeResult:
        """Read from the transport until the buffer ends with ``sequence``.

        Args:
            sequence: Terminal byte sequence to wait for
            timeout: Max seconds to wait for the whole reply
            trace: Log received bytes (sanitized)

        Returns:
            ExchangeResult; on failure ``received`` holds the partial reply

        Raises:
            SerialIOError: If the transport fails (not on timeout)
        """
        self.reset(sequence)
        deadline = time.monotonic() + timeout
        failure = FailureKind.TRANSPORT_TIMEOUT

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if not self._transport.wait_readable(remaining):
                break

            if self._cursor >= self._capacity:
                failure = FailureKind.BUFFER_OVERFLOW
                break

            chunk = self._transport.read_available(self._capacity - self._cursor)
            status = self.feed(chunk)

            if status is ScanStatus.MATCHED:
                if trace:
                    logger.debug(f"recv: '{sanitize(self.received)}'")
                return ExchangeResult(ok=True, expected=self._sequence, received=self.received)

            if status is ScanStatus.OVERFLOW:
                failure = FailureKind.BUFFER_OVERFLOW
                break

        if failure is FailureKind.TRANSPORT_TIMEOUT and self._cursor > 0:
            failure = FailureKind.UNEXPECTED_REPLY

        if trace:
            logger.debug(
                f"recv: '{sanitize(self.received)}' "
                f"(does not end with: '{sanitize(self._sequence)}')"
            )

        return ExchangeResult(
            ok=False,
            expected=self._sequence,
            received=self.received,
            failure=failure,
        )
