"""Fake port that simulates the DVL command interface.

Emulates the login handshake, break/mode-change sequence, command-mode
acknowledgments and measurement-mode streaming closely enough to drive
DvlController through every path, including injected failures.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from dvl_lib.models import ProtocolTiming

logger = logging.getLogger(__name__)

BREAK = "K1W%!Q"
CREDENTIAL = "nortek"

# Short timeouts and no settling delays, for tests against the fake
FAST_TIMING = ProtocolTiming(
    command_timeout=0.05,
    mode_change_timeout=0.05,
    break_timeout=0.05,
    login_prompt_timeout=0.05,
    login_banner_timeout=0.05,
    break_settle_delay=0.0,
    login_settle_delay=0.0,
)


@dataclass
class ReceivedLine:
    """One CR LF terminated line the fake received, with the mode it arrived in."""

    text: str
    state: str


class FakeDvl:
    """Deterministic simulator of the DVL command interface.

    Replies are queued synchronously when a complete line is written, so
    ``in_waiting`` is non-zero as soon as ``write`` returns.

    States: "username", "password", "measurement", "confirm", "command".
    After login the device is measuring. A break moves it to "confirm",
    MC moves it to "command", START back to "measurement". Any other
    line received while measuring is ignored (no reply).
    """

    def __init__(
        self,
        login_prompts: bool = True,
        banner: bytes = b"\r\nNortek DVL1000 Command Interface\r\r\n",
    ) -> None:
        """Initialize fake device.

        Args:
            login_prompts: If False, the device never sends "Username: "
            banner: Banner sent after a correct password
        """
        self.banner = banner
        self.is_open = True

        self._state = "username"
        self._output = bytearray()
        self._input = bytearray()

        # Injected behaviour
        self.silent_prefixes: Set[str] = set()  # no reply at all
        self.error_prefixes: Set[str] = set()  # reply "ERROR"
        self.ignored_breaks = 0  # number of breaks to drop before answering
        self.fail_writes = False  # raise on write, like a dropped link
        self.accept_password = True

        # What the host sent
        self.received: List[ReceivedLine] = []
        self.breaks_received = 0

        if login_prompts:
            self._send(b"Username: ")

    # ========================================================================
    # SerialLike
    # ========================================================================

    def close(self) -> None:
        """Close the fake port."""
        self.is_open = False
        logger.debug("FakeDvl closed")

    def write(self, data: bytes) -> int:
        """Accept bytes from the host and process complete lines."""
        if not self.is_open:
            raise RuntimeError("Port is closed")
        if self.fail_writes:
            raise OSError("Connection reset by peer")

        self._input.extend(data)
        while b"\r\n" in self._input:
            idx = self._input.index(b"\r\n")
            line = bytes(self._input[:idx]).decode("ascii", errors="replace")
            del self._input[: idx + 2]
            self._handle_line(line)

        return len(data)

    def read(self, size: int = 1) -> bytes:
        """Return up to size queued output bytes."""
        if not self.is_open:
            raise RuntimeError("Port is closed")
        chunk = bytes(self._output[:size])
        del self._output[:size]
        return chunk

    @property
    def in_waiting(self) -> int:
        """Number of queued output bytes."""
        if not self.is_open:
            raise RuntimeError("Port is closed")
        return len(self._output)

    def flush(self) -> None:
        """No-op; writes are processed immediately."""
        pass

    def reset_input_buffer(self) -> None:
        """Discard queued output."""
        self._output.clear()

    # ========================================================================
    # Test helpers
    # ========================================================================

    @property
    def state(self) -> str:
        """Current simulated device state."""
        return self._state

    def inject(self, data: bytes) -> None:
        """Queue arbitrary bytes as if the device had sent them."""
        self._output.extend(data)

    def commands(self) -> List[str]:
        """Texts of all received lines, in order."""
        return [line.text for line in self.received]

    def last_command(self) -> Optional[str]:
        """Text of the most recently received line."""
        return self.received[-1].text if self.received else None

    def start_logged_in(self, state: str = "measurement") -> None:
        """Skip the login handshake and drop its pending prompt."""
        self._output.clear()
        self._state = state

    # ========================================================================
    # Internal: line handling
    # ========================================================================

    def _send(self, data: bytes) -> None:
        self._output.extend(data)

    def _ack(self) -> None:
        self._send(b"OK\r\n")

    def _handle_line(self, line: str) -> None:
        self.received.append(ReceivedLine(text=line, state=self._state))
        logger.debug(f"FakeDvl received {line!r} in state {self._state}")

        if self._state == "username":
            self._send(b"Password: ")
            self._state = "password"
            return

        if self._state == "password":
            if self.accept_password and line == CREDENTIAL:
                self._send(self.banner)
                self._state = "measurement"
            else:
                self._send(b"\r\nLogin failed\r\nUsername: ")
                self._state = "username"
            return

        if line == BREAK:
            self.breaks_received += 1
            if self.ignored_breaks > 0:
                self.ignored_breaks -= 1
                return
            self._send(b"\r\nConfirm with MC or continue measurement\r\nOK\r\n")
            self._state = "confirm"
            return

        if any(line.startswith(prefix) for prefix in self.silent_prefixes):
            return

        if self._state == "confirm":
            if line == "MC":
                self._state = "command"
                self._ack()
            else:
                # Anything but MC resumes measurement
                self._state = "measurement"
            return

        if self._state == "measurement":
            # Streaming; commands are not interpreted
            return

        # Command mode
        if any(line.startswith(prefix) for prefix in self.error_prefixes):
            self._send(b"ERROR\r\n")
            return

        if line == "START":
            self._ack()
            self._state = "measurement"
        elif line == "GETERROR":
            self._send(b'ERROR,"Save failed"\r\nOK\r\n')
        else:
            self._ack()
