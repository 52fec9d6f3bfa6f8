"""Data models for the DVL control library."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dvl_lib import protocol


class SessionState(Enum):
    """Controller session states."""

    DISCONNECTED = "disconnected"
    LOGGING_IN = "logging_in"
    AUTHENTICATED = "authenticated"
    COMMAND_MODE = "command_mode"
    MEASUREMENT_MODE = "measurement_mode"
    FAULTED = "faulted"


class SessionMode(Enum):
    """Device mode as far as the controller knows it."""

    UNKNOWN = "unknown"
    MEASUREMENT = "measurement"
    COMMAND = "command"


class PowerLevel(Enum):
    """Bottom-track transmit power categories."""

    MINIMUM = "min"
    MEDIUM = "med"
    MAXIMUM = "max"


class FailureKind(Enum):
    """Why an exchange did not succeed."""

    TRANSPORT_TIMEOUT = "transport_timeout"
    UNEXPECTED_REPLY = "unexpected_reply"
    BUFFER_OVERFLOW = "buffer_overflow"
    MODE_SWITCH_FAILED = "mode_switch_failed"
    TRANSPORT_FAULT = "transport_fault"


class SetupStep(Enum):
    """Ordered steps of the setup sequence."""

    LOGIN = "login"
    ENTER_COMMAND_MODE = "enter_command_mode"
    RESET_DEFAULTS = "reset_defaults"
    DISABLE_LED = "disable_led"
    SET_CLOCK = "set_clock"
    SET_DVL = "set_dvl"
    SAVE = "save"
    START = "start"


@dataclass
class ExchangeResult:
    """Outcome of one send/await cycle or one read-until scan.

    Truthy when the expected terminator was seen.

    Attributes:
        ok: True if the reply ended with ``expected``.
        expected: Terminal byte sequence that was awaited.
        received: Bytes accumulated in the scan buffer (may be partial).
        failure: Failure category when ``ok`` is False.
        command: Command line that was sent, if any.
    """

    ok: bool
    expected: bytes
    received: bytes = b""
    failure: Optional[FailureKind] = None
    command: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate consistency of ok/failure."""
        if self.ok and self.failure is not None:
            raise ValueError("successful exchange cannot carry a failure")
        if not self.ok and self.failure is None:
            raise ValueError("failed exchange must carry a failure kind")

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class SetupResult:
    """Outcome of the setup sequence.

    Attributes:
        ok: True if every step succeeded.
        failed_step: First step that failed (sequence aborted there).
        exchange: Exchange that failed, when the step was a single exchange.
    """

    ok: bool
    failed_step: Optional[SetupStep] = None
    exchange: Optional[ExchangeResult] = None

    def __bool__(self) -> bool:
        return self.ok


@dataclass(frozen=True)
class ProtocolTiming:
    """Timeouts and settling delays, in seconds."""

    command_timeout: float = protocol.COMMAND_TIMEOUT
    mode_change_timeout: float = protocol.MODE_CHANGE_TIMEOUT
    break_timeout: float = protocol.BREAK_TIMEOUT
    login_prompt_timeout: float = protocol.LOGIN_PROMPT_TIMEOUT
    login_banner_timeout: float = protocol.LOGIN_BANNER_TIMEOUT
    break_settle_delay: float = protocol.BREAK_SETTLE_DELAY
    login_settle_delay: float = protocol.LOGIN_SETTLE_DELAY
