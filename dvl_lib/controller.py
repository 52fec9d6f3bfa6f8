"""High-level controller for the DVL command interface with session state."""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from dvl_lib import commands, protocol
from dvl_lib.commands import sanitize
from dvl_lib.errors import SerialIOError
from dvl_lib.models import (
    ExchangeResult,
    FailureKind,
    PowerLevel,
    ProtocolTiming,
    SessionMode,
    SessionState,
    SetupResult,
    SetupStep,
)
from dvl_lib.scanner import ReadUntilScanner
from dvl_lib.transport import Transport
from dvl_lib.validators import salinity_in_range, sampling_rate_in_range

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DvlEngine(Protocol):
    """Capability interface a hosting scheduler drives."""

    def setup(self) -> SetupResult:
        ...

    def shutdown(self) -> None:
        ...

    def set_salinity(self, value: float) -> bool:
        ...

    def set_sampling_rate(self, value: float) -> bool:
        ...

    def set_power_level(self, level: PowerLevel) -> ExchangeResult:
        ...


class DvlController:
    """Controller orchestrating login, mode switching and configuration.

    Every configuration command goes through ``execute``, which enters
    command mode first unless told not to. Commands are therefore never
    sent while the device is streaming measurements.

    Protocol failures are returned as ``ExchangeResult``/``SetupResult``
    values. A transport error moves the session to FAULTED; from there all
    operations fail immediately until ``reconnect()``.

    Not thread-safe: one caller, one operation at a time.
    """

    def __init__(
        self,
        transport: Transport,
        sampling_rate: float = protocol.SAMPLING_RATE_DEFAULT,
        salinity: float = protocol.SALINITY_DEFAULT,
        buffer_size: int = protocol.SCAN_BUFFER_SIZE,
        timing: Optional[ProtocolTiming] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize controller bound to a connected transport.

        Args:
            transport: Connected Transport instance
            sampling_rate: Requested sampling rate in Hz (ignored if outside 1-8)
            salinity: Requested salinity in PSU (ignored if outside 0-50)
            buffer_size: Read-until scan buffer capacity. Default 256.
            timing: Timeouts and settling delays. Default ProtocolTiming().
            clock: Returns current UTC time; used for clock synchronization
        """
        self._transport = transport
        self._scanner = ReadUntilScanner(transport, capacity=buffer_size)
        self._timing = timing or ProtocolTiming()
        self._clock = clock or _utc_now
        self._buffer_size = buffer_size
        self._state = SessionState.DISCONNECTED

        # Store endpoint for reconnection when opened through open()
        self._url: Optional[str] = None

        self._salinity = protocol.SALINITY_DEFAULT
        self._sampling_rate = protocol.SAMPLING_RATE_DEFAULT
        self.set_salinity(salinity)
        self.set_sampling_rate(sampling_rate)

    @classmethod
    def open(cls, url: str, **kwargs) -> "DvlController":
        """Open the endpoint at ``url`` and bind a controller to it.

        Raises:
            SerialIOError: If the endpoint cannot be opened
        """
        controller = cls(Transport.open(url), **kwargs)
        controller._url = url
        return controller

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state

    @property
    def mode(self) -> SessionMode:
        """Device mode derived from the session state."""
        if self._state == SessionState.COMMAND_MODE:
            return SessionMode.COMMAND
        if self._state == SessionState.MEASUREMENT_MODE:
            return SessionMode.MEASUREMENT
        return SessionMode.UNKNOWN

    @property
    def salinity(self) -> float:
        """Salinity applied by the next SETDVL command."""
        return self._salinity

    @property
    def sampling_rate(self) -> float:
        """Sampling rate applied by the next SETDVL command."""
        return self._sampling_rate

    @property
    def url(self) -> Optional[str]:
        """Endpoint URL, if the controller opened the transport itself."""
        return self._url

    def is_connected(self) -> bool:
        """Check if the transport is open and the session is not faulted."""
        return self._transport.is_open and self._state != SessionState.FAULTED

    # ========================================================================
    # Parameter Setters
    # ========================================================================

    def set_salinity(self, value: float) -> bool:
        """Update salinity if within 0.0-50.0; otherwise keep the old value.

        Returns:
            True if the value was accepted
        """
        if not salinity_in_range(value):
            logger.debug(f"Ignoring out-of-range salinity {value}")
            return False
        self._salinity = float(value)
        return True

    def set_sampling_rate(self, value: float) -> bool:
        """Update sampling rate if within 1.0-8.0; otherwise keep the old value.

        Returns:
            True if the value was accepted
        """
        if not sampling_rate_in_range(value):
            logger.debug(f"Ignoring out-of-range sampling rate {value}")
            return False
        self._sampling_rate = float(value)
        return True

    def set_power_level(self, level: PowerLevel) -> ExchangeResult:
        """Set bottom-track transmit power, then restart measurements.

        START is attempted even when SETBT fails, and its outcome is not
        part of the return value.

        Args:
            level: PowerLevel category

        Returns:
            ExchangeResult of the SETBT command only
        """
        cmd = commands.make_set_power_level_cmd(level)
        logger.info(f"Setting power level {level.value}: {cmd}")

        result = self.execute(cmd)
        if not result:
            logger.warning(f"Power level command failed: {result.failure.value}")

        self.start()
        return result

    # ========================================================================
    # Setup Sequence
    # ========================================================================

    def setup(self) -> SetupResult:
        """Run the full configuration sequence, aborting on the first failure.

        Steps: login, command mode, factory defaults, LED off, clock,
        sampling rate/salinity, save, start. Nothing is retried here.

        Returns:
            SetupResult naming the failed step, if any
        """
        logger.info("Starting DVL setup sequence...")

        steps = [
            (SetupStep.LOGIN, self.login),
            (SetupStep.ENTER_COMMAND_MODE, self.enter_command_mode),
            (SetupStep.RESET_DEFAULTS, lambda: self.execute(protocol.CMD_RESET_DEFAULTS)),
            (SetupStep.DISABLE_LED, lambda: self.execute(protocol.CMD_DISABLE_LED)),
            (SetupStep.SET_CLOCK, self._set_clock),
            (SetupStep.SET_DVL, self._set_dvl),
            (SetupStep.SAVE, self._save),
            (SetupStep.START, self.start),
        ]

        for step, action in steps:
            result = action()
            if not result:
                logger.error(f"Setup aborted at step '{step.value}'")
                return SetupResult(ok=False, failed_step=step, exchange=result)
            logger.debug(f"Setup step '{step.value}' done")

        logger.info("DVL setup complete, measuring")
        return SetupResult(ok=True)

    def _set_clock(self) -> ExchangeResult:
        return self.execute(commands.make_set_clock_cmd(self._clock()))

    def _set_dvl(self) -> ExchangeResult:
        return self.execute(commands.make_set_dvl_cmd(self._sampling_rate, self._salinity))

    def _save(self) -> ExchangeResult:
        """Persist configuration; on failure query the device error once."""
        result = self.execute(protocol.CMD_SAVE)
        if not result:
            # Diagnostic only, result deliberately unchecked
            self.execute(protocol.CMD_GET_ERROR, trace=True)
        return result

    # ========================================================================
    # Session Transitions
    # ========================================================================

    def login(self) -> ExchangeResult:
        """Answer the username/password prompts and wait for the banner.

        Returns:
            ExchangeResult of the first wait that failed, or of the banner
        """
        if self._state == SessionState.FAULTED:
            return self._faulted(protocol.USERNAME_PROMPT)

        logger.info("Logging in to command interface...")
        self._set_state(SessionState.LOGGING_IN)

        for prompt in (protocol.USERNAME_PROMPT, protocol.PASSWORD_PROMPT):
            result = self._reply_login(prompt)
            if not result:
                return self._login_failed(result)

        result = self._read_until(
            protocol.LOGIN_BANNER, self._timing.login_banner_timeout, trace=True
        )
        if not result:
            return self._login_failed(result)

        time.sleep(self._timing.login_settle_delay)
        self._set_state(SessionState.AUTHENTICATED)
        return result

    def _reply_login(self, prompt: bytes) -> ExchangeResult:
        result = self._read_until(prompt, self._timing.login_prompt_timeout, trace=True)
        if not result:
            return result

        failed = self._write_line(protocol.CREDENTIAL, expected=prompt, trace=False)
        return failed if failed is not None else result

    def _login_failed(self, result: ExchangeResult) -> ExchangeResult:
        if self._state != SessionState.FAULTED:
            self._set_state(SessionState.DISCONNECTED)
        logger.warning(
            f"Login failed waiting for '{sanitize(result.expected)}' "
            f"({result.failure.value})"
        )
        return result

    def enter_command_mode(self) -> ExchangeResult:
        """Interrupt measurements and switch the device to command mode.

        No-op if already in command mode.
        """
        if self._state == SessionState.COMMAND_MODE:
            return ExchangeResult(ok=True, expected=protocol.ACK)
        if self._state == SessionState.FAULTED:
            return self._faulted(protocol.ACK)

        # Drop streamed measurement data so the break reply fits the scan buffer
        flushed = self._flush_input(protocol.ACK, protocol.BREAK_SEQUENCE)
        if flushed is not None:
            return flushed

        result = self.send_break()
        if not result:
            logger.warning("Device did not answer break, command mode not entered")
            return result

        time.sleep(self._timing.break_settle_delay)

        result = self.execute(
            protocol.CMD_MODE_CHANGE,
            bypass_mode_switch=True,
            trace=True,
            timeout=self._timing.mode_change_timeout,
        )
        if not result:
            logger.warning("Mode change not acknowledged")
            return result

        self._set_state(SessionState.COMMAND_MODE)
        return result

    def send_break(self) -> ExchangeResult:
        """Send the wake-up sequence, retrying exactly once on failure."""
        result = self._break_attempt()
        if result or self._state == SessionState.FAULTED:
            return result

        logger.debug("Break not acknowledged, retrying once")
        return self._break_attempt()

    def _break_attempt(self) -> ExchangeResult:
        # The device answers a break with OK; a missing OK is what triggers the retry
        return self.execute(
            protocol.BREAK_SEQUENCE,
            bypass_mode_switch=True,
            trace=True,
            timeout=self._timing.break_timeout,
        )

    def start(self) -> ExchangeResult:
        """Start measuring; on acknowledgment the session is in measurement mode."""
        result = self.execute(protocol.CMD_START)
        if result:
            self._set_state(SessionState.MEASUREMENT_MODE)
        return result

    # ========================================================================
    # Command Executor
    # ========================================================================

    def execute(
        self,
        command: str,
        bypass_mode_switch: bool = False,
        trace: bool = False,
        timeout: Optional[float] = None,
        expect: bytes = protocol.ACK,
    ) -> ExchangeResult:
        """Send one command line and wait for the reply terminator.

        Args:
            command: Command text without line terminator
            bypass_mode_switch: Skip entering command mode before sending
            trace: Log sanitized sent and received bytes
            timeout: Reply timeout; defaults to the configuration command timeout
            expect: Terminal byte sequence of a successful reply

        Returns:
            ExchangeResult; never raises on timeout
        """
        if self._state == SessionState.FAULTED:
            return self._faulted(expect, command)

        if not bypass_mode_switch:
            mode_result = self.enter_command_mode()
            if not mode_result:
                failure = mode_result.failure
                if failure != FailureKind.TRANSPORT_FAULT:
                    failure = FailureKind.MODE_SWITCH_FAILED
                return ExchangeResult(
                    ok=False,
                    expected=expect,
                    received=mode_result.received,
                    failure=failure,
                    command=command,
                )

        flushed = self._flush_input(expect, command)
        if flushed is not None:
            return flushed

        sent = self._write_line(command, expected=expect, trace=trace)
        if sent is not None:
            return sent

        if timeout is None:
            timeout = self._timing.command_timeout

        result = self._read_until(expect, timeout, trace=trace)
        result.command = command
        if not result:
            logger.warning(f"No acknowledgment for '{command}' ({result.failure.value})")
        return result

    def _write_line(self, text: str, expected: bytes, trace: bool) -> Optional[ExchangeResult]:
        """Write a line; returns a failure result on transport error, else None."""
        try:
            self._transport.write_line(text)
        except SerialIOError as e:
            return self._fault(e, expected, text)

        if trace:
            logger.debug(f"sent: '{sanitize(text.encode('ascii') + protocol.LINE_TERMINATOR)}'")
        return None

    def _flush_input(self, expected: bytes, command: str) -> Optional[ExchangeResult]:
        try:
            self._transport.flush_input()
        except SerialIOError as e:
            return self._fault(e, expected, command)
        return None

    def _read_until(self, sequence: bytes, timeout: float, trace: bool) -> ExchangeResult:
        try:
            return self._scanner.read_until(sequence, timeout, trace=trace)
        except SerialIOError as e:
            return self._fault(e, sequence)

    # ========================================================================
    # Teardown and Recovery
    # ========================================================================

    def shutdown(self) -> None:
        """Power the device down, best effort. Failures are logged, not raised."""
        if self._state == SessionState.FAULTED or not self._transport.is_open:
            logger.info("Skipping power-down, link not usable")
            return

        logger.info("Powering down device...")
        result = self.execute(protocol.CMD_POWER_DOWN)
        if result:
            logger.info("Device powered down")
        else:
            logger.warning(f"Power-down not acknowledged ({result.failure.value})")

    def close(self) -> None:
        """Power down (best effort) and close the transport."""
        self.shutdown()
        try:
            self._transport.close()
        except SerialIOError as e:
            logger.warning(f"Error closing transport: {e}")
        self._state = SessionState.DISCONNECTED

    def reconnect(self, transport: Optional[Transport] = None) -> None:
        """Replace the transport and reset the session to DISCONNECTED.

        Args:
            transport: New connected transport. If None, reopens the URL the
                      controller was opened with.

        Raises:
            SerialIOError: If no transport is given and none can be reopened
        """
        if transport is None:
            if self._url is None:
                raise SerialIOError("Cannot reconnect: no previous endpoint")
            logger.info(f"Reconnecting to {self._url}...")
            transport = Transport.open(self._url)

        try:
            self._transport.close()
        except Exception as e:
            logger.debug(f"Ignoring error closing old transport: {e}")

        self._transport = transport
        self._scanner = ReadUntilScanner(transport, capacity=self._buffer_size)
        self._state = SessionState.DISCONNECTED
        logger.info("Reconnected, session reset")

    # ========================================================================
    # Internal Helpers
    # ========================================================================

    def _set_state(self, state: SessionState) -> None:
        if state != self._state:
            logger.info(f"Session state {self._state.value} -> {state.value}")
        self._state = state

    def _fault(
        self, error: SerialIOError, expected: bytes, command: Optional[str] = None
    ) -> ExchangeResult:
        logger.error(f"Transport fault: {error}")
        self._set_state(SessionState.FAULTED)
        return self._faulted(expected, command)

    def _faulted(self, expected: bytes, command: Optional[str] = None) -> ExchangeResult:
        return ExchangeResult(
            ok=False,
            expected=expected,
            failure=FailureKind.TRANSPORT_FAULT,
            command=command,
        )
