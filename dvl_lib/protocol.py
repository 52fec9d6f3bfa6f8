"""Wire protocol constants for the DVL command interface.

Byte sequences, command names, value ranges and timing used by the
controller. Commands are ASCII lines terminated by CR LF; every accepted
command is acknowledged with ``OK`` CR LF.
"""

from typing import Final

# ============================================================================
# Line Termination
# ============================================================================

# Every command line sent to the device ends with CR LF
LINE_TERMINATOR: Final[bytes] = b"\r\n"

# Standard acknowledgment suffix
ACK: Final[bytes] = b"OK" + LINE_TERMINATOR

# ============================================================================
# Login Handshake
# ============================================================================

USERNAME_PROMPT: Final[bytes] = b"Username: "
PASSWORD_PROMPT: Final[bytes] = b"Password: "

# Banner ends with CR CR LF, not the usual CR LF
LOGIN_BANNER: Final[bytes] = b"Command Interface\r\r\n"

# Same literal is used for both username and password
CREDENTIAL: Final[str] = "nortek"

# ============================================================================
# Control Sequences and Commands
# ============================================================================

# Wake-up sequence that interrupts measurement streaming
BREAK_SEQUENCE: Final[str] = "K1W%!Q"

CMD_MODE_CHANGE: Final[str] = "MC"
CMD_START: Final[str] = "START"
CMD_RESET_DEFAULTS: Final[str] = "SETDEFAULT,ALL"
CMD_DISABLE_LED: Final[str] = 'SETINST,LED="OFF"'
CMD_SAVE: Final[str] = "SAVE,ALL"
CMD_GET_ERROR: Final[str] = "GETERROR"
CMD_POWER_DOWN: Final[str] = "POWERDOWN"

CMD_SET_CLOCK_FMT: Final[str] = (
    "SETCLOCK,YEAR={year:d},MONTH={month:d},DAY={day:d},"
    "HOUR={hour:d},MINUTE={minute:d},SECOND={second:d}"
)
CMD_SET_DVL_FMT: Final[str] = "SETDVL,SR={sampling_rate:f},SA={salinity:f}"
CMD_SET_POWER_LEVEL_FMT: Final[str] = "SETBT,PL={power:f}"

# ============================================================================
# Valid Configuration Values
# ============================================================================

SALINITY_MIN: Final[float] = 0.0
SALINITY_MAX: Final[float] = 50.0
SALINITY_DEFAULT: Final[float] = 35.0

SAMPLING_RATE_MIN: Final[float] = 1.0
SAMPLING_RATE_MAX: Final[float] = 8.0
SAMPLING_RATE_DEFAULT: Final[float] = 5.0

# ============================================================================
# Buffering
# ============================================================================

# Capacity of the read-until scan buffer
SCAN_BUFFER_SIZE: Final[int] = 256

# Granularity of the readiness wait when the port has no selectable handle
READY_POLL_INTERVAL: Final[float] = 0.01

# ============================================================================
# Timing Constants (seconds)
# ============================================================================

# Acknowledgment wait for configuration commands
COMMAND_TIMEOUT: Final[float] = 2.0

# Acknowledgment wait for the mode-change command, shorter than COMMAND_TIMEOUT
MODE_CHANGE_TIMEOUT: Final[float] = 1.0

# Acknowledgment wait for each break attempt
BREAK_TIMEOUT: Final[float] = 1.0

# Wait for each login prompt
LOGIN_PROMPT_TIMEOUT: Final[float] = 1.0

# Wait for the command interface banner
LOGIN_BANNER_TIMEOUT: Final[float] = 2.0

# Pause after a successful break before sending MC
BREAK_SETTLE_DELAY: Final[float] = 1.0

# Pause after the login banner before the next command
LOGIN_SETTLE_DELAY: Final[float] = 1.0
