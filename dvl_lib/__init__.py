"""
dvl_lib - Command interface client for Nortek DVL instruments.

Drives login, command/measurement mode switching and the configuration
sequence over a TCP or serial link.
"""

from dvl_lib.controller import DvlController, DvlEngine
from dvl_lib.errors import DvlError, NotConnected, SerialIOError
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
from dvl_lib.transport import Transport

__version__ = "0.1.0"

__all__ = [
    "DvlController",
    "DvlEngine",
    "Transport",
    "ExchangeResult",
    "FailureKind",
    "PowerLevel",
    "ProtocolTiming",
    "SessionMode",
    "SessionState",
    "SetupResult",
    "SetupStep",
    "DvlError",
    "NotConnected",
    "SerialIOError",
]
