"""Command line builders and byte sanitizing for trace output."""

from datetime import datetime

from dvl_lib import protocol
from dvl_lib.models import PowerLevel
from dvl_lib.validators import power_level_to_decibels


def make_set_clock_cmd(now: datetime) -> str:
    """Build the clock synchronization command from calendar fields.

    Args:
        now: Wall-clock time to write to the device (UTC expected)

    Returns:
        e.g. "SETCLOCK,YEAR=2024,MONTH=3,DAY=9,HOUR=7,MINUTE=5,SECOND=1"
    """
    return protocol.CMD_SET_CLOCK_FMT.format(
        year=now.year,
        month=now.month,
        day=now.day,
        hour=now.hour,
        minute=now.minute,
        second=now.second,
    )


def make_set_dvl_cmd(sampling_rate: float, salinity: float) -> str:
    """Build the device parameter command: SETDVL,SR=<rate>,SA=<salinity>"""
    return protocol.CMD_SET_DVL_FMT.format(
        sampling_rate=sampling_rate, salinity=salinity
    )


def make_set_power_level_cmd(level: PowerLevel) -> str:
    """Build the bottom-track power command, e.g. "SETBT,PL=-10.000000"."""
    return protocol.CMD_SET_POWER_LEVEL_FMT.format(
        power=power_level_to_decibels(level)
    )


def sanitize(data: bytes) -> str:
    """Render bytes as printable ASCII with escapes for control characters.

    Never raises: undecodable bytes become \\xNN escapes.

    Args:
        data: Raw bytes (sent or received)

    Returns:
        String safe for a single log line, e.g. "OK\\r\\n"
    """
    return repr(bytes(data))[2:-1]
