"""Pure range checks and value mappings for DVL parameters."""

from typing import Dict, Final

from dvl_lib import protocol
from dvl_lib.models import PowerLevel

# Transmit power in dB for each power level category
POWER_LEVEL_DB: Final[Dict[PowerLevel, float]] = {
    PowerLevel.MINIMUM: -20.0,
    PowerLevel.MEDIUM: -10.0,
    PowerLevel.MAXIMUM: 0.0,
}


def salinity_in_range(value: float) -> bool:
    """Check salinity against the accepted 0.0-50.0 range (inclusive)."""
    return protocol.SALINITY_MIN <= value <= protocol.SALINITY_MAX


def sampling_rate_in_range(value: float) -> bool:
    """Check sampling rate against the accepted 1.0-8.0 range (inclusive)."""
    return protocol.SAMPLING_RATE_MIN <= value <= protocol.SAMPLING_RATE_MAX


def power_level_to_decibels(level: PowerLevel) -> float:
    """Map a power level category to its transmit power in dB.

    Args:
        level: PowerLevel member

    Returns:
        -20.0, -10.0 or 0.0 for MINIMUM, MEDIUM and MAXIMUM
    """
    return POWER_LEVEL_DB[level]
