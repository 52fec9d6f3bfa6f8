#!/usr/bin/env python3
"""
Runbook: DVL setup sequence
Expected: login, configuration and START all succeed; device left measuring
"""

import logging

from dvl_lib import DvlController, PowerLevel

# ============================================================================
# CONFIGURATION - EDIT THIS
# ============================================================================
DVL_URL = "socket://192.168.0.2:9000"  # Change to your instrument
SAMPLING_RATE_HZ = 4.0
SALINITY_PSU = 35.0
POWER_LEVEL = PowerLevel.MAXIMUM

# ============================================================================
# SCRIPT - DO NOT EDIT BELOW
# ============================================================================

logging.basicConfig(level=logging.DEBUG, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

print("=" * 70)
print("Runbook: DVL setup sequence")
print("=" * 70)
print(f"URL: {DVL_URL}")
print(f"Sampling rate: {SAMPLING_RATE_HZ} Hz")
print(f"Salinity: {SALINITY_PSU} PSU")
print()

print("[1/3] Connecting...")
controller = DvlController.open(DVL_URL, sampling_rate=SAMPLING_RATE_HZ, salinity=SALINITY_PSU)
print(f"      Connected. State: {controller.state.value}")
print()

try:
    print("[2/3] Running setup...")
    result = controller.setup()
    if result:
        print(f"      ✓ Setup complete. State: {controller.state.value}")
    else:
        print(f"      ✗ Setup aborted at step: {result.failed_step.value}")
        if result.exchange is not None:
            print(f"        Failure: {result.exchange.failure.value}")
            print(f"        Expected: {result.exchange.expected!r}")
            print(f"        Received: {result.exchange.received!r}")
    print()

    if result:
        print(f"[3/3] Setting power level {POWER_LEVEL.value}...")
        power = controller.set_power_level(POWER_LEVEL)
        status = "✓" if power else "✗"
        print(f"      {status} Power level command, state now {controller.state.value}")

finally:
    controller.close()
    print()
    print("Disconnected.")
    print("=" * 70)
