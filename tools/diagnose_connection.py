"""Diagnose what happens during a DVL login and wake-up attempt."""

import argparse
import time

import serial

BREAK = b"K1W%!Q\r\n"
CREDENTIAL = b"nortek\r\n"


def read_for(ser, seconds):
    """Collect everything received within the given window."""
    received = bytearray()
    start = time.time()
    while time.time() - start < seconds:
        waiting = ser.in_waiting
        if waiting:
            received += ser.read(waiting)
        else:
            time.sleep(0.05)
    return bytes(received)


def show(label, data):
    print(f"RX ({label}): {data!r}")


def diagnose_connection(url="socket://192.168.0.2:9000"):
    """Show exactly what the device sends during login, break and MC."""

    print(f"\n=== Opening {url} ===")
    ser = serial.serial_for_url(url, timeout=0)
    print(f"Port opened: {ser.is_open}")

    print("\n=== Waiting 1 second for username prompt ===")
    data = read_for(ser, 1.0)
    show("initial", data)
    if b"Username:" not in data:
        print("*** NO USERNAME PROMPT - device may already be logged in or busy ***")

    for label in ("username", "password"):
        print(f"\n=== Sending credential ({label}) ===")
        ser.write(CREDENTIAL)
        ser.flush()
        show(label, read_for(ser, 1.0))

    print("\n=== Waiting 2 seconds for command interface banner ===")
    data = read_for(ser, 2.0)
    show("banner", data)
    if b"Command Interface" not in data:
        print("*** BANNER NOT FOUND - LOGIN DID NOT COMPLETE ***")

    print("\n=== Sending break ===")
    ser.write(BREAK)
    ser.flush()
    data = read_for(ser, 2.0)
    show("break", data)
    if not data.endswith(b"OK\r\n"):
        print("*** BREAK NOT ACKNOWLEDGED ***")

    time.sleep(1.0)
    print("\n=== Sending MC ===")
    ser.write(b"MC\r\n")
    ser.flush()
    data = read_for(ser, 1.0)
    show("MC", data)
    if data.endswith(b"OK\r\n"):
        print("\n*** DEVICE IN COMMAND MODE ***")
    else:
        print("\n*** MODE CHANGE NOT ACKNOWLEDGED ***")
        print("\nPossible reasons:")
        print("1. Break arrived while the device was still booting")
        print("2. Another client holds the command interface")

    ser.close()
    print("\nPort closed")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Probe DVL login and mode change")
    parser.add_argument("url", nargs="?", default="socket://192.168.0.2:9000",
                        help="pyserial URL (default: socket://192.168.0.2:9000)")
    args = parser.parse_args()
    diagnose_connection(args.url)
