"""Tests for the bounded read-until scanner."""

import logging

import pytest

from dvl_lib import protocol
from dvl_lib.commands import sanitize
from dvl_lib.models import FailureKind
from dvl_lib.scanner import ReadUntilScanner, ScanStatus
from dvl_lib.transport import Transport
from fakes.fake_dvl import FakeDvl


def make_scanner(capacity: int = 256):
    fake = FakeDvl(login_prompts=False)
    scanner = ReadUntilScanner(Transport(fake), capacity=capacity)
    return fake, scanner


def test_feed_incremental_match() -> None:
    """Test matching when the terminator arrives split across chunks."""
    _, scanner = make_scanner()
    scanner.reset(protocol.ACK)

    assert scanner.feed(b"SETDVL") == ScanStatus.PENDING
    assert scanner.feed(b"\r\nO") == ScanStatus.PENDING
    assert scanner.feed(b"K\r") == ScanStatus.PENDING
    assert scanner.feed(b"\n") == ScanStatus.MATCHED
    assert scanner.received == b"SETDVL\r\nOK\r\n"


def test_feed_exactly_at_capacity_matches() -> None:
    """Test that a reply filling the buffer exactly still matches."""
    _, scanner = make_scanner(capacity=4)
    scanner.reset(protocol.ACK)

    assert scanner.feed(b"OK\r\n") == ScanStatus.MATCHED


def test_feed_past_capacity_overflows_without_writing() -> None:
    """Test that a chunk that does not fit is rejected, not truncated."""
    _, scanner = make_scanner(capacity=8)
    scanner.reset(protocol.ACK)

    assert scanner.feed(b"123456") == ScanStatus.PENDING
    assert scanner.feed(b"OK\r\n") == ScanStatus.OVERFLOW
    assert scanner.received == b"123456"


def test_reset_rejects_empty_sequence() -> None:
    """Test that an empty terminator is refused."""
    _, scanner = make_scanner()

    with pytest.raises(ValueError):
        scanner.reset(b"")


def test_invalid_capacity() -> None:
    """Test that capacity must be positive."""
    with pytest.raises(ValueError):
        ReadUntilScanner(Transport(FakeDvl(login_prompts=False)), capacity=0)


def test_read_until_success() -> None:
    """Test read_until returns as soon as the suffix matches."""
    fake, scanner = make_scanner()
    fake.inject(b"OK\r\n")

    result = scanner.read_until(protocol.ACK, timeout=1.0)

    assert result
    assert result.received == b"OK\r\n"
    assert result.failure is None


def test_read_until_timeout_with_no_data() -> None:
    """Test silence yields TRANSPORT_TIMEOUT with an empty partial buffer."""
    _, scanner = make_scanner()

    result = scanner.read_until(protocol.ACK, timeout=0.05)

    assert not result
    assert result.failure == FailureKind.TRANSPORT_TIMEOUT
    assert result.received == b""
    assert result.expected == protocol.ACK


def test_read_until_partial_reply() -> None:
    """Test a reply that never completes is reported with its partial bytes."""
    fake, scanner = make_scanner()
    fake.inject(b"ERROR\r\n")

    result = scanner.read_until(protocol.ACK, timeout=0.05)

    assert not result
    assert result.failure == FailureKind.UNEXPECTED_REPLY
    assert result.received == b"ERROR\r\n"


def test_read_until_overflow() -> None:
    """Test more than capacity bytes without a match fails with BUFFER_OVERFLOW."""
    fake, scanner = make_scanner(capacity=8)
    fake.inject(b"0123456789OK\r\n")

    result = scanner.read_until(protocol.ACK, timeout=0.5)

    assert not result
    assert result.failure == FailureKind.BUFFER_OVERFLOW
    assert len(result.received) == 8
    assert result.received == b"01234567"


def test_trailing_bytes_after_terminator_are_kept() -> None:
    """Test bytes after the terminator in the same read stay in the buffer."""
    fake, scanner = make_scanner()
    fake.inject(b"OK\r\n$PNOR")

    result = scanner.read_until(protocol.ACK, timeout=0.05)

    assert not result
    assert result.received == b"OK\r\n$PNOR"


def test_no_carry_over_between_scans() -> None:
    """Test each read_until starts from an empty buffer."""
    fake, scanner = make_scanner()
    fake.inject(b"garbage")
    assert not scanner.read_until(protocol.ACK, timeout=0.05)

    fake.inject(b"OK\r\n")
    result = scanner.read_until(protocol.ACK, timeout=0.5)

    assert result
    assert result.received == b"OK\r\n"


def test_trace_logs_expected_and_received(caplog) -> None:
    """Test failed scans log sanitized received and expected bytes when tracing."""
    fake, scanner = make_scanner()
    fake.inject(b"Err\x00\r")

    with caplog.at_level(logging.DEBUG, logger="dvl_lib.scanner"):
        scanner.read_until(protocol.ACK, timeout=0.05, trace=True)

    assert "recv: 'Err\\x00\\r' (does not end with: 'OK\\r\\n')" in caplog.text


def test_sanitize_escapes_control_bytes() -> None:
    """Test sanitize renders control characters as escapes."""
    assert sanitize(b"Command Interface\r\r\n") == "Command Interface\\r\\r\\n"
    assert sanitize(b"\x1b\xff") == "\\x1b\\xff"
