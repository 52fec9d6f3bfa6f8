"""Custom exceptions for the DVL control library.

Protocol-level failures (timeouts, wrong replies, overflows) are returned as
``ExchangeResult`` values, not raised. Exceptions are reserved for the
transport itself and for callers misusing the service layer.
"""


class DvlError(Exception):
    """Base exception for all DVL library errors."""

    pass


class SerialIOError(DvlError):
    """Raised when the link fails (port closed, open failure, write/read error)."""

    pass


class NotConnected(DvlError):
    """Raised when an operation needs a controller but none is attached."""

    pass
