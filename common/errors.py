"""Error taxonomy for serial-term.

Contains:
- TransportError: Base class for transport failures
- TransportClosed: Transport went away (recoverable, triggers reconnect)
- TransportIOError: Any other read/write fault (surfaced, no auto-retry)
- LineTooLongError: Incoming line exceeded the line buffer
- CapacityError: Message log constructed with a non-positive capacity
"""

import errno

import serial


class TransportError(Exception):
    """Raised when the serial transport fails."""

    pass


class TransportClosed(TransportError):
    """Raised when the transport was closed or the device disappeared."""

    pass


class TransportIOError(TransportError):
    """Raised on read/write faults that do not mean the device is gone."""

    pass


class LineTooLongError(TransportIOError):
    """Raised when a received line does not fit into the line buffer."""

    pass


class CapacityError(ValueError):
    """Raised when a message log is created with capacity <= 0."""

    pass


# errno values that mean the device node is gone rather than misbehaving
_GONE_ERRNOS = {errno.EIO, errno.ENXIO, errno.ENODEV, errno.EBADF}


def classify_read_error(exc: BaseException) -> TransportError:
    """Map an exception raised by a port read onto the error taxonomy."""
    if isinstance(exc, TransportError):
        return exc
    if isinstance(exc, serial.SerialException):
        # pyserial reports unplugged devices and closed ports this way
        return TransportClosed(str(exc) or type(exc).__name__)
    if isinstance(exc, OSError) and exc.errno in _GONE_ERRNOS:
        return TransportClosed(str(exc))
    return TransportIOError(str(exc) or type(exc).__name__)


def classify_write_error(exc: BaseException) -> TransportError:
    """Map an exception raised by a port write onto the error taxonomy."""
    if isinstance(exc, TransportError):
        return exc
    if isinstance(exc, serial.SerialTimeoutException):
        return TransportIOError(f"Write timeout: {exc}")
    if isinstance(exc, serial.PortNotOpenError):
        return TransportClosed(str(exc))
    return TransportIOError(str(exc) or type(exc).__name__)
