"""Common modules for serial-term.

This package contains code shared by the session and the message log:
- protocol: ConnectionState enum, SerialPort Protocol, constants
- errors: Transport error taxonomy
- events: Events exchanged between session, loop and orchestrator
- config: SessionConfig and LogConfig
- linereader: Bytes to text line decoding
- device: Serial device setup and port listing
- mockport: Simulated serial port
"""

from common.config import LogConfig, SessionConfig
from common.errors import (
    CapacityError,
    LineTooLongError,
    TransportClosed,
    TransportError,
    TransportIOError,
)
from common.events import (
    ConnectionStatus,
    ErrorMessage,
    InfoMessage,
    RxLine,
    TxLine,
)
from common.protocol import (
    DEFAULT_BAUDRATE,
    DEFAULT_LINE_ENDING,
    DEFAULT_LOG_LIMIT,
    DEFAULT_RETRY_INTERVAL_S,
    ConnectionState,
    SerialPort,
)

__all__ = [
    # Protocol
    "ConnectionState",
    "SerialPort",
    "DEFAULT_BAUDRATE",
    "DEFAULT_LINE_ENDING",
    "DEFAULT_LOG_LIMIT",
    "DEFAULT_RETRY_INTERVAL_S",
    # Config
    "LogConfig",
    "SessionConfig",
    # Events
    "ConnectionStatus",
    "ErrorMessage",
    "InfoMessage",
    "RxLine",
    "TxLine",
    # Exceptions
    "CapacityError",
    "LineTooLongError",
    "TransportClosed",
    "TransportError",
    "TransportIOError",
]
