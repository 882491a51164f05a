"""Protocol definitions for serial-term.

Contains:
- ConnectionState enum for the session state machine
- SerialPort Protocol for type checking
- Line framing and timing constants
- Logging configuration
"""

import logging
import os
from enum import Enum
from typing import Protocol

# TRACE logging level (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Skip per-line TRACE logging unless explicitly enabled (configurable via envvar)
LOG_TRAFFIC = os.environ.get("SERIALTERM_LOG_TRAFFIC", "") not in ("", "0")


class ConnectionState(Enum):
    """Connection state of a serial session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SerialPort(Protocol):
    """Protocol for serial port operations needed by a session."""

    def write(self, data: bytes, /) -> int | None: ...
    def read(self, size: int = ..., /) -> bytes: ...
    def close(self) -> None: ...
    @property
    def in_waiting(self) -> int: ...
    @property
    def is_open(self) -> bool: ...


# Line framing
LINE_TERMINATOR = b"\n"
DEFAULT_LINE_ENDING = "\r\n"  # Appended to every transmitted line
MAX_LINE_BYTES = 64 * 1024  # Longest line accepted before the buffer is dropped
ENCODING = "utf-8"

# Default timing constants
DEFAULT_BAUDRATE = 115200
DEFAULT_READ_TIMEOUT_S = 0.1  # Poll interval of a blocked read
DEFAULT_WRITE_TIMEOUT_S = 1.0
DEFAULT_RETRY_INTERVAL_S = 1.0  # Delay between reconnect attempts

# Message log defaults
DEFAULT_LOG_LIMIT = 10000
