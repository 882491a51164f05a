"""Configuration dataclasses for serial-term.

Contains:
- SessionConfig: Serial port settings and reconnect pacing
- LogConfig: Message log settings
- load_session_config / load_log_config: Defaults with envvar overrides

Environment overrides:
  SERIALTERM_BAUDRATE        baud rate
  SERIALTERM_RETRY_INTERVAL  seconds between reconnect attempts
  SERIALTERM_LOG_LIMIT       message log capacity
"""

import os
from dataclasses import dataclass

from common.protocol import (
    DEFAULT_BAUDRATE,
    DEFAULT_LINE_ENDING,
    DEFAULT_LOG_LIMIT,
    DEFAULT_READ_TIMEOUT_S,
    DEFAULT_RETRY_INTERVAL_S,
    DEFAULT_WRITE_TIMEOUT_S,
)


@dataclass(frozen=True)
class SessionConfig:
    """Settings used to open (and reopen) the serial port."""

    baudrate: int = DEFAULT_BAUDRATE
    rtscts: bool = False
    read_timeout_s: float = DEFAULT_READ_TIMEOUT_S
    write_timeout_s: float = DEFAULT_WRITE_TIMEOUT_S
    line_ending: str = DEFAULT_LINE_ENDING
    retry_interval_s: float = DEFAULT_RETRY_INTERVAL_S

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.baudrate <= 0:
            raise ValueError(f"baudrate must be positive, got {self.baudrate}")
        if self.retry_interval_s < 0:
            raise ValueError(f"retry_interval_s must be >= 0, got {self.retry_interval_s}")


@dataclass(frozen=True)
class LogConfig:
    """Settings of the message log."""

    capacity: int = DEFAULT_LOG_LIMIT
    show_timestamp: bool = False
    show_escapes: bool = False


def load_session_config(**overrides: object) -> SessionConfig:
    """Build a SessionConfig from envvars, then explicit overrides."""
    values: dict[str, object] = {
        "baudrate": int(os.environ.get("SERIALTERM_BAUDRATE", str(DEFAULT_BAUDRATE))),
        "retry_interval_s": float(
            os.environ.get("SERIALTERM_RETRY_INTERVAL", str(DEFAULT_RETRY_INTERVAL_S))
        ),
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SessionConfig(**values)  # type: ignore[arg-type]


def load_log_config(**overrides: object) -> LogConfig:
    """Build a LogConfig from envvars, then explicit overrides."""
    values: dict[str, object] = {
        "capacity": int(os.environ.get("SERIALTERM_LOG_LIMIT", str(DEFAULT_LOG_LIMIT))),
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return LogConfig(**values)  # type: ignore[arg-type]
