"""Event vocabulary for serial-term.

Public events (emitted by a session for the orchestrator):
- ConnectionStatus: Connection state changed
- RxLine: A line was received from the port
- TxLine: A line was written to the port
- InfoMessage: Informational text for the message log
- ErrorMessage: An error for the message log

Internal events (results of asynchronous commands, consumed by the session):
- LineRead / ReadFailed: Outcome of a single-shot read
- ReconnectResult: Outcome of one reconnect attempt
- RetryDue: The inter-attempt delay elapsed
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from common.protocol import ConnectionState, SerialPort


@dataclass(frozen=True)
class ConnectionStatus:
    """Connection state changed."""

    state: ConnectionState


@dataclass(frozen=True)
class RxLine:
    """A line was received from the port."""

    text: str


@dataclass(frozen=True)
class TxLine:
    """A line was written to the port."""

    text: str


@dataclass(frozen=True)
class InfoMessage:
    """Informational text to show in the message log."""

    text: str


@dataclass(frozen=True)
class ErrorMessage:
    """An error to show in the message log."""

    error: Exception

    @property
    def text(self) -> str:
        return str(self.error) or type(self.error).__name__


@dataclass(frozen=True)
class LineRead:
    """A read command returned a line."""

    line: str
    generation: int


@dataclass(frozen=True)
class ReadFailed:
    """A read command returned an error.

    token is the cancellation token that was current when the read was
    issued; the session consults it only after the read has returned.
    """

    error: Exception
    generation: int
    token: threading.Event


@dataclass(frozen=True)
class ReconnectResult:
    """One reconnect attempt finished (port is None on failure)."""

    epoch: int
    port: SerialPort | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.port is not None


@dataclass(frozen=True)
class RetryDue:
    """The delay before the next reconnect attempt elapsed."""

    epoch: int


Event = Any

# A command runs on a worker and returns at most one event for the loop.
Command = Callable[[], Event]
