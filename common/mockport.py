"""Simulated serial port for serial-term.

MockPort satisfies the SerialPort surface without hardware: a background
thread synthesizes one line per interval, writes are logged, and close()
makes further reads fail like an unplugged device.
"""

import logging
import threading

import serial

from common.config import SessionConfig

logger = logging.getLogger(__name__)

DEFAULT_MOCK_INTERVAL_S = 0.1


class MockPort:
    """In-memory serial port that periodically "receives" a line."""

    def __init__(
        self,
        interval_s: float | None = DEFAULT_MOCK_INTERVAL_S,
        timeout: float = 0.1,
        name: str = "mock",
    ) -> None:
        self.name = name
        self.timeout = timeout
        self.written = bytearray()
        self._rx = bytearray()
        self._cond = threading.Condition()
        self._closed = threading.Event()
        self._count = 0
        self._ticker: threading.Thread | None = None
        if interval_s is not None:
            self._ticker = threading.Thread(
                target=self._tick_loop, args=(interval_s,), daemon=True
            )
            self._ticker.start()

    def _tick_loop(self, interval_s: float) -> None:
        while not self._closed.wait(interval_s):
            self.inject(f"Hello from mock port! Count: {self._count}\n".encode())
            self._count += 1

    def inject(self, data: bytes) -> None:
        """Make data available to read() as if received from the device."""
        with self._cond:
            self._rx.extend(data)
            self._cond.notify_all()

    @property
    def is_open(self) -> bool:
        return not self._closed.is_set()

    @property
    def in_waiting(self) -> int:
        if not self.is_open:
            raise serial.PortNotOpenError()
        with self._cond:
            return len(self._rx)

    def read(self, size: int = 1, /) -> bytes:
        """Return up to size bytes, waiting at most timeout for the first one."""
        with self._cond:
            if not self._rx:
                self._cond.wait_for(lambda: self._rx or self._closed.is_set(), self.timeout)
            if self._closed.is_set():
                raise serial.PortNotOpenError()
            data = bytes(self._rx[:size])
            del self._rx[:size]
            return data

    def write(self, data: bytes, /) -> int:
        if not self.is_open:
            raise serial.PortNotOpenError()
        logger.debug(f"MOCK PORT WRITE: {data!r}")
        self.written.extend(data)
        return len(data)

    def close(self) -> None:
        if self._closed.is_set():
            return
        logger.debug("MOCK PORT: closing")
        self._closed.set()
        with self._cond:
            self._cond.notify_all()


def open_mock(address: str, config: SessionConfig) -> MockPort:
    """Opener with the same signature as open_serial, for running without hardware."""
    return MockPort(timeout=config.read_timeout_s, name=address)
