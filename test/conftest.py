"""pytest configuration and fixtures for serial-term tests.

Provides:
- MockSerialPort: In-memory port with injectable reads and failures
- RecordingDispatcher: Collects emitted events, commands and timers so
  tests can drive a Session step by step without threads
- ScriptedOpener: Port opener that fails a given number of times
- socat PTY pair fixture for integration tests
- Markers for unit vs integration tests
"""

import re
import subprocess
import sys
import threading
import time
from collections import deque
from collections.abc import Callable, Generator
from typing import Any

import pytest
import serial

from common.config import SessionConfig
from session.session import Session


class MockSerialPort:
    """Mock serial port for unit testing.

    Data passed to inject() is returned by read(); data passed to write()
    is collected in `written`. Reads never block: an empty buffer returns
    b"" like a pyserial read timeout.
    """

    def __init__(self) -> None:
        self._rx = bytearray()
        self._open = True
        self._lock = threading.Lock()
        self.written = bytearray()
        self.close_count = 0
        self.read_error: Exception | None = None
        self.write_error: Exception | None = None

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def in_waiting(self) -> int:
        if not self._open:
            raise serial.PortNotOpenError()
        with self._lock:
            return len(self._rx)

    def read(self, size: int = 1, /) -> bytes:
        if not self._open:
            raise serial.PortNotOpenError()
        if self.read_error is not None:
            raise self.read_error
        with self._lock:
            data = bytes(self._rx[:size])
            del self._rx[:size]
            return data

    def write(self, data: bytes, /) -> int:
        if self.write_error is not None:
            raise self.write_error
        if not self._open:
            raise serial.PortNotOpenError()
        self.written.extend(data)
        return len(data)

    def close(self) -> None:
        self._open = False
        self.close_count += 1

    def inject(self, data: bytes) -> None:
        """Inject data into the buffer as if received from the device."""
        with self._lock:
            self._rx.extend(data)


class RecordingDispatcher:
    """Dispatcher that records instead of running anything."""

    def __init__(self) -> None:
        self.events: list[Any] = []
        self.commands: deque[Callable[[], Any]] = deque()
        self.scheduled: list[tuple[float, Any]] = []

    def emit(self, event: Any) -> None:
        self.events.append(event)

    def submit(self, command: Callable[[], Any]) -> None:
        self.commands.append(command)

    def schedule(self, delay_s: float, event: Any) -> None:
        self.scheduled.append((delay_s, event))

    def pending(self, name: str) -> int:
        """Number of queued commands with the given function name."""
        return sum(1 for c in self.commands if c.__name__ == name)

    def take(self, name: str) -> Callable[[], Any]:
        """Remove and return the oldest queued command with the given name."""
        for command in self.commands:
            if command.__name__ == name:
                self.commands.remove(command)
                return command
        raise AssertionError(f"No pending {name!r} command in {[c.__name__ for c in self.commands]}")

    def run(self, name: str) -> Any:
        """Run the oldest queued command with the given name, return its event."""
        return self.take(name)()

    def pop_timer(self) -> tuple[float, Any]:
        return self.scheduled.pop(0)

    def of_type(self, kind: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, kind)]


class ScriptedOpener:
    """Opener that raises SerialException `failures` times, then succeeds."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls = 0
        self.opened: list[MockSerialPort] = []

    def __call__(self, address: str, config: SessionConfig) -> MockSerialPort:
        self.calls += 1
        if self.calls <= self.failures:
            raise serial.SerialException(f"could not open port {address}: No such file or directory")
        port = MockSerialPort()
        self.opened.append(port)
        return port


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test (requires socat)")


@pytest.fixture
def port() -> MockSerialPort:
    return MockSerialPort()


@pytest.fixture
def make_port() -> type[MockSerialPort]:
    return MockSerialPort


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def make_opener() -> type[ScriptedOpener]:
    return ScriptedOpener


@pytest.fixture
def opener() -> ScriptedOpener:
    return ScriptedOpener()


@pytest.fixture
def session(port: MockSerialPort, dispatcher: RecordingDispatcher, opener: ScriptedOpener) -> Session:
    """A started session on `port` whose reconnects go through `opener`."""
    s = Session(port, "/dev/ttyTEST0", dispatcher, config=SessionConfig(), opener=opener)
    s.start()
    return s


@pytest.fixture
def pty_pair() -> Generator[tuple[str, str, subprocess.Popen[str]], None, None]:
    """Create a connected PTY pair using socat.

    Yields (pty1, pty2, socat_process).

    The PTYs are connected: data written to pty1 appears on pty2 and vice versa.
    This enables testing serial communication without real hardware.

    Requires: socat installed and Linux platform.
    """
    if sys.platform != "linux":
        pytest.skip("socat PTY fixture requires Linux")

    try:
        subprocess.run(["which", "socat"], check=True, capture_output=True)
    except (subprocess.CalledProcessError, FileNotFoundError):
        pytest.skip("socat not installed")

    socat = subprocess.Popen(
        ["socat", "-d", "-d", "pty,raw,echo=0", "pty,raw,echo=0"],
        stderr=subprocess.PIPE,
        text=True,
    )

    # Parse PTY names from socat stderr output
    ptys: list[str] = []
    try:
        for _ in range(20):  # Give socat time to start
            if socat.poll() is not None:
                raise RuntimeError(f"socat exited early with code {socat.returncode}")

            assert socat.stderr is not None
            line = socat.stderr.readline()
            if "PTY is" in line:
                match = re.search(r"/dev/pts/\d+", line)
                if match:
                    ptys.append(match.group())
            if len(ptys) == 2:
                break
            time.sleep(0.05)
        else:
            raise RuntimeError(f"Failed to get PTY pair from socat, got: {ptys}")

        yield ptys[0], ptys[1], socat

    finally:
        if socat.poll() is None:
            socat.terminate()
            socat.wait(timeout=5)
        if socat.stderr:
            socat.stderr.close()
