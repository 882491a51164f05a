"""Tests for the event loop and the simulated port, with real threads."""

import threading
import time
from collections.abc import Callable
from typing import Any

import pytest
import serial

from common.config import SessionConfig
from common.events import ConnectionStatus, ErrorMessage, InfoMessage, RxLine, TxLine
from common.mockport import MockPort, open_mock
from common.protocol import ConnectionState
from session.loop import EventLoop
from session.session import Session

TIMEOUT_S = 5.0


def _pump_until(loop: EventLoop, done: Callable[[], bool], timeout: float = TIMEOUT_S) -> None:
    """Dispatch events until done() holds or the timeout expires."""
    deadline = time.monotonic() + timeout
    while not done():
        if time.monotonic() > deadline:
            raise AssertionError("Timed out waiting for event")
        loop.step(timeout=0.05)


def _pump_for(loop: EventLoop, duration: float) -> None:
    deadline = time.monotonic() + duration
    while time.monotonic() < deadline:
        loop.step(timeout=0.02)


@pytest.mark.unit
class TestEventLoop:
    """Tests for EventLoop."""

    def test_emit_then_step(self) -> None:
        seen: list[Any] = []
        loop = EventLoop(seen.append)
        loop.emit("hello")
        assert loop.step(timeout=1) == "hello"
        assert seen == ["hello"]

    def test_step_timeout(self) -> None:
        loop = EventLoop()
        assert loop.step(timeout=0.01) is None

    def test_submit_posts_result(self) -> None:
        seen: list[Any] = []
        loop = EventLoop(seen.append)
        loop.submit(lambda: "done")
        _pump_until(loop, lambda: bool(seen))
        assert seen == ["done"]

    def test_submit_none_posts_nothing(self) -> None:
        seen: list[Any] = []
        ran = threading.Event()

        def command() -> None:
            ran.set()

        loop = EventLoop(seen.append)
        loop.submit(command)
        assert ran.wait(TIMEOUT_S)
        _pump_for(loop, 0.1)
        assert seen == []

    def test_failing_command_posts_error(self) -> None:
        seen: list[Any] = []
        loop = EventLoop(seen.append)

        def broken() -> None:
            raise RuntimeError("boom")

        loop.submit(broken)
        _pump_until(loop, lambda: bool(seen))
        [event] = seen
        assert isinstance(event, ErrorMessage)
        assert event.text == "boom"

    def test_schedule(self) -> None:
        seen: list[Any] = []
        loop = EventLoop(seen.append)
        start = time.monotonic()
        loop.schedule(0.05, "later")
        _pump_until(loop, lambda: bool(seen))
        assert seen == ["later"]
        assert time.monotonic() - start >= 0.05

    def test_run_until_stop(self) -> None:
        seen: list[Any] = []
        loop = EventLoop(seen.append)
        loop.emit(1)
        loop.emit(2)
        loop.stop()
        loop.emit(3)

        loop.run()

        assert seen == [1, 2]

    def test_stop_cancels_timers(self) -> None:
        seen: list[Any] = []
        loop = EventLoop(seen.append)
        loop.schedule(0.2, "never")
        loop.stop()
        loop.run()
        time.sleep(0.3)
        assert loop.step(timeout=0.01) is None
        assert seen == []

    def test_interrupt_cancels_timers(self) -> None:
        def handler(event: Any) -> None:
            if event == "interrupt":
                raise KeyboardInterrupt

        loop = EventLoop(handler)
        loop.schedule(0.2, "retry")
        loop.emit("interrupt")

        with pytest.raises(KeyboardInterrupt):
            loop.run()

        time.sleep(0.3)
        assert loop.step(timeout=0.01) is None

    def test_handler_runs_on_loop_thread(self) -> None:
        threads: list[threading.Thread] = []
        loop = EventLoop(lambda _: threads.append(threading.current_thread()))
        loop.submit(lambda: "from worker")
        _pump_until(loop, lambda: bool(threads))
        assert threads == [threading.current_thread()]


@pytest.mark.unit
class TestMockPort:
    """Tests for the simulated port."""

    def test_periodic_lines(self) -> None:
        port = MockPort(interval_s=0.01, timeout=0.5)
        try:
            data = b""
            deadline = time.monotonic() + TIMEOUT_S
            while data.count(b"\n") < 2 and time.monotonic() < deadline:
                data += port.read(64)
            lines = data.decode().splitlines()
            assert lines[0] == "Hello from mock port! Count: 0"
            assert lines[1] == "Hello from mock port! Count: 1"
        finally:
            port.close()

    def test_read_times_out_empty(self) -> None:
        port = MockPort(interval_s=None, timeout=0.01)
        assert port.read(10) == b""
        port.close()

    def test_inject_and_write(self) -> None:
        port = MockPort(interval_s=None)
        port.inject(b"abc")
        assert port.in_waiting == 3
        assert port.read(2) == b"ab"
        assert port.write(b"AT\r\n") == 4
        assert bytes(port.written) == b"AT\r\n"
        port.close()

    def test_closed_port_raises(self) -> None:
        port = MockPort(interval_s=None)
        port.close()
        assert not port.is_open
        with pytest.raises(serial.PortNotOpenError):
            port.read(1)
        with pytest.raises(serial.PortNotOpenError):
            port.write(b"x")

    def test_close_wakes_blocked_read(self) -> None:
        port = MockPort(interval_s=None, timeout=10)
        errors: list[Exception] = []

        def reader() -> None:
            try:
                port.read(1)
            except serial.SerialException as e:
                errors.append(e)

        thread = threading.Thread(target=reader)
        thread.start()
        time.sleep(0.05)
        port.close()
        thread.join(TIMEOUT_S)
        assert not thread.is_alive()
        assert len(errors) == 1

    def test_open_mock_uses_read_timeout(self) -> None:
        port = open_mock("mock0", SessionConfig(read_timeout_s=0.25))
        assert port.timeout == 0.25
        assert port.name == "mock0"
        port.close()


@pytest.mark.unit
class TestSessionOnLoop:
    """A session driven by a real loop against the simulated port."""

    @pytest.fixture
    def running(self):
        config = SessionConfig(read_timeout_s=0.02, retry_interval_s=0.02)
        port = MockPort(interval_s=0.01, timeout=config.read_timeout_s)
        loop = EventLoop()
        session = Session(port, "mock", loop, config=config, opener=open_mock)
        events: list[Any] = []

        def handler(event: Any) -> None:
            session.handle(event)
            events.append(event)

        loop.set_handler(handler)
        session.start()
        yield loop, session, port, events
        session.close()
        loop.stop()

    def test_receives_lines(self, running) -> None:
        loop, _, _, events = running
        _pump_until(loop, lambda: sum(isinstance(e, RxLine) for e in events) >= 3)
        rx = [e.text for e in events if isinstance(e, RxLine)]
        assert rx[:3] == [f"Hello from mock port! Count: {n}" for n in range(3)]

    def test_send(self, running) -> None:
        loop, session, port, events = running
        session.send("AT")
        _pump_until(loop, lambda: TxLine("AT") in events)
        assert bytes(port.written) == b"AT\r\n"

    def test_disconnect_stops_lines(self, running) -> None:
        loop, session, port, events = running
        _pump_until(loop, lambda: any(isinstance(e, RxLine) for e in events))

        session.request_disconnect()
        _pump_for(loop, 0.1)
        events.clear()
        _pump_for(loop, 0.1)

        assert session.state == ConnectionState.DISCONNECTED
        assert not port.is_open
        assert not any(isinstance(e, RxLine) for e in events)

    def test_reconnect_after_port_loss(self, running) -> None:
        loop, session, port, events = running
        _pump_until(loop, lambda: any(isinstance(e, RxLine) for e in events))

        port.close()  # Device unplugged
        _pump_until(loop, lambda: InfoMessage("Port reconnected") in events)

        statuses = [e.state for e in events if isinstance(e, ConnectionStatus)]
        assert statuses == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
        assert InfoMessage("Port reconnected") in events
        assert session.port is not port

        events.clear()
        _pump_until(loop, lambda: any(isinstance(e, RxLine) for e in events))

    def test_manual_reconnect(self, running) -> None:
        loop, session, _, events = running
        session.request_disconnect()
        session.request_reconnect()
        _pump_until(loop, lambda: ConnectionStatus(ConnectionState.CONNECTED) in events)
        assert session.state == ConnectionState.CONNECTED
