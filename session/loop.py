"""Event loop for serial-term.

A single consumer queue (the mailbox) receives every event. Blocking work
is submitted as a command: it runs on its own daemon thread and its return
value is posted back to the mailbox. The handler is only ever called from
the thread that runs the loop, so session and log state need no locking.
"""

import logging
import queue
import threading
from collections.abc import Callable
from typing import Protocol

from common.events import Command, ErrorMessage, Event

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    """What a session needs from the loop it runs on."""

    def emit(self, event: Event) -> None: ...
    def submit(self, command: Command) -> None: ...
    def schedule(self, delay_s: float, event: Event) -> None: ...


class _Stop:
    """Sentinel that ends run()."""


class EventLoop:
    """Mailbox plus worker threads."""

    def __init__(self, handler: Callable[[Event], None] | None = None) -> None:
        self._queue: queue.Queue[Event] = queue.Queue()
        self._handler = handler
        self._timers: set[threading.Timer] = set()
        self._lock = threading.Lock()

    def set_handler(self, handler: Callable[[Event], None]) -> None:
        self._handler = handler

    def emit(self, event: Event) -> None:
        """Post an event to the mailbox (thread-safe)."""
        self._queue.put(event)

    def submit(self, command: Command) -> None:
        """Run command on a worker thread and post its result."""
        thread = threading.Thread(target=self._run_command, args=(command,), daemon=True)
        thread.start()

    def _run_command(self, command: Command) -> None:
        try:
            result = command()
        except Exception as e:
            logger.exception(f"Command {getattr(command, '__name__', command)!r} failed")
            result = ErrorMessage(e)
        if result is not None:
            self._queue.put(result)

    def schedule(self, delay_s: float, event: Event) -> None:
        """Post event after delay_s seconds."""
        timer: threading.Timer

        def fire() -> None:
            with self._lock:
                self._timers.discard(timer)
            self._queue.put(event)

        timer = threading.Timer(delay_s, fire)
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()

    def step(self, timeout: float | None = None) -> Event | None:
        """Dispatch one event. Returns it, or None on timeout or stop."""
        try:
            event = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if isinstance(event, _Stop):
            return None
        if self._handler is not None:
            self._handler(event)
        return event

    def run(self) -> None:
        """Dispatch events until stop() is called."""
        try:
            while True:
                event = self._queue.get()
                if isinstance(event, _Stop):
                    break
                if self._handler is not None:
                    self._handler(event)
        finally:
            self._cancel_timers()

    def stop(self) -> None:
        """Make run() return after the events already queued."""
        self._queue.put(_Stop())

    def _cancel_timers(self) -> None:
        with self._lock:
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()
