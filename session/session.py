"""Serial session for serial-term.

Owns the open port and its LineReader and drives the connection state
machine:

  DISCONNECTED --request_reconnect-------> CONNECTING
  CONNECTING   --attempt succeeded-------> CONNECTED
  CONNECTING   --attempt failed----------> CONNECTING (after retry delay)
  CONNECTED    --port lost---------------> CONNECTING
  CONNECTED    --request_disconnect------> DISCONNECTED
  CONNECTING   --request_disconnect------> DISCONNECTED

All blocking work (reading a line, opening the port, the retry delay) is
handed to the dispatcher; results come back through handle().
"""

import logging
import threading
from collections.abc import Callable

import serial

from common.config import SessionConfig
from common.device import open_serial
from common.errors import TransportClosed, TransportError, classify_write_error
from common.events import (
    ConnectionStatus,
    ErrorMessage,
    Event,
    InfoMessage,
    LineRead,
    ReadFailed,
    ReconnectResult,
    RetryDue,
    RxLine,
    TxLine,
)
from common.linereader import LineReader
from common.protocol import ENCODING, LOG_TRAFFIC, TRACE, ConnectionState, SerialPort
from session.loop import Dispatcher

logger = logging.getLogger(__name__)

Opener = Callable[[str, SessionConfig], SerialPort]


class Session:
    """Connection state machine around one serial port.

    Every result of asynchronous work carries the identity it was issued
    for: reads carry the port generation and cancellation token, reconnect
    attempts and retry timers carry the reconnect epoch. Results that no
    longer match the current session are dropped.
    """

    def __init__(
        self,
        port: SerialPort,
        address: str,
        dispatcher: Dispatcher,
        config: SessionConfig | None = None,
        opener: Opener = open_serial,
    ) -> None:
        self._address = address
        self._config = config or SessionConfig()
        self._dispatcher = dispatcher
        self._opener = opener
        self._port: SerialPort | None = port
        self._reader: LineReader | None = LineReader(port)
        self._state = ConnectionState.CONNECTED
        self._token = threading.Event()
        self._generation = 0  # Bumped whenever the port is closed or replaced
        self._epoch = 0  # Bumped whenever a reconnect loop starts or is abandoned

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def address(self) -> str:
        return self._address

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def port(self) -> SerialPort | None:
        return self._port

    @property
    def generation(self) -> int:
        return self._generation

    def start(self) -> None:
        """Issue the first read. Call once, after the loop has a handler."""
        if self._state == ConnectionState.CONNECTED:
            logger.info(f"Session started on {self._address}")
            self._issue_read()

    # -------------------------------------------------------------------------
    # Event dispatch
    # -------------------------------------------------------------------------

    def handle(self, event: Event) -> None:
        """Consume results of commands issued by this session.

        Any other event is ignored, so the orchestrator may pass every
        event it receives.
        """
        match event:
            case LineRead(line=line, generation=generation):
                self.on_line_received(line, generation)
            case ReadFailed(error=error, generation=generation, token=token):
                self.on_read_error(error, generation, token)
            case ReconnectResult():
                self._on_reconnect_result(event)
            case RetryDue(epoch=epoch):
                self._on_retry_due(epoch)

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def _issue_read(self) -> None:
        """Submit one single-shot read; the result handler re-arms it."""
        assert self._reader is not None
        reader = self._reader
        generation = self._generation
        token = self._token

        def read_line() -> Event:
            try:
                return LineRead(reader.read_line(), generation)
            except TransportError as e:
                return ReadFailed(e, generation, token)

        self._dispatcher.submit(read_line)

    def on_line_received(self, line: str, generation: int | None = None) -> None:
        """Forward a received line and re-arm the read."""
        if generation is None:
            generation = self._generation
        if generation != self._generation or self._state != ConnectionState.CONNECTED:
            logger.debug(f"Dropping line from stale port (generation {generation})")
            return

        if LOG_TRAFFIC:
            logger.log(TRACE, f"RX: {line!r}")
        self._dispatcher.emit(RxLine(line))
        self._issue_read()

    def on_read_error(
        self,
        error: Exception,
        generation: int | None = None,
        token: threading.Event | None = None,
    ) -> None:
        """Classify a failed read.

        - token already set: the port was closed on purpose, report it
        - result from a port that has since been replaced: drop it
        - TransportClosed: the port died, start reconnecting
        - anything else: surface it, leave the state alone
        """
        if token is None:
            token = self._token
        if generation is None:
            generation = self._generation

        if token.is_set():
            logger.info("Read ended after manual close")
            self._dispatcher.emit(InfoMessage("Port closed manually"))
            return

        if generation != self._generation:
            logger.debug(f"Dropping read error from stale port (generation {generation}): {error}")
            return

        if isinstance(error, TransportClosed):
            if self._state == ConnectionState.CONNECTED:
                logger.warning(f"Lost port {self._address}: {error}")
                self._enter_connecting()
            return

        logger.error(f"Read from {self._address} failed: {error}")
        self._dispatcher.emit(ErrorMessage(error))

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def send(self, text: str) -> None:
        """Write text plus the line ending without blocking the caller.

        Completion is posted as TxLine or ErrorMessage. Two overlapping
        sends may complete in either order.
        """
        if self._state != ConnectionState.CONNECTED or self._port is None:
            self._dispatcher.emit(
                ErrorMessage(TransportClosed(f"Not connected, message not sent: {text}"))
            )
            return

        port = self._port
        data = (text + self._config.line_ending).encode(ENCODING)

        def send_line() -> Event:
            try:
                port.write(data)
            except Exception as e:
                return ErrorMessage(classify_write_error(e))
            if LOG_TRAFFIC:
                logger.log(TRACE, f"TX: {text!r}")
            return TxLine(text)

        self._dispatcher.submit(send_line)

    # -------------------------------------------------------------------------
    # Connect / disconnect
    # -------------------------------------------------------------------------

    def _release(self, port: SerialPort) -> None:
        try:
            port.close()
        except (serial.SerialException, OSError) as e:
            logger.warning(f"Error closing {self._address}: {e}")

    def _close_port(self) -> None:
        if self._port is not None:
            self._release(self._port)
            self._port = None
            self._reader = None
        self._generation += 1

    def request_disconnect(self) -> None:
        """Close the port and stop reconnecting. No-op when disconnected."""
        if self._state == ConnectionState.DISCONNECTED:
            return

        self._token.set()
        self._close_port()
        self._epoch += 1
        self._state = ConnectionState.DISCONNECTED
        logger.info(f"Disconnected from {self._address}")
        self._dispatcher.emit(ConnectionStatus(ConnectionState.DISCONNECTED))

    def request_reconnect(self) -> None:
        """Start reconnecting. Only meaningful when disconnected."""
        if self._state != ConnectionState.DISCONNECTED:
            return
        self._enter_connecting()

    def toggle_connection(self) -> None:
        """Disconnect, or reconnect when already disconnected."""
        if self._state == ConnectionState.DISCONNECTED:
            self.request_reconnect()
        else:
            self.request_disconnect()

    def close(self) -> None:
        """Release the port at shutdown without emitting events."""
        self._token.set()
        self._close_port()
        self._epoch += 1
        self._state = ConnectionState.DISCONNECTED

    # -------------------------------------------------------------------------
    # Reconnect loop
    # -------------------------------------------------------------------------

    def _enter_connecting(self) -> None:
        self._close_port()
        self._epoch += 1
        self._state = ConnectionState.CONNECTING
        logger.info(f"Reconnecting to {self._address}")
        self._dispatcher.emit(ConnectionStatus(ConnectionState.CONNECTING))
        self.reconnect_tick()

    def reconnect_tick(self) -> None:
        """Submit one attempt to reopen the port at the remembered address."""
        if self._state != ConnectionState.CONNECTING:
            return

        epoch = self._epoch
        address = self._address
        config = self._config
        opener = self._opener

        def reconnect() -> Event:
            try:
                port = opener(address, config)
            except Exception as e:
                return ReconnectResult(epoch, error=e)
            return ReconnectResult(epoch, port=port)

        self._dispatcher.submit(reconnect)

    def _on_reconnect_result(self, result: ReconnectResult) -> None:
        if result.epoch != self._epoch or self._state != ConnectionState.CONNECTING:
            logger.debug(f"Dropping stale reconnect result (epoch {result.epoch})")
            if result.port is not None:
                self._release(result.port)
            return

        if result.port is None:
            logger.debug(f"Failed to reconnect to {self._address}: {result.error}")
            self._dispatcher.schedule(self._config.retry_interval_s, RetryDue(self._epoch))
            return

        self._install(result.port)

    def _on_retry_due(self, epoch: int) -> None:
        if epoch != self._epoch or self._state != ConnectionState.CONNECTING:
            return
        self.reconnect_tick()

    def _install(self, port: SerialPort) -> None:
        self._port = port
        self._reader = LineReader(port)
        self._token = threading.Event()
        self._generation += 1
        self._state = ConnectionState.CONNECTED
        logger.info(f"Reconnected to {self._address}")
        self._dispatcher.emit(ConnectionStatus(ConnectionState.CONNECTED))
        self._dispatcher.emit(InfoMessage("Port reconnected"))
        self._issue_read()
