"""Line decoding for serial-term.

Turns the byte stream of a serial port into text lines:
  [bytes ...]["\\r"]"\\n"

A trailing carriage return is dropped so both LF and CRLF devices produce
clean lines. Bytes that are not valid UTF-8 decode to U+FFFD.
"""

from common.errors import LineTooLongError, TransportClosed, classify_read_error
from common.protocol import ENCODING, LINE_TERMINATOR, MAX_LINE_BYTES, SerialPort


class LineReader:
    """Incremental line decoder on top of a serial port.

    read_line() blocks for as long as the port's read timeout allows, then
    checks whether the port is still open before polling again. A close
    from another thread is therefore noticed once the pending read returns.
    """

    def __init__(
        self,
        port: SerialPort,
        max_line_bytes: int = MAX_LINE_BYTES,
        encoding: str = ENCODING,
    ) -> None:
        self._port = port
        self._max_line_bytes = max_line_bytes
        self._encoding = encoding
        self._buffer = bytearray()

    @property
    def port(self) -> SerialPort:
        return self._port

    @property
    def pending(self) -> int:
        """Number of buffered bytes that do not form a complete line yet."""
        return len(self._buffer)

    def _decode(self, raw: bytes) -> str:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        return raw.decode(self._encoding, errors="replace")

    def _pop_line(self) -> str | None:
        idx = self._buffer.find(LINE_TERMINATOR)
        if idx < 0:
            if len(self._buffer) > self._max_line_bytes:
                size = len(self._buffer)
                self._buffer.clear()
                raise LineTooLongError(
                    f"Line exceeds {self._max_line_bytes} bytes ({size} bytes buffered), discarded"
                )
            return None
        raw = bytes(self._buffer[:idx])
        del self._buffer[: idx + 1]
        return self._decode(raw)

    def feed(self, data: bytes) -> list[str]:
        """Add received bytes and return every line completed by them.

        Raises:
            LineTooLongError: If the unterminated tail grows past the limit.
        """
        self._buffer.extend(data)
        lines: list[str] = []
        while (line := self._pop_line()) is not None:
            lines.append(line)
        return lines

    def read_line(self) -> str:
        """Block until one complete line is available and return it.

        Raises:
            TransportClosed: If the port is closed or the device went away.
            LineTooLongError: If no terminator arrives within the line limit.
        """
        while True:
            line = self._pop_line()
            if line is not None:
                return line

            if not self._port.is_open:
                raise TransportClosed("Port closed")

            try:
                chunk = self._port.read(max(1, self._port.in_waiting))
            except Exception as e:
                raise classify_read_error(e) from e

            if chunk:
                self._buffer.extend(chunk)
