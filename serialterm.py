#!/usr/bin/env python3
"""Line-oriented serial terminal."""

import argparse
import logging
import os
import shutil
import sys
import threading
from dataclasses import dataclass
from datetime import datetime

import serial

from common.config import LogConfig, SessionConfig, load_log_config, load_session_config
from common.device import list_ports, open_serial
from common.events import ConnectionStatus, ErrorMessage, Event, InfoMessage, RxLine, TxLine
from common.mockport import open_mock
from common.protocol import ConnectionState
from msglog.entry import Category
from msglog.log import MessageLog, ScrollDirection
from session.loop import EventLoop
from session.session import Opener, Session

logger = logging.getLogger(__name__)

DEFAULT_PORT = "/dev/ttyUSB0"
DEBUG_LOG_FILE = "debug.log"
TRAFFIC_LOGGER = "serialterm.traffic"
FAST_SCROLL = 10

HELP_TEXT = """\
Commands:
  /connect        disconnect, or reconnect when disconnected
  /find WORDS     show only lines containing all WORDS (empty = all)
  /up [N]         scroll toward older lines
  /down [N]       scroll toward newer lines
  /top, /bottom   jump to the oldest / newest lines
  /show           print the visible window
  /clear          clear the message log
  /quit           exit
Anything else is sent to the port."""


@dataclass(frozen=True)
class UserInput:
    """A line typed on stdin."""

    text: str


@dataclass(frozen=True)
class InputClosed:
    """stdin reached EOF."""


def configure_logging() -> None:
    """Debug log to a file when SERIALTERM_DEBUG is set, warnings to stderr otherwise."""
    if os.environ.get("SERIALTERM_DEBUG"):
        logging.basicConfig(
            filename=DEBUG_LOG_FILE,
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)


def open_traffic_log(logpath: str) -> logging.Logger:
    """Create a logger that writes every message log line to a file in logpath."""
    os.makedirs(logpath, exist_ok=True)
    filename = os.path.join(logpath, datetime.now().strftime("serial_%Y%m%d_%H%M%S.log"))
    handler = logging.FileHandler(filename)
    handler.setFormatter(logging.Formatter("%(message)s"))
    traffic = logging.getLogger(TRAFFIC_LOGGER)
    traffic.setLevel(logging.INFO)
    traffic.addHandler(handler)
    traffic.propagate = False
    logger.info(f"Logging traffic to {filename}")
    return traffic


def print_ports() -> None:
    """Print every serial port with its by-id alias."""
    ports = list_ports()
    if not ports:
        print("No serial ports found!")
        return
    print(f"{'Device':<15}  {'Description':<30}  By-id")
    print("-" * 15 + "  " + "-" * 30 + "  " + "-" * 40)
    for p in ports:
        print(f"{p.device:<15}  {p.description:<30}  {p.by_id or ''}")


class Console:
    """Plain-text front end: routes events into the session and the log."""

    def __init__(self, session: Session, msglog: MessageLog, loop: EventLoop) -> None:
        self.session = session
        self.msglog = msglog
        self.loop = loop
        self.running = True

    def handle(self, event: Event) -> None:
        self.session.handle(event)

        match event:
            case ConnectionStatus(state=state):
                print(f"[{state.value}] {self.session.address}")
            case RxLine(text=text):
                self._append(Category.RX, text)
            case TxLine(text=text):
                self._append(Category.TX, text)
            case InfoMessage(text=text):
                self._append(Category.INFO, text)
            case ErrorMessage():
                self._append(Category.ERR, event.text)
            case UserInput(text=text):
                self._on_input(text)
            case InputClosed():
                self.quit()

    def _append(self, category: Category, text: str) -> None:
        entry = self.msglog.append_entry(category, text)
        # Only echo lines that land in the visible window
        visible = self.msglog.visible_slice()
        if visible and visible[-1] is entry:
            print(self.msglog.visible_lines()[-1])

    def _on_input(self, text: str) -> None:
        if not text.startswith("/"):
            if text:
                self.session.send(text)
            return

        command, _, arg = text[1:].partition(" ")
        match command:
            case "quit" | "q":
                self.quit()
            case "connect" | "c":
                self.session.toggle_connection()
            case "find" | "f":
                self.msglog.set_query(arg)
                self.show()
            case "up":
                self.msglog.scroll(ScrollDirection.UP, _amount(arg))
                self.show()
            case "down":
                self.msglog.scroll(ScrollDirection.DOWN, _amount(arg))
                self.show()
            case "top":
                self.msglog.scroll_to_top()
                self.show()
            case "bottom":
                self.msglog.scroll_to_bottom()
                self.show()
            case "show":
                self.show()
            case "clear":
                self.msglog.clear()
            case _:
                print(HELP_TEXT)

    def show(self) -> None:
        """Print the visible window and a footer with counters."""
        for line in self.msglog.visible_lines():
            print(line)
        query = f" filter={self.msglog.query!r}" if self.msglog.query else ""
        print(
            f"-- {self.msglog.message_count} msgs, "
            f"{int(self.msglog.scroll_percent()):3d}%{query} --"
        )

    def quit(self) -> None:
        self.running = False
        self.session.close()
        self.loop.stop()


def _amount(arg: str) -> int:
    try:
        return int(arg) if arg else FAST_SCROLL
    except ValueError:
        return FAST_SCROLL


def _read_stdin(loop: EventLoop) -> None:
    for line in sys.stdin:
        loop.emit(UserInput(line.rstrip("\r\n")))
    loop.emit(InputClosed())


def run_terminal(
    address: str,
    session_config: SessionConfig,
    log_config: LogConfig,
    opener: Opener,
    serial_log: logging.Logger | None = None,
) -> int:
    """Open the port and run the console until /quit or EOF."""
    try:
        port = opener(address, session_config)
    except (serial.SerialException, OSError) as e:
        print(f"{address}: {e}", file=sys.stderr)
        return 1

    height = shutil.get_terminal_size().lines - 2
    msglog = MessageLog.from_config(log_config, viewport_height=height, serial_log=serial_log)
    loop = EventLoop()
    session = Session(port, address, loop, config=session_config, opener=opener)
    console = Console(session, msglog, loop)
    loop.set_handler(console.handle)

    print(f"[{ConnectionState.CONNECTED.value}] {address} (type /help for commands)")
    threading.Thread(target=_read_stdin, args=(loop,), daemon=True).start()
    session.start()

    try:
        loop.run()
    except KeyboardInterrupt:
        console.quit()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Interactive line-oriented serial terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -l                          List serial ports
  %(prog)s -p /dev/ttyACM0 -t          Connect with timestamps
  %(prog)s --mock                      Run against a simulated port
""",
    )
    parser.add_argument("-l", "--list", action="store_true", help="List available ports")
    parser.add_argument(
        "-p", "--port", type=str, default=DEFAULT_PORT, help=f"Serial port (default: {DEFAULT_PORT})"
    )
    parser.add_argument("-b", "--baudrate", type=int, default=None, help="Baud rate (default: 115200)")
    parser.add_argument("--rtscts", action="store_true", help="Enable RTS/CTS flow control")
    parser.add_argument("-t", "--timestamp", action="store_true", help="Show timestamps")
    parser.add_argument(
        "-e", "--escapes", action="store_true", help="Strip escape / non-printable characters"
    )
    parser.add_argument("--log", action="store_true", help="Write the message log to a file")
    parser.add_argument("--logpath", type=str, default=".", help="Log file directory (default: .)")
    parser.add_argument("--limit", type=int, default=None, help="Message log limit in lines")
    parser.add_argument(
        "-r", "--retry-interval", type=float, default=None, help="Seconds between reconnect attempts"
    )
    parser.add_argument("--mock", action="store_true", help="Use a simulated port")

    args = parser.parse_args()
    configure_logging()

    if args.list:
        print_ports()
        return 0

    try:
        session_config = load_session_config(
            baudrate=args.baudrate,
            rtscts=args.rtscts,
            retry_interval_s=args.retry_interval,
        )
        log_config = load_log_config(
            capacity=args.limit,
            show_timestamp=args.timestamp,
            show_escapes=args.escapes,
        )
        if log_config.capacity <= 0:
            parser.error(f"--limit must be positive, got {log_config.capacity}")
    except ValueError as e:
        parser.error(str(e))

    serial_log = open_traffic_log(args.logpath) if args.log else None
    opener: Opener = open_mock if args.mock else open_serial
    address = "mock" if args.mock else args.port
    return run_terminal(address, session_config, log_config, opener, serial_log)


if __name__ == "__main__":
    sys.exit(main())
