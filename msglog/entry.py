"""Log entries for serial-term.

Contains:
- Category: Kind of log line (TX, RX, ERR, INFO)
- LogEntry: One rendered line of the message log
- render_line: Build the rendered text of an entry
- clean / strip_ansi: Text sanitizers
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Category(Enum):
    """Kind of message log line."""

    TX = "tx"
    RX = "rx"
    ERR = "err"
    INFO = "info"


PREFIXES = {
    Category.TX: "",
    Category.RX: "",
    Category.ERR: "ERROR: ",
    Category.INFO: "INFO: ",
}

TIMESTAMP_FORMAT = "%H:%M:%S"

# CSI sequences (colors, cursor movement) and two-byte ESC sequences
_ANSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")


@dataclass(frozen=True)
class LogEntry:
    """One line of the message log.

    text is the line as received or sent; rendered adds the timestamp and
    category prefix and is what filtering matches against.
    """

    seq: int
    category: Category
    text: str
    rendered: str
    marker: bool = False


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences."""
    return _ANSI_RE.sub("", text)


def clean(text: str) -> str:
    """Drop escape sequences and non-printable characters."""
    return "".join(ch for ch in strip_ansi(text) if ch.isprintable())


def format_timestamp(now: datetime) -> str:
    """Format as [HH:MM:SS.mmm]."""
    return f"[{now.strftime(TIMESTAMP_FORMAT)}.{now.microsecond // 1000:03d}]"


def render_line(
    category: Category,
    text: str,
    show_timestamp: bool = False,
    show_escapes: bool = False,
    now: datetime | None = None,
) -> str:
    """Build the display text: [timestamp ]prefix + text."""
    parts: list[str] = []
    if show_timestamp:
        parts.append(format_timestamp(now or datetime.now()) + " ")
    parts.append(PREFIXES[category])
    parts.append(clean(text) if show_escapes else text)
    return "".join(parts)


def marker_entry(capacity: int) -> LogEntry:
    """The synthetic first entry that marks the start of the retained log."""
    text = f"Message log start (limit: {capacity} lines)"
    return LogEntry(seq=0, category=Category.INFO, text=text, rendered=text, marker=True)
