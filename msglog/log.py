"""Bounded, searchable message log for serial-term.

The log keeps at most `capacity` entries. Entry 0 is always a marker line;
once older entries have been evicted it tells the reader that history was
truncated. The filtered view holds the entries matching the current query
(the marker always matches) and is scrolled independently of appends:

  scroll_offset = distance from the bottom of the filtered view to the
                  bottom edge of the visible window
"""

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from common.config import LogConfig
from common.errors import CapacityError
from common.protocol import DEFAULT_LOG_LIMIT, TRACE
from msglog.entry import Category, LogEntry, marker_entry, render_line, strip_ansi
from msglog.search import highlight, matches, parse_query

logger = logging.getLogger(__name__)


class ScrollDirection(Enum):
    """Scroll toward older content (UP) or toward the bottom (DOWN)."""

    UP = "up"
    DOWN = "down"


class MessageLog:
    """Transmitted, received, error and info lines with a scrollable view."""

    def __init__(
        self,
        capacity: int = DEFAULT_LOG_LIMIT,
        viewport_height: int = 0,
        show_timestamp: bool = False,
        show_escapes: bool = False,
        serial_log: logging.Logger | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if capacity <= 0:
            raise CapacityError(f"Message log capacity must be positive, got {capacity}")

        self._capacity = capacity
        self._viewport_height = max(0, viewport_height)
        self._show_timestamp = show_timestamp
        self._show_escapes = show_escapes
        self._serial_log = serial_log
        self._clock = clock

        self._marker = marker_entry(capacity)
        self._entries: list[LogEntry] = [self._marker]
        self._seq = 0
        self._tx_count = 0
        self._rx_count = 0

        self._query = ""
        self._words: list[str] = []
        self._filtered: list[LogEntry] = []
        self._display: list[str] = []
        self._scroll_offset = 0
        self._refilter()

    @classmethod
    def from_config(
        cls,
        config: LogConfig,
        viewport_height: int = 0,
        serial_log: logging.Logger | None = None,
    ) -> "MessageLog":
        return cls(
            capacity=config.capacity,
            viewport_height=viewport_height,
            show_timestamp=config.show_timestamp,
            show_escapes=config.show_escapes,
            serial_log=serial_log,
        )

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    @property
    def filtered_entries(self) -> list[LogEntry]:
        return list(self._filtered)

    @property
    def query(self) -> str:
        return self._query

    @property
    def scroll_offset(self) -> int:
        return self._scroll_offset

    @property
    def viewport_height(self) -> int:
        return self._viewport_height

    @property
    def tx_count(self) -> int:
        return self._tx_count

    @property
    def rx_count(self) -> int:
        return self._rx_count

    @property
    def message_count(self) -> int:
        """Lines sent and received since the last clear()."""
        return self._tx_count + self._rx_count

    def length(self) -> int:
        """Number of entries, including the marker."""
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # -------------------------------------------------------------------------
    # Appending
    # -------------------------------------------------------------------------

    def append_entry(self, category: Category, text: str) -> LogEntry:
        """Render and append a line, evicting the oldest one when full.

        TX, ERR and INFO lines snap the view to the bottom. RX lines keep
        the view at the bottom if it was there; otherwise the offset grows
        by one so the visible window does not move.
        """
        was_at_bottom = self.at_bottom()

        rendered = render_line(
            category,
            text,
            show_timestamp=self._show_timestamp,
            show_escapes=self._show_escapes,
            now=self._clock() if self._show_timestamp else None,
        )
        if self._serial_log is not None:
            self._serial_log.info(rendered)

        self._seq += 1
        entry = LogEntry(seq=self._seq, category=category, text=text, rendered=rendered)

        match category:
            case Category.TX:
                self._tx_count += 1
            case Category.RX:
                self._rx_count += 1

        self._entries.append(entry)
        self._evict()

        # With capacity 1 the new entry itself is evicted at once
        shown = self._entries[-1] is entry and (
            not self._words or matches(entry.rendered, self._words)
        )
        if shown:
            self._filtered.append(entry)
            self._display.append(self._display_text(entry))

        if category != Category.RX:
            self._scroll_offset = 0
        elif not was_at_bottom and shown:
            self._scroll_offset += 1
        self._clamp()
        return entry

    def _evict(self) -> None:
        overflow = len(self._entries) - self._capacity
        if overflow <= 0:
            return

        # The marker stays at index 0; the oldest real entries behind it go
        evicted = self._entries[1 : overflow + 1]
        self._entries = [self._marker] + self._entries[overflow + 1 :]
        logger.log(TRACE, f"Evicted {len(evicted)} entries (capacity {self._capacity})")

        # Evicted entries are the oldest, so in the filtered view they sit
        # right behind the marker
        evicted_seqs = {e.seq for e in evicted}
        drop = 0
        while 1 + drop < len(self._filtered) and self._filtered[1 + drop].seq in evicted_seqs:
            drop += 1
        if drop:
            del self._filtered[1 : 1 + drop]
            del self._display[1 : 1 + drop]

    # -------------------------------------------------------------------------
    # Filtering
    # -------------------------------------------------------------------------

    def _display_text(self, entry: LogEntry) -> str:
        if entry.marker or not self._words:
            return entry.rendered
        return highlight(entry.rendered, self._words)

    def _refilter(self) -> None:
        if not self._words:
            self._filtered = list(self._entries)
        else:
            self._filtered = [
                e for e in self._entries if e.marker or matches(e.rendered, self._words)
            ]
        self._display = [self._display_text(e) for e in self._filtered]

    def set_query(self, query: str) -> None:
        """Filter the view to entries containing every word of query."""
        self._query = query
        self._words = parse_query(query)
        self._scroll_offset = 0
        self._refilter()
        logger.debug(f"Filter {query!r}: {len(self._filtered)}/{len(self._entries)} entries")

    # -------------------------------------------------------------------------
    # Scrolling
    # -------------------------------------------------------------------------

    def max_scroll_offset(self) -> int:
        return max(0, len(self._filtered) - self._viewport_height)

    def _clamp(self) -> None:
        self._scroll_offset = min(max(self._scroll_offset, 0), self.max_scroll_offset())

    def at_bottom(self) -> bool:
        return self._scroll_offset == 0 or len(self._filtered) <= self._viewport_height

    def at_top(self) -> bool:
        return self._scroll_offset == self.max_scroll_offset()

    def scroll(self, direction: ScrollDirection, amount: int = 1) -> None:
        """Move the window by amount entries, clamped to the content."""
        if amount <= 0:
            return
        match direction:
            case ScrollDirection.UP:
                if self.at_top():
                    return
                self._scroll_offset = min(self._scroll_offset + amount, self.max_scroll_offset())
            case ScrollDirection.DOWN:
                if self.at_bottom():
                    return
                self._scroll_offset = max(self._scroll_offset - amount, 0)

    def scroll_to_top(self) -> None:
        self._scroll_offset = self.max_scroll_offset()

    def scroll_to_bottom(self) -> None:
        self._scroll_offset = 0

    def set_viewport_height(self, height: int) -> None:
        """Resize the window. Keeps the filter, re-clamps the offset."""
        self._viewport_height = max(0, height)
        self._clamp()

    def _window(self) -> tuple[int, int]:
        end = len(self._filtered) - self._scroll_offset
        start = max(0, end - self._viewport_height)
        return start, end

    def visible_slice(self) -> list[LogEntry]:
        """Entries inside the visible window, oldest first."""
        start, end = self._window()
        return self._filtered[start:end]

    def visible_lines(self) -> list[str]:
        """Display text (with search highlights) of the visible window."""
        start, end = self._window()
        return self._display[start:end]

    def scroll_percent(self) -> float:
        """100 at the bottom, otherwise how far down the window is.

        Never reports 100 while scrolled away from the bottom.
        """
        if self.at_bottom():
            return 100.0
        return 100 - self._scroll_offset * 100 / self.max_scroll_offset()

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        """Drop every entry and counter, leaving only the marker."""
        self._entries = [self._marker]
        self._tx_count = 0
        self._rx_count = 0
        self._scroll_offset = 0
        self._refilter()

    def export_lines(self) -> list[str]:
        """Filtered view as plain text, e.g. for handing to an editor."""
        return [strip_ansi(line) for line in self._display]
