"""Message log package for serial-term.

This package holds the bounded scrollback of the terminal:
- entry: Category, LogEntry and line rendering
- search: Query parsing, matching and highlighting
- log: MessageLog with eviction, filtering and scrolling
"""

from msglog.entry import Category, LogEntry
from msglog.log import MessageLog, ScrollDirection
from msglog.search import HIGHLIGHT_END, HIGHLIGHT_START

__all__ = [
    "Category",
    "HIGHLIGHT_END",
    "HIGHLIGHT_START",
    "LogEntry",
    "MessageLog",
    "ScrollDirection",
]
