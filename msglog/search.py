"""Search helpers for the message log.

A query is split on whitespace into lowercase words. A line matches when
its lowercased text contains every word (logical AND). Any string is a
valid query; the empty query matches everything.
"""

import re

from msglog.entry import strip_ansi

# Emphasis wrapped around matched text (reverse video)
HIGHLIGHT_START = "\x1b[7m"
HIGHLIGHT_END = "\x1b[27m"


def parse_query(query: str) -> list[str]:
    """Split a query into lowercase search words."""
    return query.lower().split()


def matches(text: str, words: list[str]) -> bool:
    """Return True if text contains every word, ignoring case."""
    lower = text.lower()
    return all(word in lower for word in words)


def _match_spans(text: str, words: list[str]) -> list[tuple[int, int]]:
    """Return merged, sorted (start, end) spans of every word occurrence."""
    spans = sorted(
        (m.start(), m.end())
        for word in words
        for m in re.finditer(re.escape(word), text, re.IGNORECASE)
    )
    merged: list[tuple[int, int]] = []
    for start, end in spans:
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def highlight(text: str, words: list[str]) -> str:
    """Wrap every occurrence of the words in emphasis markers.

    Existing escape sequences are stripped first so markers never end up
    inside them.
    """
    plain = strip_ansi(text)
    if not words:
        return plain

    out: list[str] = []
    pos = 0
    for start, end in _match_spans(plain, words):
        out.append(plain[pos:start])
        out.append(HIGHLIGHT_START + plain[start:end] + HIGHLIGHT_END)
        pos = end
    out.append(plain[pos:])
    return "".join(out)
