"""Session package for serial-term.

This package keeps a serial connection alive:
- Single-consumer event loop with worker threads
- Line read loop, re-armed after every line
- Automatic reconnect when the port disappears
- Manual connect / disconnect
"""

from session.loop import Dispatcher, EventLoop
from session.session import Opener, Session

__all__ = [
    "Dispatcher",
    "EventLoop",
    "Opener",
    "Session",
]
