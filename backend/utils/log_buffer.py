"""
In-memory ring buffer for backend logs, served by the debug API so problems
can be diagnosed without access to the console.
"""

import logging
import threading
import time
from collections import deque

_MAX_LINES = 500
_buffer: deque[tuple[float, str]] = deque(maxlen=_MAX_LINES)
_lock = threading.Lock()


def append(msg: str) -> None:
    """Add a log line to the buffer."""
    with _lock:
        _buffer.append((time.time(), msg))


def get_recent(limit: int | None = None) -> str:
    """Return recent logs as a single string."""
    with _lock:
        entries = list(_buffer)
    if limit is not None:
        entries = entries[-limit:] if limit > 0 else []
    lines = [f"[{t:.1f}] {m}" for t, m in entries]
    return "\n".join(lines) if lines else "(no logs)"


def clear() -> None:
    with _lock:
        _buffer.clear()


class BufferHandler(logging.Handler):
    """logging handler that copies formatted records into the buffer."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            append(self.format(record))
        except Exception:
            self.handleError(record)
