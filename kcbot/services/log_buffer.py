"""
kcbot.services.log_buffer — Recent-log ring buffer
===================================================

A bounded in-memory tail of log records for ``GET /api/logs``.  One
buffer per process; contents vanish on restart.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

DEFAULT_CAPACITY = 1000
VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_buffer: LogBuffer | None = None
_lock = threading.Lock()


@dataclass(frozen=True, slots=True)
class LogEntry:
    timestamp: str
    level: str
    logger: str
    message: str


class LogBuffer:
    """Thread-safe deque of :class:`LogEntry`, oldest dropped first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def tail(self, count: int = 100, level: str | None = None) -> list[dict[str, str]]:
        """Last *count* entries at or above *level*, oldest first."""
        floor = logging.getLevelName(level.upper()) if level else logging.NOTSET
        if not isinstance(floor, int):
            raise ValueError(f"Invalid level: {level}. Must be one of {VALID_LEVELS}")

        with self._lock:
            snapshot = list(self._entries)

        matched = [
            asdict(e) for e in snapshot
            if logging.getLevelName(e.level) >= floor
        ]
        return matched[-count:] if count > 0 else []

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RingBufferHandler(logging.Handler):
    def __init__(self, buffer: LogBuffer, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.buffer.append(
                LogEntry(
                    timestamp=datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                    level=record.levelname,
                    logger=record.name,
                    message=record.getMessage(),
                )
            )
        except Exception:
            self.handleError(record)


def get_buffer() -> LogBuffer:
    global _buffer
    if _buffer is None:
        with _lock:
            if _buffer is None:
                _buffer = LogBuffer()
    return _buffer


def install_handler(level: int = logging.INFO) -> RingBufferHandler:
    """Attach the ring-buffer handler to the root logger (once per process).

    Uvicorn's loggers are switched to propagate so request logs land in
    the buffer too.
    """
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, RingBufferHandler):
            return handler

    handler = RingBufferHandler(get_buffer(), level=level)
    root.addHandler(handler)
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).propagate = True
    return handler


def get_logs(tail: int = 100, level: str | None = None) -> list[dict[str, str]]:
    return get_buffer().tail(tail, level)
