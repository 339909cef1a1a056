"""
Identifier and clock sources.

Ids stay time-derived integers (epoch milliseconds) like the ones already
on disk, but the default generator never hands out the same value twice
within a process. Tests inject SequentialIdGenerator and a fixed clock.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(moment: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_iso(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed).

    Returns None for anything that is not a parseable string, including
    the numeric timestamps some older documents carry.
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class IdGenerator(Protocol):
    def next_id(self) -> int: ...


class MonotonicIdGenerator:
    """Epoch-millisecond ids, strictly increasing within the process."""

    def __init__(self, time_ms: Callable[[], int] | None = None) -> None:
        self._time_ms = time_ms or (lambda: time.time_ns() // 1_000_000)
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            candidate = self._time_ms()
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate


class SequentialIdGenerator:
    """Deterministic ids for tests: start, start + 1, ..."""

    def __init__(self, start: int = 1) -> None:
        self._next = start

    def next_id(self) -> int:
        value = self._next
        self._next += 1
        return value
