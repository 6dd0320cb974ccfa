"""
Clock -- injectable time source for the ledger.

Responsibility:
    Every timestamp the ledger records (posting, closing, locking,
    unlocking, audit entries) comes from a Clock handed to the service, so
    tests can pin time and concurrent workers can share one source.

Architecture position:
    Kernel > Domain.  SystemClock is the only place that reads the system
    time.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

LEDGER_EPOCH = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """
    Source of timezone-aware UTC timestamps.

    Contract:
        Services receive a Clock through their constructor and never read
        the system time themselves.
    """

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock.

    Guarantees:
        - Starts at ``start`` (default LEDGER_EPOCH) and moves only through
          ``advance``/``set_time``, or by ``tick`` after every ``now()``.
        - Safe to share between threads.
    """

    def __init__(self, start: datetime | None = None, tick: timedelta = timedelta(0)):
        if start is not None and start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start time")
        self._current = start or LEDGER_EPOCH
        self._tick = tick
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            value = self._current
            self._current += self._tick
            return value

    def set_time(self, value: datetime) -> None:
        with self._lock:
            self._current = value

    def advance(self, seconds: float = 1) -> None:
        with self._lock:
            self._current += timedelta(seconds=seconds)
