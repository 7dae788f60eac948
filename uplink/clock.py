"""
Logical Clock
=============

Injectable clock so that synthetic timestamps, cache ages, retry backoff and
the countdown are deterministic under test.

MODES:
======
1. LIVE mode: reads UTC wall-clock time, sleeps with asyncio
2. MANUAL mode: returns a controlled instant; sleep() advances it instantly
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import asyncio

from .errors import ClockError


@dataclass
class LogicalClock:
    """
    Injectable clock for all time reads in the client.

    GUARANTEES:
    ===========
    - now() is always timezone-aware UTC
    - MANUAL mode never waits on real time
    - Every sleep request is recorded (inspectable backoff schedule)
    """
    _is_live: bool = True
    _current: Optional[datetime] = None
    _tick_count: int = 0
    _sleeps: List[float] = field(default_factory=list)

    def now(self) -> datetime:
        """Current logical time."""
        self._tick_count += 1
        if self._is_live:
            return datetime.now(timezone.utc)
        return self._current

    def now_ms(self) -> int:
        """Current logical time as epoch milliseconds."""
        return int(self.now().timestamp() * 1000)

    async def sleep(self, seconds: float) -> None:
        """Suspend for `seconds` (instant in MANUAL mode)."""
        self._sleeps.append(seconds)
        if self._is_live:
            await asyncio.sleep(seconds)
            return
        self.advance(seconds)
        # Still yield to the loop so other tasks interleave as they would live.
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> datetime:
        """Move a MANUAL clock forward."""
        if self._is_live:
            raise ClockError("Cannot advance a live clock")
        self._current = self._current + timedelta(seconds=seconds)
        return self._current

    def tick_count(self) -> int:
        """Number of time reads served."""
        return self._tick_count

    def is_live(self) -> bool:
        return self._is_live

    @property
    def sleeps(self) -> List[float]:
        """Sleep durations requested so far, in order."""
        return list(self._sleeps)

    @classmethod
    def live(cls) -> 'LogicalClock':
        """Create clock in LIVE mode (uses system time)."""
        return cls(_is_live=True)

    @classmethod
    def manual(cls, start: Optional[datetime] = None) -> 'LogicalClock':
        """Create clock in MANUAL mode starting at `start` (UTC)."""
        if start is None:
            start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        elif start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        return cls(_is_live=False, _current=start)

    def __repr__(self) -> str:
        mode = "LIVE" if self._is_live else "MANUAL"
        return f"LogicalClock({mode}, ticks={self._tick_count})"
