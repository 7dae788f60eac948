"""
Transmission Countdown

Time remaining until the stats document's next_episode_date, read through the
injectable clock.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from .clock import LogicalClock
from .events import EventBus

logger = logging.getLogger(__name__)

ONLINE_LABEL = '// ONLINE'


def parse_instant(value: Optional[str]) -> Optional[datetime]:
    """Aware UTC datetime for an ISO string ('Z' allowed), None if invalid."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00').replace('z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_remaining(remaining: timedelta) -> str:
    total = max(0, int(remaining.total_seconds()))
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class Countdown:
    """
    Countdown to the next transmission.

    Inactive when the target is absent, unparseable or already past at
    start(). Publishes countdown:tick each tick and countdown:online once.
    """

    def __init__(self, clock: LogicalClock, bus: EventBus, interval_seconds: float = 1.0):
        self._clock = clock
        self._bus = bus
        self._interval = interval_seconds
        self._target: Optional[datetime] = None
        self._running = False

    @property
    def active(self) -> bool:
        return self._target is not None

    @property
    def target(self) -> Optional[datetime]:
        return self._target

    def start(self, next_update: Optional[str]) -> bool:
        """Arm the countdown; returns whether it is active."""
        self.stop()
        target = parse_instant(next_update)
        if target is None or target <= self._clock.now():
            self._target = None
            return False
        self._target = target
        return True

    def stop(self) -> None:
        self._running = False
        self._target = None

    def remaining(self) -> Optional[timedelta]:
        if self._target is None:
            return None
        return max(timedelta(0), self._target - self._clock.now())

    def format(self) -> str:
        remaining = self.remaining()
        if remaining is None:
            return '--'
        if remaining <= timedelta(0):
            return ONLINE_LABEL
        return f"> {format_remaining(remaining)}"

    def tick(self) -> bool:
        """Publish the current value; returns False once the target is reached."""
        remaining = self.remaining()
        if remaining is None:
            return False
        if remaining <= timedelta(0):
            self._bus.publish('countdown:online', {'label': ONLINE_LABEL})
            self._target = None
            return False
        self._bus.publish('countdown:tick', {
            'remaining_seconds': int(remaining.total_seconds()),
            'label': self.format()
        })
        return True

    async def run(self) -> None:
        """Tick every interval until the target is reached or stop()."""
        self._running = True
        while self._running and self.tick():
            await self._clock.sleep(self._interval)
        self._running = False
