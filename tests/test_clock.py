"""
Logical Clock Tests
"""

import asyncio
from datetime import datetime, timezone

import pytest

from uplink.clock import LogicalClock
from uplink.errors import ClockError


class TestManualClock:

    def test_default_start(self):
        assert LogicalClock.manual().now() == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_naive_start_is_utc(self):
        clock = LogicalClock.manual(datetime(2026, 3, 1, 12, 0))

        assert clock.now().tzinfo is timezone.utc

    def test_advance(self):
        clock = LogicalClock.manual(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))

        clock.advance(90)

        assert clock.now() == datetime(2026, 3, 1, 12, 1, 30, tzinfo=timezone.utc)
        assert clock.now_ms() == int(datetime(2026, 3, 1, 12, 1, 30, tzinfo=timezone.utc).timestamp() * 1000)

    def test_sleep_advances_instantly(self):
        clock = LogicalClock.manual()

        asyncio.run(clock.sleep(2.5))

        assert clock.now() == datetime(2026, 1, 1, 0, 0, 2, 500000, tzinfo=timezone.utc)
        assert clock.sleeps == [2.5]

    def test_tick_count(self):
        clock = LogicalClock.manual()
        clock.now()
        clock.now_ms()

        assert clock.tick_count() == 2
        assert 'MANUAL' in repr(clock)


class TestLiveClock:

    def test_now_is_aware(self):
        clock = LogicalClock.live()

        assert clock.is_live()
        assert clock.now().tzinfo is not None

    def test_cannot_advance(self):
        with pytest.raises(ClockError):
            LogicalClock.live().advance(1)
