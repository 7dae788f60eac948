"""
Transmission Countdown Tests
"""

import asyncio
from datetime import timedelta

from uplink.countdown import ONLINE_LABEL, Countdown, format_remaining, parse_instant
from uplink.events import EventBus


def make_countdown(clock):
    bus = EventBus()
    events = []
    bus.subscribe('countdown:tick', lambda p: events.append(('tick', p)))
    bus.subscribe('countdown:online', lambda p: events.append(('online', p)))
    return Countdown(clock, bus), events


class TestHelpers:

    def test_parse_instant(self):
        parsed = parse_instant('2026-03-02T06:00:00Z')

        assert parsed.utcoffset() == timedelta(0)
        assert parsed.hour == 6

    def test_parse_naive_is_utc(self):
        assert parse_instant('2026-03-02T06:00:00').utcoffset() == timedelta(0)

    def test_parse_invalid(self):
        assert parse_instant(None) is None
        assert parse_instant('') is None
        assert parse_instant('morgen') is None

    def test_format_remaining(self):
        assert format_remaining(timedelta(hours=26, minutes=3, seconds=9)) == '26:03:09'
        assert format_remaining(timedelta(seconds=-5)) == '00:00:00'


class TestCountdown:
    """Countdown state driven by the manual clock."""

    def test_start_future_target(self, clock):
        countdown, _ = make_countdown(clock)

        assert countdown.start('2026-03-01T12:01:05Z')
        assert countdown.active
        assert countdown.format() == '> 00:01:05'

    def test_inactive_targets(self, clock):
        countdown, _ = make_countdown(clock)

        assert not countdown.start(None)
        assert not countdown.start('nie')
        assert not countdown.start('2026-03-01T11:00:00Z')
        assert countdown.format() == '--'
        assert countdown.remaining() is None

    def test_elapse_publishes_online_once(self, clock):
        countdown, events = make_countdown(clock)
        countdown.start('2026-03-01T12:01:05Z')

        clock.advance(65)

        assert countdown.format() == ONLINE_LABEL
        assert countdown.tick() is False
        assert countdown.tick() is False
        assert events == [('online', {'label': ONLINE_LABEL})]
        assert not countdown.active

    def test_tick_payload(self, clock):
        countdown, events = make_countdown(clock)
        countdown.start('2026-03-01T13:00:00Z')

        assert countdown.tick()
        assert events == [('tick', {'remaining_seconds': 3600, 'label': '> 01:00:00'})]

    def test_run_until_online(self, clock):
        countdown, events = make_countdown(clock)
        countdown.start('2026-03-01T12:00:03Z')

        asyncio.run(countdown.run())

        assert [e[0] for e in events] == ['tick', 'tick', 'tick', 'online']
        assert clock.sleeps == [1.0, 1.0, 1.0]

    def test_stop(self, clock):
        countdown, _ = make_countdown(clock)
        countdown.start('2026-03-01T13:00:00Z')

        countdown.stop()

        assert not countdown.active
        assert not countdown.tick()
