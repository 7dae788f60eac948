"""
Shared fixtures: a stubbed document server and a manual clock.
"""

from datetime import datetime, timezone
import copy

import httpx
import pytest

from uplink.cache import CacheOrchestrator
from uplink.clock import LogicalClock
from uplink.events import EventBus
from uplink.fetcher import HttpFetcher
from uplink.storage import KeyedPersistentStore, MemoryBackend

BASE_URL = "http://localhost:8000/"
START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

CONFIG = {
    'project': {'title': 'UPLINK'},
    'characters': {'kai': {'name': 'Kai'}},
    'scoring': {
        'categories': [{'id': 'trust', 'label': 'Vertrauen'}],
        'metrics': [{'id': 'signal', 'label': 'Signal'}]
    },
    'story_arc': {
        'phases': [
            {'id': 'contact', 'label': 'Kontakt', 'days': [1, 2]},
            {'id': 'drift', 'label': 'Drift', 'days': [3, 4]},
            {'id': 'silence', 'label': 'Stille', 'days': [5, 6]}
        ]
    },
    'maintenance': {'enabled': False}
}

STATS = {
    'scores': {'trust': 4},
    'metrics': {'signal': 0.7},
    'phase': 'drift',
    'current_day': 3,
    'total_days': 6,
    'current_episode': 3,
    'next_episode_date': '2026-03-02T06:00:00Z'
}

DIALOGS = [
    {
        'episode': 1,
        'date': '2026-03-01',
        'title': 'Contact',
        'phase': 'contact',
        'messages': [
            {'author': 'KAI', 'text': 'Hallo?'},
            {'type': 'system', 'text': 'SIGNAL ACQUIRED'}
        ]
    },
    {
        'episode': 2,
        'date': '2026-03-02',
        'title': 'Echo',
        'phase': 'contact',
        'messages': [{'author': 'KAI', 'text': 'Bist du noch da?', 'timestamp': '2026-03-02T22:00:00Z'}],
        'scoreDelta': {'trust': 1}
    },
    {
        'episode': 3,
        'date': '2026-03-03',
        'title': 'Drift',
        'phase': 'drift',
        'messages': [],
        'terminal_blocks': [{'after_message': 0, 'owner': 'sys', 'content': '> ping'}]
    }
]


class FakeFeed:
    """
    Document server behind httpx.MockTransport.

    A document value that is an int is served as that status code. Queued
    outcomes in `failures[path]` are served first: 'connect' raises a
    connection error, an int is a status code.
    """

    def __init__(self, documents=None):
        self.documents = copy.deepcopy(documents if documents is not None else {
            'data/config.json': CONFIG,
            'data/stats.json': STATS,
            'data/dialogs.json': DIALOGS
        })
        self.failures = {}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.lstrip('/')
        self.requests.append(request)

        queued = self.failures.get(path)
        if queued:
            outcome = queued.pop(0)
            if outcome == 'connect':
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(outcome)

        if path not in self.documents:
            return httpx.Response(404)
        body = self.documents[path]
        if isinstance(body, int):
            return httpx.Response(body)
        if isinstance(body, str):
            return httpx.Response(200, text=body)
        return httpx.Response(200, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path.lstrip('/') == path)


@pytest.fixture
def clock():
    return LogicalClock.manual(START)


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def fetcher(feed):
    return HttpFetcher(BASE_URL, asset_version="1.2", transport=feed.transport())


@pytest.fixture
def cache(fetcher, backend, clock):
    return CacheOrchestrator(
        fetcher,
        KeyedPersistentStore(backend, namespace='uplink_cache_'),
        clock=clock,
        schema_version="1.2"
    )
