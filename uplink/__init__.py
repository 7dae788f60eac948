"""
UPLINK Client Core

Data-and-state layer of a serialized-story reader: fetches the episodes,
stats and config documents, caches them in two tiers, normalizes episodes,
gates access during maintenance and keeps page routing in the URL fragment.

LAYERS:
=======
1. Transport: HttpFetcher (httpx)
2. Caching: CacheOrchestrator over KeyedPersistentStore
3. Content: ContentNormalizer, document services
4. Session: AccessGateController, NavigationController, Countdown
5. Orchestration: UplinkApp
"""

from .app import AppState, UplinkApp
from .cache import CacheOrchestrator, CacheStats
from .clock import LogicalClock
from .contracts import (
    CacheEntry, EpisodeRecord, FetchOptions, GateAttempt, GateSession, GateState,
    LoadFailure, Location, MessageKind, MessageRecord, Note, PageId, SortOrder,
    TerminalBlock
)
from .errors import (
    ClockError, ErrorCode, FetchError, HttpStatusError, SecureContextError,
    StorageError, TransportError, UplinkError, ValidationError
)
from .events import EventBus
from .fetcher import HttpFetcher
from .gate import AccessGateController, FocusManager, Sha256Hasher
from .navigation import NavigationController
from .normalizer import ContentNormalizer, NormalizationReport
from .services import EpisodeService, ProgressService, StatsService
from .settings import UplinkSettings
from .storage import KeyedPersistentStore, MemoryBackend, SqliteBackend

__version__ = "0.1.0"

__all__ = [
    'AppState', 'UplinkApp',
    'CacheOrchestrator', 'CacheStats',
    'LogicalClock',
    'CacheEntry', 'EpisodeRecord', 'FetchOptions', 'GateAttempt', 'GateSession',
    'GateState', 'LoadFailure', 'Location', 'MessageKind', 'MessageRecord',
    'Note', 'PageId', 'SortOrder', 'TerminalBlock',
    'ClockError', 'ErrorCode', 'FetchError', 'HttpStatusError',
    'SecureContextError', 'StorageError', 'TransportError', 'UplinkError',
    'ValidationError',
    'EventBus',
    'HttpFetcher',
    'AccessGateController', 'FocusManager', 'Sha256Hasher',
    'NavigationController',
    'ContentNormalizer', 'NormalizationReport',
    'EpisodeService', 'ProgressService', 'StatsService',
    'UplinkSettings',
    'KeyedPersistentStore', 'MemoryBackend', 'SqliteBackend',
]
