"""
UPLINK Application
==================

Wires the client core together and runs the load sequence.

SEQUENCE:
=========
1. Fetch config (needed by the gate)
2. Enforce the access gate; stop here while it is not OPEN
3. Fetch episodes and stats concurrently
4. Route, arm the countdown, publish app:ready

Any failure in 1 or 3 is fatal to the page: AppState.load_error is set and
app:error published. The gate session survives it, so a retry does not
prompt again.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional, Tuple
import asyncio
import logging

import httpx

from .cache import CacheOrchestrator
from .clock import LogicalClock
from .contracts import (
    EpisodeRecord, GateAttempt, GateState, LoadFailure, Location, PageId, SortOrder
)
from .countdown import Countdown
from .errors import error_code_of
from .events import EventBus
from .fetcher import HttpFetcher
from .gate import AccessGateController, Sha256Hasher, is_secure_origin
from .navigation import NavigationController
from .normalizer import ContentNormalizer
from .services import EpisodeService, ProgressService, StatsService
from .settings import UplinkSettings
from .storage import KeyedPersistentStore, MemoryBackend, SqliteBackend, StorageBackend

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = 'uplink_cache_'
PROGRESS_NAMESPACE = 'uplink:'
SESSION_NAMESPACE = 'uplink_'


@dataclass
class AppState:
    """Snapshot the rendering layer reads."""
    config: Optional[dict] = None
    episodes: Tuple[EpisodeRecord, ...] = ()
    stats: Optional[dict] = None
    current_page: Optional[PageId] = None
    current_order: SortOrder = SortOrder.NEWEST
    is_loading: bool = False
    load_error: Optional[LoadFailure] = None

    @property
    def ready(self) -> bool:
        return self.stats is not None and self.load_error is None


class UplinkApp:
    """
    The client session: one bus, one cache, one gate, one navigation state.
    """

    def __init__(
        self,
        bus: EventBus,
        cache: CacheOrchestrator,
        gate: AccessGateController,
        navigation: NavigationController,
        episodes: EpisodeService,
        stats: StatsService,
        progress: ProgressService,
        countdown: Countdown,
        clock: LogicalClock
    ):
        self._bus = bus
        self._cache = cache
        self._gate = gate
        self._navigation = navigation
        self._episodes = episodes
        self._stats = stats
        self._progress = progress
        self._countdown = countdown
        self._clock = clock
        self._state = AppState()

        bus.subscribe('navigate', self._on_navigate)
        bus.subscribe('order:changed', self._on_order_changed)

    @classmethod
    def create(
        cls,
        settings: Optional[UplinkSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[LogicalClock] = None,
        location: Optional[Location] = None,
        persistent_backend: Optional[StorageBackend] = None,
        session_backend: Optional[StorageBackend] = None
    ) -> 'UplinkApp':
        """Build the default component graph for `settings`."""
        settings = settings or UplinkSettings()
        clock = clock or LogicalClock.live()
        bus = EventBus()

        if persistent_backend is None:
            persistent_backend = SqliteBackend(settings.storage_path) if settings.storage_path else MemoryBackend()
        if session_backend is None:
            session_backend = MemoryBackend()

        fetcher = HttpFetcher(
            base_url=settings.base_url,
            asset_version=settings.effective_asset_version,
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
            transport=transport
        )
        cache = CacheOrchestrator(
            fetcher,
            KeyedPersistentStore(persistent_backend, namespace=CACHE_NAMESPACE),
            clock=clock,
            schema_version=settings.schema_version
        )
        gate = AccessGateController(
            KeyedPersistentStore(session_backend, namespace=SESSION_NAMESPACE),
            bus,
            hasher=Sha256Hasher(secure_context=is_secure_origin(settings.base_url))
        )
        return cls(
            bus=bus,
            cache=cache,
            gate=gate,
            navigation=NavigationController(bus, location),
            episodes=EpisodeService(
                cache, ContentNormalizer(clock),
                ttl_ms=settings.episodes_ttl_ms, max_retries=settings.max_retries
            ),
            stats=StatsService(
                cache,
                stats_ttl_ms=settings.stats_ttl_ms,
                config_ttl_ms=settings.config_ttl_ms,
                max_retries=settings.max_retries
            ),
            progress=ProgressService(KeyedPersistentStore(persistent_backend, namespace=PROGRESS_NAMESPACE), bus),
            countdown=Countdown(clock, bus),
            clock=clock
        )

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def cache(self) -> CacheOrchestrator:
        return self._cache

    @property
    def gate(self) -> AccessGateController:
        return self._gate

    @property
    def navigation(self) -> NavigationController:
        return self._navigation

    @property
    def episodes(self) -> EpisodeService:
        return self._episodes

    @property
    def stats(self) -> StatsService:
        return self._stats

    @property
    def progress(self) -> ProgressService:
        return self._progress

    @property
    def countdown(self) -> Countdown:
        return self._countdown

    # =========================================================================
    # LOAD SEQUENCE
    # =========================================================================

    async def start(self, location: Optional[Location] = None) -> AppState:
        """Run the load sequence; stops early while the gate is closed."""
        if location is not None:
            self._navigation.set_location(location)
        self._state.is_loading = True
        self._state.load_error = None
        self._bus.publish('app:loading')

        try:
            logger.info("Loading config...")
            config = await self._stats.get_config()
            self._state.config = config

            gate_state = self._gate.enforce(config, self._navigation.location)
            if gate_state is not GateState.OPEN:
                self._state.is_loading = False
                return self._state

            await self.load_and_render()
        except Exception as e:
            self.handle_load_error(e)
        return self._state

    async def load_and_render(self) -> None:
        """Fetch episodes and stats, then route. Requires an open gate."""
        if not self._gate.is_open:
            logger.warning("Load requested while the access gate is %s; ignored", self._gate.state.value)
            return

        self._state.is_loading = True
        logger.info("Loading data...")
        episodes, stats = await asyncio.gather(
            self._episodes.get_all(),
            self._stats.get_stats()
        )
        self._apply(episodes, stats)

        self._navigation.handle_route()
        self._state.is_loading = False
        logger.info("System ready: %d episodes", len(episodes))
        self._bus.publish('app:ready', {'episodes': len(episodes), 'phase': stats.get('phase')})

    async def unlock(self, passphrase: str = '') -> GateAttempt:
        """Submit the gate passphrase and, once open, continue loading."""
        if self._gate.requires_passphrase:
            attempt = await self._gate.submit(passphrase)
        else:
            attempt = self._gate.acknowledge()
        if attempt.accepted and self._state.stats is None:
            try:
                await self.load_and_render()
            except Exception as e:
                self.handle_load_error(e)
        return attempt

    async def refresh(self) -> bool:
        """Force fresh episodes and stats (config stays cached)."""
        if not self._gate.is_open:
            logger.warning("Refresh requested while the access gate is %s; ignored", self._gate.state.value)
            return False

        self._episodes.reload()
        self._stats.reload_stats()
        try:
            episodes, stats = await asyncio.gather(
                self._episodes.get_all(),
                self._stats.get_stats()
            )
        except Exception as e:
            logger.error("Live refresh failed: %s", e)
            self._bus.publish('app:refresh_failed', {'error': e, 'code': error_code_of(e)})
            return False

        self._apply(episodes, stats)
        self._bus.publish('app:refreshed', {'episodes': len(episodes)})
        return True

    async def retry(self) -> AppState:
        """Manual retry after a fatal failure: a full reload, same session."""
        self._gate.reset()
        self._state = AppState(
            current_page=self._state.current_page,
            current_order=self._state.current_order
        )
        self._episodes.clear_memo()
        self._stats.clear_memo()
        return await self.start()

    def handle_load_error(self, error: BaseException) -> LoadFailure:
        logger.error("Failed to load data: %s", error)
        failure = LoadFailure(
            code=error_code_of(error),
            message=str(error) or type(error).__name__,
            occurred_at=self._clock.now().isoformat()
        )
        self._state.is_loading = False
        self._state.load_error = failure
        self._bus.publish('app:error', {'error': error, 'failure': failure})
        return failure

    # -------------------------------------------------------------------------

    def _apply(self, episodes: Tuple[EpisodeRecord, ...], stats: dict) -> None:
        config = self._state.config
        if config is not None and not StatsService.phase_is_known(stats, config):
            logger.warning("Stats phase %r is not defined in config", stats.get('phase'))

        self._state.episodes = episodes
        self._state.stats = stats
        self._countdown.start(stats.get('next_episode_date'))

        if episodes:
            latest = episodes[-1]
            current = stats.get('current_episode') or latest.sequence_number
            self._progress.announce_live(current, latest.title)

    def _on_navigate(self, payload: Any) -> None:
        self._state.current_page = PageId.parse(payload.get('page'))

    def _on_order_changed(self, payload: Any) -> None:
        self._state.current_order = SortOrder(payload.get('order'))
