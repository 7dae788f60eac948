"""
Document Services

Thin, memoizing accessors over the cache for the three documents, plus
reading progress kept in the persistent store.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from .cache import CacheOrchestrator
from .contracts import EpisodeRecord, FetchOptions, SortOrder, episodes_from_dicts
from .documents import is_config_document, is_episode_list, is_stats_document
from .events import EventBus
from .normalizer import ContentNormalizer
from .storage import KeyedPersistentStore

logger = logging.getLogger(__name__)

EPISODES_KEY = 'data/dialogs.json'
STATS_KEY = 'data/stats.json'
CONFIG_KEY = 'data/config.json'

FIVE_MINUTES_MS = 300_000
ONE_HOUR_MS = 3_600_000


# =============================================================================
# EPISODES
# =============================================================================

@dataclass(frozen=True)
class EpisodeMetadata:
    sequence_number: int
    label: str
    message_count: int
    has_terminal_blocks: bool


@dataclass(frozen=True)
class PhaseGroup:
    """Episodes of one story phase for the grouped archive view."""
    phase_id: str
    label: str
    days: Tuple[int, int]
    is_current: bool
    episodes: Tuple[EpisodeRecord, ...]


class EpisodeService:
    """Episode queries over the normalized episodes document."""

    def __init__(
        self,
        cache: CacheOrchestrator,
        normalizer: ContentNormalizer,
        ttl_ms: int = FIVE_MINUTES_MS,
        max_retries: int = 3
    ):
        self._cache = cache
        self._normalizer = normalizer
        self._ttl_ms = ttl_ms
        self._max_retries = max_retries
        self._episodes: Optional[Tuple[EpisodeRecord, ...]] = None

    async def get_all(self) -> Tuple[EpisodeRecord, ...]:
        if self._episodes is not None:
            return self._episodes
        self._episodes = await self._cache.fetch(EPISODES_KEY, FetchOptions(
            use_cache=True,
            ttl_ms=self._ttl_ms,
            validator=is_episode_list,
            transform=self._normalizer.normalize_episodes,
            max_retries=self._max_retries,
            restore=episodes_from_dicts
        ))
        return self._episodes

    async def get_latest(self) -> Optional[EpisodeRecord]:
        episodes = await self.get_all()
        return episodes[-1] if episodes else None

    async def get_by_number(self, sequence_number: int) -> Optional[EpisodeRecord]:
        for episode in await self.get_all():
            if episode.sequence_number == sequence_number:
                return episode
        return None

    async def get_by_phase(self, phase_id: str) -> List[EpisodeRecord]:
        return [ep for ep in await self.get_all() if ep.phase == phase_id]

    def reload(self) -> None:
        """Forget the memo and both cache tiers for episodes."""
        self._episodes = None
        self._cache.invalidate(EPISODES_KEY)

    def clear_memo(self) -> None:
        self._episodes = None

    @staticmethod
    def sort(episodes: Sequence[EpisodeRecord], order: SortOrder = SortOrder.NEWEST) -> List[EpisodeRecord]:
        ordered = list(episodes)
        if SortOrder(order) is SortOrder.NEWEST:
            ordered.reverse()
        return ordered

    @staticmethod
    def metadata(episode: EpisodeRecord) -> EpisodeMetadata:
        return EpisodeMetadata(
            sequence_number=episode.sequence_number,
            label=episode.label,
            message_count=len(episode.messages),
            has_terminal_blocks=len(episode.terminal_blocks) > 0
        )

    @staticmethod
    def group_by_phase(
        episodes: Sequence[EpisodeRecord],
        phases: Sequence[Dict[str, Any]],
        current_phase_id: Optional[str]
    ) -> List[PhaseGroup]:
        """
        Published phases (up to and including the current one) with the
        episodes whose day (1-based position) falls in the phase's range.
        """
        ids = [p.get('id') for p in phases]
        current_index = ids.index(current_phase_id) if current_phase_id in ids else -1
        visible = list(phases[:current_index + 1])

        groups = []
        for i, phase in enumerate(visible):
            days = phase.get('days') or [0, 0]
            start, end = int(days[0]), int(days[-1])
            members = tuple(ep for day, ep in enumerate(episodes, start=1) if start <= day <= end)
            groups.append(PhaseGroup(
                phase_id=phase.get('id'),
                label=phase.get('label') or phase.get('id'),
                days=(start, end),
                is_current=i == len(visible) - 1,
                episodes=members
            ))
        return groups


# =============================================================================
# STATS & CONFIG
# =============================================================================

class StatsService:
    """Stats and config documents with derived lookups."""

    def __init__(
        self,
        cache: CacheOrchestrator,
        stats_ttl_ms: int = FIVE_MINUTES_MS,
        config_ttl_ms: int = ONE_HOUR_MS,
        max_retries: int = 3
    ):
        self._cache = cache
        self._stats_ttl_ms = stats_ttl_ms
        self._config_ttl_ms = config_ttl_ms
        self._max_retries = max_retries
        self._stats: Optional[dict] = None
        self._config: Optional[dict] = None

    async def get_stats(self) -> dict:
        if self._stats is None:
            self._stats = await self._cache.fetch(STATS_KEY, FetchOptions(
                ttl_ms=self._stats_ttl_ms,
                validator=is_stats_document,
                max_retries=self._max_retries
            ))
        return self._stats

    async def get_config(self) -> dict:
        if self._config is None:
            self._config = await self._cache.fetch(CONFIG_KEY, FetchOptions(
                ttl_ms=self._config_ttl_ms,
                validator=is_config_document,
                max_retries=self._max_retries
            ))
        return self._config

    async def get_phases(self) -> List[dict]:
        config = await self.get_config()
        return list((config.get('story_arc') or {}).get('phases') or [])

    async def get_score_categories(self) -> List[dict]:
        config = await self.get_config()
        return list((config.get('scoring') or {}).get('categories') or [])

    async def get_metrics(self) -> List[dict]:
        config = await self.get_config()
        return list((config.get('scoring') or {}).get('metrics') or [])

    async def get_current_phase(self) -> Optional[dict]:
        """Phase named by stats, else the phase whose day range holds current_day."""
        stats = await self.get_stats()
        phases = await self.get_phases()

        phase_id = stats.get('phase')
        for phase in phases:
            if phase.get('id') == phase_id:
                return phase

        try:
            current_day = int(stats.get('current_day') or 1)
        except (TypeError, ValueError):
            current_day = 1
        for phase in phases:
            days = phase.get('days') or []
            if len(days) >= 2 and days[0] <= current_day <= days[1]:
                return phase
        return None

    @staticmethod
    def phase_is_known(stats: dict, config: dict) -> bool:
        """Whether the stats phase id references a phase in the config."""
        phase_id = stats.get('phase')
        phases = (config.get('story_arc') or {}).get('phases') or []
        return any(p.get('id') == phase_id for p in phases)

    def clear_memo(self) -> None:
        self._stats = None
        self._config = None

    def reload_stats(self) -> None:
        self._stats = None
        self._cache.invalidate(STATS_KEY)

    def reload(self) -> None:
        self.reload_stats()
        self._config = None
        self._cache.invalidate(CONFIG_KEY)


# =============================================================================
# READING PROGRESS
# =============================================================================

class ProgressService:
    """Last-read episode, bookmarks and last-seen live episode."""

    LAST_READ_KEY = 'last_read_episode'
    BOOKMARKS_KEY = 'bookmarks'
    LIVE_SEEN_KEY = 'live_last_episode_seen'

    def __init__(self, store: KeyedPersistentStore, bus: EventBus):
        self._store = store
        self._bus = bus

    def get_last_read(self) -> Optional[int]:
        return self._store.get(self.LAST_READ_KEY, None)

    def set_last_read(self, sequence_number: int) -> None:
        self._store.set(self.LAST_READ_KEY, sequence_number)
        self._bus.publish('progress:updated', {'sequence_number': sequence_number})

    def track_view(self, sequence_number: int) -> None:
        """Record a view; progress only moves forward."""
        last_read = self.get_last_read()
        if not last_read or sequence_number > last_read:
            self.set_last_read(sequence_number)

    def get_bookmarks(self) -> List[int]:
        bookmarks = self._store.get(self.BOOKMARKS_KEY, [])
        return list(bookmarks) if isinstance(bookmarks, list) else []

    def toggle_bookmark(self, sequence_number: int) -> bool:
        """Flip the bookmark; returns the new state."""
        bookmarks = self.get_bookmarks()
        if sequence_number in bookmarks:
            bookmarks.remove(sequence_number)
            self._store.set(self.BOOKMARKS_KEY, bookmarks)
            self._bus.publish('bookmark:removed', {'sequence_number': sequence_number})
            return False
        bookmarks.append(sequence_number)
        self._store.set(self.BOOKMARKS_KEY, bookmarks)
        self._bus.publish('bookmark:added', {'sequence_number': sequence_number})
        return True

    def is_bookmarked(self, sequence_number: int) -> bool:
        return sequence_number in self.get_bookmarks()

    def clear_all(self) -> None:
        self._store.remove(self.LAST_READ_KEY)
        self._store.remove(self.BOOKMARKS_KEY)
        self._bus.publish('progress:cleared')

    def announce_live(self, sequence_number: int, title: str = '') -> bool:
        """
        Remember the newest live episode seen; returns True (and publishes
        live:new_episode) when it is newer than the previous visit's.
        """
        seen = self._store.get(self.LIVE_SEEN_KEY, 0)
        is_new = isinstance(seen, int) and seen > 0 and sequence_number > seen
        if is_new:
            self._bus.publish('live:new_episode', {'sequence_number': sequence_number, 'title': title})
        self._store.set(self.LIVE_SEEN_KEY, sequence_number)
        return is_new
