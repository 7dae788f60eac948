"""
Cache Orchestrator
==================

Two-tier document cache: in-memory entries in front of a persistent store.

GUARANTEES:
- An entry is served only within its TTL and under the current schema version
- At most one network request per key is outstanding; concurrent callers
  share its result
- Transport failures are retried with exponential backoff; status and
  validation failures are terminal
- Failed or rejected fetches never reach either tier
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import asyncio
import logging

from .clock import LogicalClock
from .contracts import CacheEntry, FetchOptions
from .errors import TransportError, ValidationError
from .fetcher import HttpFetcher
from .storage import KeyedPersistentStore

logger = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 1.0


@dataclass(frozen=True)
class CacheStats:
    """Counters since construction."""
    memory_hits: int
    persistent_hits: int
    misses: int
    coalesced: int
    network_calls: int
    failures: int
    entries: int

    @property
    def hit_rate(self) -> float:
        total = self.memory_hits + self.persistent_hits + self.misses
        return (self.memory_hits + self.persistent_hits) / total if total > 0 else 0.0


class CacheOrchestrator:
    """
    Fetches documents through memory tier, persistent tier, in-flight
    requests and finally the network, in that order.

    The memory map and the persistent store are mutated only here.
    """

    def __init__(
        self,
        fetcher: HttpFetcher,
        store: KeyedPersistentStore,
        clock: Optional[LogicalClock] = None,
        schema_version: str = "1.2"
    ):
        self._fetcher = fetcher
        self._store = store
        self._clock = clock or LogicalClock.live()
        self._schema_version = schema_version
        self._memory: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._memory_hits = 0
        self._persistent_hits = 0
        self._misses = 0
        self._coalesced = 0
        self._network_calls = 0
        self._failures = 0

    @property
    def schema_version(self) -> str:
        return self._schema_version

    async def fetch(self, key: str, options: Optional[FetchOptions] = None) -> Any:
        """Payload for `key`, from cache when valid, else from the network."""
        options = options or FetchOptions()

        if options.use_cache:
            entry = self._memory.get(key)
            if entry is not None:
                if self._is_valid(entry, options):
                    self._memory_hits += 1
                    return entry.payload
                del self._memory[key]

            entry = self._read_persistent(key, options)
            if entry is not None:
                self._persistent_hits += 1
                self._memory[key] = entry
                return entry.payload

        pending = self._in_flight.get(key)
        if pending is not None:
            self._coalesced += 1
            return await asyncio.shield(pending)

        self._misses += 1
        task = asyncio.ensure_future(self._load(key, options))
        self._in_flight[key] = task
        task.add_done_callback(lambda t, k=key: self._settle(k, t))
        # Shielded: a caller giving up must not cancel the write-back.
        return await asyncio.shield(task)

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop `key` from both tiers, or everything when no key is given."""
        if key is None:
            self._memory.clear()
            self._store.clear_namespace()
            logger.info("Cache cleared")
        else:
            self._memory.pop(key, None)
            self._store.remove(key)
            logger.debug("Cache invalidated for %s", key)

    def peek(self, key: str) -> Optional[CacheEntry]:
        """In-memory entry for `key` regardless of validity."""
        return self._memory.get(key)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def stats(self) -> CacheStats:
        return CacheStats(
            memory_hits=self._memory_hits,
            persistent_hits=self._persistent_hits,
            misses=self._misses,
            coalesced=self._coalesced,
            network_calls=self._network_calls,
            failures=self._failures,
            entries=len(self._memory)
        )

    # =========================================================================
    # NETWORK PATH
    # =========================================================================

    async def _load(self, key: str, options: FetchOptions) -> Any:
        data = await self._fetch_with_retry(key, max(1, options.max_retries))

        if options.validator is not None:
            try:
                accepted = options.validator(data)
            except Exception as e:
                raise ValidationError(f"Validation failed for {key}: {e}") from e
            if not accepted:
                raise ValidationError(f"Validation failed for {key}")

        payload = options.transform(data) if options.transform is not None else data

        if options.use_cache:
            entry = CacheEntry(
                key=key,
                payload=payload,
                fetched_at=self._clock.now_ms(),
                schema_version=self._schema_version
            )
            self._memory[key] = entry
            self._write_persistent(entry)
        return payload

    async def _fetch_with_retry(self, key: str, attempts: int) -> Any:
        for attempt in range(attempts):
            self._network_calls += 1
            try:
                return await self._fetcher.get_json(key)
            except TransportError as e:
                if attempt == attempts - 1:
                    logger.error("Fetching %s failed after %d attempts: %s", key, attempts, e)
                    raise
                delay = BACKOFF_BASE_SECONDS * (2 ** attempt)
                logger.warning(
                    "Fetching %s failed (attempt %d/%d): %s; retrying in %.0fs",
                    key, attempt + 1, attempts, e, delay
                )
                await self._clock.sleep(delay)

    def _settle(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if task.cancelled():
            return
        if task.exception() is not None:
            self._failures += 1

    # =========================================================================
    # PERSISTENT TIER
    # =========================================================================

    def _is_valid(self, entry: CacheEntry, options: FetchOptions) -> bool:
        return entry.is_valid(self._clock.now_ms(), options.ttl_ms, self._schema_version)

    def _read_persistent(self, key: str, options: FetchOptions) -> Optional[CacheEntry]:
        record = self._store.get(key)
        if not isinstance(record, dict):
            return None

        if record.get('version') != self._schema_version:
            # Written under another schema: never usable again.
            self._store.remove(key)
            return None

        timestamp = record.get('timestamp')
        if not isinstance(timestamp, int) or 'data' not in record:
            self._store.remove(key)
            return None

        entry = CacheEntry(
            key=key,
            payload=record['data'],
            fetched_at=timestamp,
            schema_version=record['version']
        )
        if not self._is_valid(entry, options):
            return None

        if options.restore is not None:
            try:
                payload = options.restore(entry.payload)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Discarding unreadable cached %s: %s", key, e)
                self._store.remove(key)
                return None
            entry = CacheEntry(key, payload, entry.fetched_at, entry.schema_version)
        return entry

    def _write_persistent(self, entry: CacheEntry) -> None:
        stored = self._store.set(entry.key, {
            'version': entry.schema_version,
            'timestamp': entry.fetched_at,
            'data': _jsonable(entry.payload)
        })
        if not stored:
            logger.warning("Persistent cache write failed for %s; memory tier only", entry.key)


def _jsonable(payload: Any) -> Any:
    """JSON-native form of a payload (records via their to_dict())."""
    if hasattr(payload, 'to_dict'):
        return payload.to_dict()
    if isinstance(payload, (list, tuple)):
        return [_jsonable(item) for item in payload]
    return payload
