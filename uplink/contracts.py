"""
UPLINK Client Contracts

Immutable data structures shared by the client core.

BOUNDARY: everything the normalizer produces and the cache stores is one of
these types. Field values are JSON-native so every record survives a round
trip through the persistent tier via to_dict()/from_dict().
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple
from enum import Enum
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit


# =============================================================================
# ENUMS
# =============================================================================

class PageId(Enum):
    """Pages of the client. LIVE is the start page."""
    LIVE = "live"
    PROTOKOLL = "protokoll"
    DOSSIERS = "dossiers"
    INFO = "info"

    @classmethod
    def default(cls) -> 'PageId':
        return cls.LIVE

    @classmethod
    def parse(cls, value: Any) -> Optional['PageId']:
        """PageId for a raw value, None if unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class SortOrder(Enum):
    """Episode list ordering."""
    NEWEST = "newest"
    CHRONO = "chrono"
    PHASE = "phase"


class GateState(Enum):
    """Access gate states."""
    CLOSED = "closed"
    AWAITING_INPUT = "awaiting_input"
    OPEN = "open"


class MessageKind(Enum):
    SYSTEM = "system"
    DIALOGUE = "dialogue"


# =============================================================================
# CACHE CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class CacheEntry:
    """A cached document payload with its age and schema stamp."""
    key: str
    payload: Any
    fetched_at: int  # epoch milliseconds
    schema_version: str

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.fetched_at

    def is_valid(self, now_ms: int, ttl_ms: int, schema_version: str) -> bool:
        """Valid only within TTL and under the current schema version."""
        if self.schema_version != schema_version:
            return False
        return self.age_ms(now_ms) < ttl_ms


@dataclass(frozen=True)
class FetchOptions:
    """
    Options for CacheOrchestrator.fetch().

    `restore` rebuilds a payload read back from the persistent tier (which
    only holds JSON) into the shape `transform` produces.
    """
    use_cache: bool = True
    ttl_ms: int = 3_600_000
    validator: Optional[Callable[[Any], bool]] = None
    transform: Optional[Callable[[Any], Any]] = None
    max_retries: int = 3
    restore: Optional[Callable[[Any], Any]] = None


# =============================================================================
# EPISODE CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class MessageRecord:
    """A single chat or system line within an episode."""
    kind: MessageKind
    author: Optional[str]
    text: str
    timestamp: str  # ISO-8601 UTC
    analyst_note: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'author': self.author,
            'text': self.text,
            'timestamp': self.timestamp,
            'analyst_note': self.analyst_note
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MessageRecord':
        return cls(
            kind=MessageKind(data['kind']),
            author=data.get('author'),
            text=data.get('text', ''),
            timestamp=data['timestamp'],
            analyst_note=data.get('analyst_note')
        )


@dataclass(frozen=True)
class TerminalBlock:
    """Terminal output shown after the message at `after_message`."""
    after_message: Optional[int]
    owner: Optional[str]
    content: str

    def to_dict(self) -> dict:
        return {
            'after_message': self.after_message,
            'owner': self.owner,
            'content': self.content
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'TerminalBlock':
        return cls(
            after_message=data.get('after_message'),
            owner=data.get('owner'),
            content=data.get('content', '')
        )


@dataclass(frozen=True)
class Note:
    """Episode-level analyst note."""
    text: str
    author: Optional[str] = None

    def to_dict(self) -> dict:
        return {'text': self.text, 'author': self.author}

    @classmethod
    def from_dict(cls, data: dict) -> 'Note':
        return cls(text=data.get('text', ''), author=data.get('author'))


@dataclass(frozen=True)
class EpisodeRecord:
    """
    Canonical episode.

    IMMUTABLE:
    ==========
    Built once by the normalizer, replaced wholesale on reload. Optional
    structures are always present as (possibly empty) containers.
    """
    sequence_number: int
    date: Optional[str]
    title: str
    messages: Tuple[MessageRecord, ...] = field(default_factory=tuple)
    terminal_blocks: Tuple[TerminalBlock, ...] = field(default_factory=tuple)
    score_delta: Dict[str, float] = field(default_factory=dict)
    metrics_update: Dict[str, float] = field(default_factory=dict)
    state_snapshot: Optional[dict] = None
    analyst_notes: Tuple[Note, ...] = field(default_factory=tuple)
    phase: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.sequence_number, int) or self.sequence_number < 1:
            raise ValueError(f"sequence_number must be a positive int, got {self.sequence_number!r}")

    @property
    def label(self) -> str:
        """Display label, e.g. EP.007."""
        return f"EP.{self.sequence_number:03d}"

    def to_dict(self) -> dict:
        return {
            'sequence_number': self.sequence_number,
            'date': self.date,
            'title': self.title,
            'messages': [m.to_dict() for m in self.messages],
            'terminal_blocks': [b.to_dict() for b in self.terminal_blocks],
            'score_delta': dict(self.score_delta),
            'metrics_update': dict(self.metrics_update),
            'state_snapshot': self.state_snapshot,
            'analyst_notes': [n.to_dict() for n in self.analyst_notes],
            'phase': self.phase,
            'extra': dict(self.extra)
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'EpisodeRecord':
        return cls(
            sequence_number=data['sequence_number'],
            date=data.get('date'),
            title=data.get('title', ''),
            messages=tuple(MessageRecord.from_dict(m) for m in data.get('messages', [])),
            terminal_blocks=tuple(TerminalBlock.from_dict(b) for b in data.get('terminal_blocks', [])),
            score_delta=dict(data.get('score_delta') or {}),
            metrics_update=dict(data.get('metrics_update') or {}),
            state_snapshot=data.get('state_snapshot'),
            analyst_notes=tuple(Note.from_dict(n) for n in data.get('analyst_notes', [])),
            phase=data.get('phase'),
            extra=dict(data.get('extra') or {})
        )


def episodes_from_dicts(items: Any) -> Tuple[EpisodeRecord, ...]:
    """Rebuild persisted episodes (restore hook for the cache)."""
    return tuple(EpisodeRecord.from_dict(item) for item in items)


# =============================================================================
# SESSION / APP CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class Location:
    """The addressable part of the client URL: path, query and fragment."""
    path: str = "/"
    query: str = ""
    fragment: str = ""

    @classmethod
    def parse(cls, url: str) -> 'Location':
        parts = urlsplit(url)
        return cls(path=parts.path or "/", query=parts.query, fragment=parts.fragment)

    def query_param(self, name: str) -> Optional[str]:
        values = parse_qs(self.query, keep_blank_values=True).get(name)
        return values[0] if values else None

    def with_fragment(self, fragment: str) -> 'Location':
        return Location(path=self.path, query=self.query, fragment=fragment)

    def with_query(self, **params: str) -> 'Location':
        return Location(path=self.path, query=urlencode(params), fragment=self.fragment)

    def to_url(self) -> str:
        return urlunsplit(('', '', self.path, self.query, self.fragment))


@dataclass(frozen=True)
class GateSession:
    """Gate unlock state for the current session."""
    expected_hash: Optional[str]
    unlocked: bool


@dataclass(frozen=True)
class GateAttempt:
    """Outcome of one passphrase submission."""
    accepted: bool
    state: GateState
    reason: Optional[str] = None  # "missing" | "mismatch" | "secure_context"
    message: Optional[str] = None


@dataclass(frozen=True)
class LoadFailure:
    """Fatal load failure shown instead of any page."""
    code: str
    message: str
    occurred_at: str
    retry: str = "manual"

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'message': self.message,
            'occurred_at': self.occurred_at,
            'retry': self.retry
        }
