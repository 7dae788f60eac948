"""
Episode Normalizer
==================

Converts the raw episodes document into canonical EpisodeRecords.

GUARANTEES:
- Order preserving; output length <= input length
- Every record carries all containers (possibly empty), never None
- Every message has a timestamp; synthetic ones are reproducible when the
  episode has a date
- A malformed item is dropped and recorded, never aborts the batch
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date as date_type, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from .clock import LogicalClock
from .contracts import EpisodeRecord, MessageKind, MessageRecord, Note, TerminalBlock

logger = logging.getLogger(__name__)

# Fixed reference time-of-day for synthetic timestamps.
SYNTHETIC_BASE_TIME = time(3, 14, 0, tzinfo=timezone.utc)
SYNTHETIC_STEP = timedelta(minutes=3)

# canonical field -> alternate spelling; the canonical spelling wins
FIELD_ALIASES: Dict[str, str] = {
    'score_delta': 'scoreDelta',
    'metrics_update': 'metricsUpdate',
    'state_snapshot': 'stateSnapshot',
    'terminal_blocks': 'terminalBlocks',
    'analyst_notes': 'analystNotes',
}

_CONSUMED_KEYS = frozenset(
    ['episode', 'sequence_number', 'date', 'title', 'phase', 'messages']
    + list(FIELD_ALIASES.keys())
    + list(FIELD_ALIASES.values())
)


@dataclass(frozen=True)
class DroppedItem:
    """Record of an input item that was dropped during normalization."""
    index: int
    reason: str
    message_index: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'index': self.index,
            'reason': self.reason,
            'message_index': self.message_index
        }


@dataclass
class NormalizationReport:
    """
    Complete report of one normalization pass.

    Every top-level input item is either in `episodes` or in `dropped`.
    """
    processed_count: int = 0
    episodes: List[EpisodeRecord] = field(default_factory=list)
    dropped: List[DroppedItem] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.episodes)

    @property
    def dropped_count(self) -> int:
        return len([d for d in self.dropped if d.message_index is None])

    def to_dict(self) -> dict:
        return {
            'processed_count': self.processed_count,
            'success_count': self.success_count,
            'dropped_count': self.dropped_count,
            'dropped': [d.to_dict() for d in self.dropped]
        }


class ContentNormalizer:
    """
    Normalizes raw episode objects.

    NO INTERPRETATION:
    - Does not reorder episodes
    - Does not rewrite message text
    - Unknown keys are carried in `extra`, untouched
    """

    def __init__(self, clock: Optional[LogicalClock] = None):
        self._clock = clock or LogicalClock.live()

    def normalize_episodes(self, raw: Any) -> Tuple[EpisodeRecord, ...]:
        """Canonical episodes for a raw document (cache transform hook)."""
        return tuple(self.normalize(raw).episodes)

    def normalize(self, raw: Any) -> NormalizationReport:
        """Normalize a raw episodes document into a report."""
        if not isinstance(raw, list):
            logger.debug("Episodes document is not a list (%s); nothing to normalize", type(raw).__name__)
            return NormalizationReport()

        report = NormalizationReport(processed_count=len(raw))
        for index, item in enumerate(raw):
            if not isinstance(item, Mapping):
                report.dropped.append(DroppedItem(index=index, reason=f"not an object: {type(item).__name__}"))
                logger.debug("Dropped episode at index %d: not an object", index)
                continue
            report.episodes.append(self._normalize_episode(item, index, report))
        return report

    def _normalize_episode(
        self,
        raw: Mapping[str, Any],
        index: int,
        report: NormalizationReport
    ) -> EpisodeRecord:
        episode_date = raw.get('date') or None
        if episode_date is not None and not isinstance(episode_date, str):
            episode_date = str(episode_date)

        base = self._timestamp_base(episode_date)

        messages = []
        raw_messages = raw.get('messages')
        if not isinstance(raw_messages, list):
            raw_messages = []
        for i, msg in enumerate(raw_messages):
            if not isinstance(msg, Mapping):
                report.dropped.append(DroppedItem(index=index, reason="message is not an object", message_index=i))
                continue
            messages.append(self._normalize_message(msg, base + SYNTHETIC_STEP * i))

        title = raw.get('title')
        phase = raw.get('phase')

        return EpisodeRecord(
            sequence_number=self._sequence_number(raw, index),
            date=episode_date,
            title=title if isinstance(title, str) else ('' if title is None else str(title)),
            messages=tuple(messages),
            terminal_blocks=self._terminal_blocks(_coalesce(raw, 'terminal_blocks')),
            score_delta=_numeric_map(_coalesce(raw, 'score_delta')),
            metrics_update=_numeric_map(_coalesce(raw, 'metrics_update')),
            state_snapshot=_mapping_or_none(_coalesce(raw, 'state_snapshot')),
            analyst_notes=self._notes(_coalesce(raw, 'analyst_notes')),
            phase=phase if isinstance(phase, str) and phase else None,
            extra={k: v for k, v in raw.items() if k not in _CONSUMED_KEYS}
        )

    # -------------------------------------------------------------------------
    # Field helpers
    # -------------------------------------------------------------------------

    def _sequence_number(self, raw: Mapping[str, Any], index: int) -> int:
        """An explicit positive integer wins over array position."""
        for key in ('episode', 'sequence_number'):
            value = raw.get(key)
            if isinstance(value, int) and not isinstance(value, bool) and value > 0:
                return value
        return index + 1

    def _timestamp_base(self, episode_date: Optional[str]) -> datetime:
        parsed = _parse_date(episode_date)
        if parsed is not None:
            return datetime.combine(parsed, SYNTHETIC_BASE_TIME)
        return self._clock.now().replace(microsecond=0)

    def _normalize_message(self, msg: Mapping[str, Any], synthetic: datetime) -> MessageRecord:
        timestamp = msg.get('timestamp')
        if not isinstance(timestamp, str) or not timestamp:
            timestamp = _isoformat(synthetic)

        raw_kind = msg.get('type', msg.get('kind'))
        kind = MessageKind.SYSTEM if raw_kind == MessageKind.SYSTEM.value else MessageKind.DIALOGUE

        author = msg.get('author')
        text = msg.get('text')
        note = msg.get('analyst_note')
        return MessageRecord(
            kind=kind,
            author=author if isinstance(author, str) and author else None,
            text=text if isinstance(text, str) else ('' if text is None else str(text)),
            timestamp=timestamp,
            analyst_note=note if isinstance(note, str) and note else None
        )

    def _terminal_blocks(self, value: Any) -> Tuple[TerminalBlock, ...]:
        if not isinstance(value, list):
            return ()
        blocks = []
        for block in value:
            if not isinstance(block, Mapping):
                continue
            after = block.get('after_message')
            try:
                after = int(after) if after is not None and not isinstance(after, bool) else None
            except (TypeError, ValueError, OverflowError):
                after = None
            owner = block.get('owner')
            content = block.get('content')
            blocks.append(TerminalBlock(
                after_message=after,
                owner=owner if isinstance(owner, str) and owner else None,
                content=content if isinstance(content, str) else ('' if content is None else str(content))
            ))
        return tuple(blocks)

    def _notes(self, value: Any) -> Tuple[Note, ...]:
        if not isinstance(value, list):
            return ()
        notes = []
        for note in value:
            if isinstance(note, str):
                notes.append(Note(text=note))
            elif isinstance(note, Mapping) and isinstance(note.get('text'), str):
                author = note.get('author')
                notes.append(Note(text=note['text'], author=author if isinstance(author, str) else None))
        return tuple(notes)


def _coalesce(raw: Mapping[str, Any], canonical: str) -> Any:
    """Canonical spelling if present, else the alternate."""
    value = raw.get(canonical)
    if value is not None:
        return value
    return raw.get(FIELD_ALIASES[canonical])


def _numeric_map(value: Any) -> Dict[str, float]:
    if not isinstance(value, Mapping):
        return {}
    return {
        str(k): v for k, v in value.items()
        if isinstance(v, (int, float)) and not isinstance(v, bool)
    }


def _mapping_or_none(value: Any) -> Optional[dict]:
    return dict(value) if isinstance(value, Mapping) else None


def _parse_date(value: Optional[str]) -> Optional[date_type]:
    if not value:
        return None
    try:
        return date_type.fromisoformat(value[:10])
    except ValueError:
        return None


def _isoformat(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
