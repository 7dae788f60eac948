"""
Episode Normalizer Tests
========================

Canonical episodes from loosely shaped input.
"""

from datetime import datetime, timezone

from uplink.clock import LogicalClock
from uplink.contracts import EpisodeRecord, MessageKind, episodes_from_dicts
from uplink.normalizer import ContentNormalizer


def make_normalizer() -> ContentNormalizer:
    return ContentNormalizer(LogicalClock.manual(datetime(2026, 3, 5, 9, 30, 15, 500000, tzinfo=timezone.utc)))


class TestSyntheticTimestamps:
    """Messages without timestamps get reproducible ones."""

    def test_dated_episode_starts_at_0314_utc(self):
        raw = [{
            'date': '2026-03-01',
            'title': 'Contact',
            'messages': [{'author': 'NEXUS', 'text': 'hi'}, {'author': 'CIPHER', 'text': 'yo'}]
        }]

        episodes = make_normalizer().normalize_episodes(raw)

        assert len(episodes) == 1
        assert episodes[0].sequence_number == 1
        assert [m.timestamp for m in episodes[0].messages] == [
            '2026-03-01T03:14:00Z',
            '2026-03-01T03:17:00Z'
        ]

    def test_explicit_timestamp_is_kept(self):
        raw = [{'date': '2026-03-01', 'messages': [
            {'text': 'a', 'timestamp': '2026-03-01T22:00:00Z'},
            {'text': 'b'}
        ]}]

        messages = make_normalizer().normalize_episodes(raw)[0].messages

        assert messages[0].timestamp == '2026-03-01T22:00:00Z'
        assert messages[1].timestamp == '2026-03-01T03:17:00Z'

    def test_undated_episode_uses_clock_whole_seconds(self):
        raw = [{'messages': [{'text': 'a'}, {'text': 'b'}]}]

        messages = make_normalizer().normalize_episodes(raw)[0].messages

        assert messages[0].timestamp == '2026-03-05T09:30:15Z'
        assert messages[1].timestamp == '2026-03-05T09:33:15Z'

    def test_unparseable_date_falls_back_to_clock(self):
        raw = [{'date': 'gestern', 'messages': [{'text': 'a'}]}]

        episode = make_normalizer().normalize_episodes(raw)[0]

        assert episode.date == 'gestern'
        assert episode.messages[0].timestamp == '2026-03-05T09:30:15Z'

    def test_same_input_same_output(self):
        raw = [{'date': '2026-03-01', 'messages': [{'text': 'a'}]}]

        assert make_normalizer().normalize_episodes(raw) == make_normalizer().normalize_episodes(raw)


class TestEpisodeShape:

    def test_containers_always_present(self):
        episode = make_normalizer().normalize_episodes([{'title': 'Leer'}])[0]

        assert episode.messages == ()
        assert episode.terminal_blocks == ()
        assert episode.score_delta == {}
        assert episode.metrics_update == {}
        assert episode.analyst_notes == ()
        assert episode.state_snapshot is None

    def test_sequence_number_from_position(self):
        episodes = make_normalizer().normalize_episodes([{}, {}, {}])

        assert [e.sequence_number for e in episodes] == [1, 2, 3]
        assert episodes[2].label == 'EP.003'

    def test_explicit_sequence_number_wins(self):
        episodes = make_normalizer().normalize_episodes([
            {'episode': 7},
            {'sequence_number': 9},
            {'episode': 0},
            {'episode': True},
            {'episode': '12'}
        ])

        assert [e.sequence_number for e in episodes] == [7, 9, 3, 4, 5]

    def test_alternate_spellings_are_coalesced(self):
        raw = [{
            'scoreDelta': {'trust': 2},
            'metricsUpdate': {'signal': 0.5},
            'stateSnapshot': {'mood': 'calm'},
            'terminalBlocks': [{'after_message': '1', 'owner': 'sys', 'content': '> ls'}],
            'analystNotes': ['note', {'text': 'signed', 'author': 'R.'}]
        }]

        episode = make_normalizer().normalize_episodes(raw)[0]

        assert episode.score_delta == {'trust': 2}
        assert episode.metrics_update == {'signal': 0.5}
        assert episode.state_snapshot == {'mood': 'calm'}
        assert episode.terminal_blocks[0].after_message == 1
        assert episode.terminal_blocks[0].content == '> ls'
        assert [n.text for n in episode.analyst_notes] == ['note', 'signed']
        assert episode.analyst_notes[1].author == 'R.'
        assert episode.extra == {}

    def test_canonical_spelling_wins(self):
        raw = [{'score_delta': {'trust': 1}, 'scoreDelta': {'trust': 5}}]

        assert make_normalizer().normalize_episodes(raw)[0].score_delta == {'trust': 1}

    def test_empty_canonical_container_still_wins(self):
        raw = [{'title': 't', 'score_delta': {}, 'scoreDelta': {'trust': 5}, 'analyst_notes': [], 'analystNotes': ['x']}]

        episode = make_normalizer().normalize_episodes(raw)[0]

        assert episode.score_delta == {}
        assert episode.analyst_notes == ()

    def test_null_canonical_falls_back_to_alternate(self):
        raw = [{'score_delta': None, 'scoreDelta': {'trust': 5}}]

        assert make_normalizer().normalize_episodes(raw)[0].score_delta == {'trust': 5}

    def test_numeric_maps_drop_non_numbers(self):
        raw = [{'score_delta': {'trust': 1, 'flag': True, 'name': 'x', 'ratio': 0.5}}]

        assert make_normalizer().normalize_episodes(raw)[0].score_delta == {'trust': 1, 'ratio': 0.5}

    def test_unknown_keys_carried_in_extra(self):
        raw = [{'title': 'x', 'soundtrack': 'static.ogg'}]

        assert make_normalizer().normalize_episodes(raw)[0].extra == {'soundtrack': 'static.ogg'}

    def test_message_kind(self):
        raw = [{'messages': [
            {'type': 'system', 'text': 'LINK DOWN'},
            {'kind': 'system', 'text': 'LINK UP'},
            {'author': 'KAI', 'text': 'ok'}
        ]}]

        messages = make_normalizer().normalize_episodes(raw)[0].messages

        assert [m.kind for m in messages] == [MessageKind.SYSTEM, MessageKind.SYSTEM, MessageKind.DIALOGUE]
        assert messages[0].author is None
        assert messages[2].author == 'KAI'

    def test_round_trip_through_dict(self):
        episodes = make_normalizer().normalize_episodes([{
            'date': '2026-03-01',
            'messages': [{'text': 'a', 'analyst_note': 'check'}],
            'terminal_blocks': [{'content': 'x'}],
            'analyst_notes': ['n']
        }])

        assert episodes_from_dicts([e.to_dict() for e in episodes]) == episodes


class TestDroppedItems:
    """Malformed input is dropped and reported, never fatal."""

    def test_non_list_document(self):
        report = make_normalizer().normalize({'episodes': []})

        assert report.processed_count == 0
        assert report.episodes == []

    def test_non_object_items_dropped(self):
        report = make_normalizer().normalize([{'title': 'a'}, 'junk', None, {'title': 'b'}])

        assert report.processed_count == 4
        assert [e.title for e in report.episodes] == ['a', 'b']
        assert [d.index for d in report.dropped] == [1, 2]
        assert report.dropped_count == 2

    def test_position_counts_dropped_items(self):
        episodes = make_normalizer().normalize_episodes([{}, 'junk', {}])

        assert [e.sequence_number for e in episodes] == [1, 3]

    def test_non_object_message_dropped(self):
        report = make_normalizer().normalize([{'messages': [{'text': 'a'}, 42, {'text': 'b'}]}])

        assert [m.text for m in report.episodes[0].messages] == ['a', 'b']
        assert report.dropped[0].message_index == 1
        assert report.dropped_count == 0

    def test_records_are_episode_records(self):
        episodes = make_normalizer().normalize_episodes([{}])

        assert isinstance(episodes, tuple)
        assert isinstance(episodes[0], EpisodeRecord)
