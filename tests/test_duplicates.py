"""
test_duplicates.py — Tests for services/duplicates.py.

Pure functions, no DB. Covers the similarity measure, the time window,
the linking rule and both tie-break modes.
"""

from datetime import datetime, timedelta, timezone

import pytest

from campus_safety.models.incident import CampusLocation, Incident, IncidentDraft, IncidentType
from campus_safety.services.duplicates import (
    TieBreak,
    is_corroborating,
    link_duplicates,
    similarity,
    within_window,
)

T0 = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)


def _incident(id_, description="small fire near gate", location=CampusLocation.GATE_A,
              minutes=0, priority=1, duplicate_count=1) -> Incident:
    return Incident(
        id=id_,
        location=location,
        type=IncidentType.FIRE,
        description=description,
        timestamp=T0 + timedelta(minutes=minutes),
        priority=priority,
        duplicate_count=duplicate_count,
    )


def _draft(description="fire spotted near the gate", location=CampusLocation.GATE_A, minutes=10) -> IncidentDraft:
    return IncidentDraft(
        location=location,
        type=IncidentType.FIRE,
        description=description,
        timestamp=T0 + timedelta(minutes=minutes),
    )


# ── similarity ────────────────────────────────────────────────────────────────

class TestSimilarity:
    def test_identical_is_one(self):
        assert similarity("fire in block a", "fire in block a") == 1.0

    def test_disjoint_is_zero(self):
        assert similarity("fire", "flood") == 0.0

    def test_symmetric(self):
        a, b = "small fire near gate", "fire spotted near the gate"
        assert similarity(a, b) == similarity(b, a)

    def test_divides_by_longer_list(self):
        # fire, near, gate shared; longer side has 5 words
        assert similarity("small fire near gate", "fire spotted near the gate") == pytest.approx(0.6)

    def test_case_insensitive(self):
        assert similarity("FIRE Near Gate", "fire near gate") == 1.0

    def test_repeated_words_count_as_multiset(self):
        # "fire" appears twice on one side only once on the other
        assert similarity("fire fire", "fire smoke") == pytest.approx(0.5)

    @pytest.mark.parametrize("a,b", [("", "fire"), ("fire", ""), ("", ""), ("   ", "fire")])
    def test_empty_side_is_zero(self, a, b):
        assert similarity(a, b) == 0.0

    def test_bounded(self):
        s = similarity("a b c d", "a a a a a")
        assert 0.0 <= s <= 1.0


# ── window / corroboration ────────────────────────────────────────────────────

class TestWindow:
    def test_boundary_is_inclusive(self):
        assert within_window(T0, T0 + timedelta(minutes=30))

    def test_outside_window(self):
        assert not within_window(T0, T0 + timedelta(minutes=45))

    def test_direction_does_not_matter(self):
        assert within_window(T0 + timedelta(minutes=20), T0)


class TestCorroborating:
    def test_same_place_close_in_time_similar_text(self):
        assert is_corroborating(_incident("a"), _draft(minutes=5))

    def test_different_location_never_links(self):
        assert not is_corroborating(_incident("a"), _draft(location=CampusLocation.CANTEEN))

    def test_threshold_is_strict(self):
        # 3 of 10 words shared → exactly 0.3, not above it
        existing = _incident("a", description="fire near gate one two three four five six seven")
        draft = _draft(description="fire near gate x1 x2 x3 x4 x5 x6 x7")
        assert similarity(existing.description, draft.description) == pytest.approx(0.3)
        assert not is_corroborating(existing, draft)


# ── link_duplicates ───────────────────────────────────────────────────────────

class TestLinkDuplicates:
    def test_no_match_starts_at_one(self):
        result = link_duplicates(_draft(), [])
        assert not result.is_duplicate
        assert result.incident.priority == 1
        assert result.incident.duplicate_count == 1
        assert result.matched_ids == []

    def test_match_increments_existing_and_new(self):
        a = _incident("a")
        result = link_duplicates(_draft(minutes=5), [a])

        assert result.is_duplicate
        assert result.matched_ids == ["a"]
        [linked] = result.updated
        assert linked.duplicate_count == 2
        assert linked.priority == 2
        assert result.incident.priority == 2
        assert result.incident.duplicate_count == 2

    def test_inputs_are_not_mutated(self):
        a = _incident("a")
        link_duplicates(_draft(), [a])
        assert a.priority == 1
        assert a.duplicate_count == 1

    def test_forty_five_minutes_apart_is_not_linked(self):
        result = link_duplicates(_draft(minutes=45), [_incident("a")])
        assert not result.is_duplicate
        assert result.incidents[0].priority == 1

    def test_different_location_is_not_linked(self):
        result = link_duplicates(_draft(location=CampusLocation.GATE_B), [_incident("a")])
        assert not result.is_duplicate

    def test_unmatched_incidents_returned_unchanged(self):
        a = _incident("a")
        other = _incident("b", location=CampusLocation.CANTEEN)
        result = link_duplicates(_draft(), [a, other])
        assert result.incidents[1] == other
        assert [i.id for i in result.updated] == ["a"]

    def test_multiple_matches_max(self):
        a = _incident("a", priority=4, duplicate_count=4)
        b = _incident("b", priority=1, duplicate_count=1, minutes=2)
        result = link_duplicates(_draft(), [a, b], tie_break=TieBreak.MAX)

        assert result.matched_ids == ["a", "b"]
        assert result.incident.priority == 5
        assert result.incident.duplicate_count == 5

    def test_multiple_matches_last(self):
        a = _incident("a", priority=4, duplicate_count=4)
        b = _incident("b", priority=1, duplicate_count=1, minutes=2)
        result = link_duplicates(_draft(), [a, b], tie_break=TieBreak.LAST)

        assert result.incident.priority == 2
        assert result.incident.duplicate_count == 2

    def test_custom_window_and_threshold(self):
        result = link_duplicates(
            _draft(minutes=10), [_incident("a")],
            window=timedelta(minutes=5),
        )
        assert not result.is_duplicate

        result = link_duplicates(_draft(), [_incident("a")], threshold=0.9)
        assert not result.is_duplicate

    def test_end_to_end_gate_fire(self):
        """A at Gate A, B ten minutes later with overlapping words → B linked to A."""
        a = _incident("a", description="small fire near gate")
        b = _draft(description="fire spotted near the gate", minutes=10)

        result = link_duplicates(b, [a])

        assert result.matched_ids == ["a"]
        assert result.updated[0].duplicate_count == 2
        assert result.updated[0].priority == 2
