"""
duplicates.py — Duplicate detection and priority escalation.

When a student reports something that has already been reported nearby
and recently, we don't want two unrelated tickets; we want the existing
ticket to climb the priority list. This module decides which existing
incidents a new report corroborates and computes the resulting counters.

A new report corroborates existing incident `e` iff:
  1. same location (exact match),
  2. |e.timestamp - new.timestamp| <= window (default 30 min),
  3. similarity(e.description, new.description) > threshold (default 0.3).

Each corroborated incident gets duplicate_count += 1 and priority += 1.
The new report inherits counters from its matches according to TieBreak.

Everything here is pure: callers fetch candidates, call
`link_duplicates()`, then persist the result.

USAGE
─────
    result = link_duplicates(draft, candidates, window=timedelta(minutes=30))
    for inc in result.updated:      # persist the increments
        ...
    insert(result.incident)         # then the new report
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable

from campus_safety.models.incident import Incident, IncidentDraft

DEFAULT_WINDOW = timedelta(minutes=30)
DEFAULT_THRESHOLD = 0.3


class TieBreak(str, Enum):
    """How a report that matches several incidents picks its own counters."""
    MAX = "max"    # highest post-increment values across all matches
    LAST = "last"  # values of the last match in processing order


@dataclass
class DuplicateResult:
    incidents: list[Incident]           # full existing list, matched entries incremented
    incident: IncidentDraft             # the new report with final counters
    matched_ids: list[str] = field(default_factory=list)

    @property
    def is_duplicate(self) -> bool:
        return bool(self.matched_ids)

    @property
    def updated(self) -> list[Incident]:
        """Only the existing incidents whose counters changed."""
        ids = set(self.matched_ids)
        return [i for i in self.incidents if i.id in ids]


def _words(text: str) -> list[str]:
    return text.lower().split()


def similarity(a: str, b: str) -> float:
    """
    Bag-of-words overlap ratio in [0, 1].

    Common words are counted as a multiset intersection, so a word
    repeated in both strings counts min(count_a, count_b) times. The
    count is divided by the length of the longer word list. Word order
    and stemming are ignored; the result is symmetric.
    """
    words_a, words_b = _words(a), _words(b)
    longest = max(len(words_a), len(words_b))
    if not words_a or not words_b:
        return 0.0
    common = sum((Counter(words_a) & Counter(words_b)).values())
    return common / longest


def _as_utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def within_window(a: datetime, b: datetime, window: timedelta = DEFAULT_WINDOW) -> bool:
    return abs(_as_utc(a) - _as_utc(b)) <= window


def is_corroborating(
    existing: Incident,
    draft: IncidentDraft,
    window: timedelta = DEFAULT_WINDOW,
    threshold: float = DEFAULT_THRESHOLD,
) -> bool:
    return (
        existing.location == draft.location
        and within_window(existing.timestamp, draft.timestamp, window)
        and similarity(existing.description, draft.description) > threshold
    )


def link_duplicates(
    draft: IncidentDraft,
    existing: Iterable[Incident],
    window: timedelta = DEFAULT_WINDOW,
    threshold: float = DEFAULT_THRESHOLD,
    tie_break: TieBreak = TieBreak.MAX,
) -> DuplicateResult:
    """
    Link `draft` to every existing incident it corroborates.

    Inputs are not mutated; incremented incidents are returned as copies.
    Without a match the draft leaves with priority = duplicate_count = 1.
    """
    incidents: list[Incident] = []
    matched: list[Incident] = []

    for inc in existing:
        if is_corroborating(inc, draft, window, threshold):
            inc = inc.model_copy(update={
                "duplicate_count": inc.duplicate_count + 1,
                "priority": inc.priority + 1,
            })
            matched.append(inc)
        incidents.append(inc)

    if not matched:
        final = draft.model_copy(update={"priority": 1, "duplicate_count": 1})
    elif tie_break is TieBreak.LAST:
        final = draft.model_copy(update={
            "priority": matched[-1].priority,
            "duplicate_count": matched[-1].duplicate_count,
        })
    else:
        final = draft.model_copy(update={
            "priority": max(m.priority for m in matched),
            "duplicate_count": max(m.duplicate_count for m in matched),
        })

    return DuplicateResult(
        incidents=incidents,
        incident=final,
        matched_ids=[m.id for m in matched],
    )
