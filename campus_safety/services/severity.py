"""
severity.py — Per-location incident rollup for the campus heatmap.

Produces one LocationStats per CampusLocation (zero-count locations
included) sorted by count, busiest first. The same list feeds the grid
view and the bar-chart / leaderboard view.

Counting policy: one incident counts once, regardless of duplicate_count.
Whether resolved incidents count is the caller's explicit choice
(`include_resolved`).

Two tiering policies, picked per call:

  relative — against the busiest location (max clamped to >= 1):
               count == max (max > 0) → critical
               count >= 50 % of max   → high
               count >= 25 % of max   → medium
               otherwise              → low
  absolute — fixed thresholds: >=10 critical, >=6 high, >=3 medium, else low
"""

from __future__ import annotations

from collections import Counter
from enum import Enum
from typing import Iterable

from campus_safety.models.incident import (
    CampusLocation,
    Incident,
    IncidentStatus,
    LocationStats,
    Severity,
)


class SeverityPolicy(str, Enum):
    RELATIVE = "relative"
    ABSOLUTE = "absolute"


# (minimum count, tier), checked top-down
_ABSOLUTE_THRESHOLDS = [
    (10, Severity.CRITICAL),
    (6,  Severity.HIGH),
    (3,  Severity.MEDIUM),
    (0,  Severity.LOW),
]

_HIGH_RATIO = 0.5
_MEDIUM_RATIO = 0.25


def classify_absolute(count: int) -> Severity:
    for threshold, tier in _ABSOLUTE_THRESHOLDS:
        if count >= threshold:
            return tier
    return Severity.LOW


def classify_relative(count: int, max_count: int) -> Severity:
    if max_count > 0 and count == max_count:
        return Severity.CRITICAL
    ceiling = max(max_count, 1)
    if count >= _HIGH_RATIO * ceiling:
        return Severity.HIGH
    if count >= _MEDIUM_RATIO * ceiling:
        return Severity.MEDIUM
    return Severity.LOW


def count_by_location(
    incidents: Iterable[Incident],
    include_resolved: bool = True,
) -> dict[CampusLocation, int]:
    """Incident count for every location, zeros included, in enum order."""
    tally = Counter(
        inc.location
        for inc in incidents
        if include_resolved or inc.status is not IncidentStatus.RESOLVED
    )
    return {loc: tally.get(loc, 0) for loc in CampusLocation}


def aggregate_locations(
    incidents: Iterable[Incident],
    policy: SeverityPolicy = SeverityPolicy.RELATIVE,
    include_resolved: bool = True,
) -> list[LocationStats]:
    counts = count_by_location(incidents, include_resolved=include_resolved)
    max_count = max(counts.values(), default=0)

    stats = []
    for location, count in counts.items():
        if policy is SeverityPolicy.ABSOLUTE:
            tier = classify_absolute(count)
        else:
            tier = classify_relative(count, max_count)
        stats.append(LocationStats(location=location, count=count, severity=tier))

    # sorted() is stable, so equal counts keep enum order
    return sorted(stats, key=lambda s: s.count, reverse=True)
