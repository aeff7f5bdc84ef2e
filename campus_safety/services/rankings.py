"""
rankings.py — Dashboard views over an incident list.

Pure helpers shared by the API routes and the client-side IncidentStore:
filtering, the student "recent reports" feed, the admin priority
leaderboard and the escalation notifications.
"""

from __future__ import annotations

from typing import Iterable, Optional

from campus_safety.models.incident import CampusLocation, Incident, IncidentStatus


def filter_incidents(
    incidents: Iterable[Incident],
    location: Optional[CampusLocation] = None,
    status: Optional[IncidentStatus] = None,
) -> list[Incident]:
    return [
        inc for inc in incidents
        if (location is None or inc.location == location)
        and (status is None or inc.status == status)
    ]


def newest_first(incidents: Iterable[Incident]) -> list[Incident]:
    return sorted(incidents, key=lambda i: i.timestamp, reverse=True)


def recent_incidents(incidents: Iterable[Incident], limit: int = 5) -> list[Incident]:
    return newest_first(incidents)[:limit]


def priority_leaderboard(incidents: Iterable[Incident], limit: int = 10) -> list[Incident]:
    """Open incidents, most corroborated first; newer wins a tie."""
    open_incidents = [i for i in incidents if i.status is not IncidentStatus.RESOLVED]
    ranked = sorted(
        open_incidents,
        key=lambda i: (i.priority, i.timestamp),
        reverse=True,
    )
    return ranked[:limit]


def escalated_incidents(incidents: Iterable[Incident]) -> list[Incident]:
    """Untouched reports that other students have already corroborated."""
    return newest_first(
        i for i in incidents
        if i.status is IncidentStatus.REPORTED and i.priority > 1
    )
