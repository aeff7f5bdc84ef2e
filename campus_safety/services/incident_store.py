"""
incident_store.py — Client-side reflection of the incident set.

Only replace_all() (initial fetch / refresh) replaces the set wholesale.
Everything else is a targeted upsert by id, so an insert that arrives
both as a POST response and as a stream event is shown once.

Optimistic inserts get a temporary id ("temp-…") and are dropped through
discard() or reconciled with the authoritative incident by whichever
arrives first: confirm() with the POST response, or an upsert of an
incident whose client_ref names the temporary id. Listeners are called
once per change that actually altered the set.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Iterable, Optional

from campus_safety.models.incident import CampusLocation, Incident, IncidentDraft, IncidentStatus
from campus_safety.services.rankings import (
    escalated_incidents,
    filter_incidents,
    newest_first,
    priority_leaderboard,
    recent_incidents,
)

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"

Listener = Callable[[list[Incident]], None]


def is_temporary_id(incident_id: str) -> bool:
    return incident_id.startswith(TEMP_ID_PREFIX)


class IncidentStore:
    def __init__(self, incidents: Iterable[Incident] = ()) -> None:
        self._confirmed: dict[str, Incident] = {i.id: i for i in incidents}
        self._pending: dict[str, Incident] = {}
        self._listeners: list[Listener] = []

    # ── Reading ───────────────────────────────────────────────────────────────

    @property
    def incidents(self) -> list[Incident]:
        """Confirmed and pending incidents, newest first."""
        return newest_first([*self._confirmed.values(), *self._pending.values()])

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._confirmed) + len(self._pending)

    def get(self, incident_id: str) -> Optional[Incident]:
        return self._confirmed.get(incident_id) or self._pending.get(incident_id)

    def filter(
        self,
        location: Optional[CampusLocation] = None,
        status: Optional[IncidentStatus] = None,
    ) -> list[Incident]:
        return filter_incidents(self.incidents, location=location, status=status)

    def recent(self, limit: int = 5) -> list[Incident]:
        return recent_incidents(self.incidents, limit=limit)

    def leaderboard(self, limit: int = 10) -> list[Incident]:
        return priority_leaderboard(self._confirmed.values(), limit=limit)

    def escalations(self) -> list[Incident]:
        return escalated_incidents(self._confirmed.values())

    # ── Listeners ─────────────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.incidents
        for listener in list(self._listeners):
            listener(snapshot)

    # ── Changes ───────────────────────────────────────────────────────────────

    def _settle(self, incident: Incident) -> bool:
        """Drop the optimistic entry `incident` was submitted under, if any."""
        if not incident.client_ref:
            return False
        if self._pending.pop(incident.client_ref, None) is None:
            return False
        logger.debug("Optimistic entry %s settled as %s", incident.client_ref, incident.id)
        return True

    def replace_all(self, incidents: Iterable[Incident]) -> None:
        """Swap in a freshly fetched set. In-flight optimistic entries are kept."""
        self._confirmed = {i.id: i for i in incidents}
        for incident in self._confirmed.values():
            self._settle(incident)
        self._notify()

    def upsert(self, incident: Incident) -> bool:
        """Insert or replace by id. Returns False (and stays silent) if nothing changed."""
        settled = self._settle(incident)
        if not settled and self._confirmed.get(incident.id) == incident:
            return False
        self._confirmed[incident.id] = incident
        self._notify()
        return True

    def add_optimistic(self, draft: IncidentDraft) -> str:
        """Show `draft` immediately under a temporary id and return that id."""
        temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"
        self._pending[temp_id] = Incident(id=temp_id, **draft.model_dump(exclude={"client_ref"}))
        self._notify()
        return temp_id

    def confirm(self, temp_id: str, incident: Incident) -> None:
        """Replace the optimistic entry with the stored incident."""
        settled = self._pending.pop(temp_id, None) is not None
        if not settled and self._confirmed.get(incident.id) == incident:
            # Already reconciled by a stream event
            return
        self._confirmed[incident.id] = incident
        self._notify()

    def discard(self, temp_id: str) -> None:
        """Drop an optimistic entry whose submission failed."""
        if self._pending.pop(temp_id, None) is not None:
            self._notify()

    def clear(self) -> None:
        self._confirmed.clear()
        self._pending.clear()
        self._notify()
