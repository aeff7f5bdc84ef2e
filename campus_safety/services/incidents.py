"""
incidents.py — Submission and status-change workflows.

Glue between the pure engines (duplicates, transitions) and the
repository / broadcaster:

  submit_incident:  candidates → link_duplicates → insert → $inc matches → broadcast
  change_status:    apply_transition → update → broadcast

The new report is stored before any linked counter moves. If linking
fails part way, the increments already applied are reversed and the
report is withdrawn, so counters only ever reflect stored reports.
"""

import logging
from datetime import datetime, timedelta

from campus_safety.core.config import settings
from campus_safety.core.errors import CampusSafetyError
from campus_safety.models.incident import (
    Incident,
    IncidentCreate,
    IncidentDraft,
    IncidentStatus,
    SubmitResponse,
)
from campus_safety.models.user import UserOut
from campus_safety.repositories.incidents import IncidentRepository
from campus_safety.services.broadcaster import IncidentBroadcaster
from campus_safety.services.duplicates import TieBreak, link_duplicates
from campus_safety.services.transitions import apply_transition

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"


def build_draft(payload: IncidentCreate, reporter: UserOut, now: datetime) -> IncidentDraft:
    return IncidentDraft(
        location=payload.location,
        type=payload.type,
        description=payload.description,
        video_url=payload.video_url,
        timestamp=now,
        reported_by=ANONYMOUS if payload.anonymous else reporter.name,
        client_ref=payload.client_ref,
    )


async def _withdraw(repo: IncidentRepository, created: Incident, linked: list[Incident]) -> None:
    """Undo a half-finished submission."""
    try:
        for inc in linked:
            await repo.increment_counters(inc.id, step=-1)
        await repo.delete(created.id)
    except CampusSafetyError as exc:
        logger.error("Could not withdraw incident %s: %s", created.id, exc.message)


async def submit_incident(
    repo: IncidentRepository,
    broadcaster: IncidentBroadcaster,
    draft: IncidentDraft,
) -> SubmitResponse:
    window = timedelta(minutes=settings.duplicate_window_minutes)
    candidates = await repo.candidates(draft.location, draft.timestamp, window)

    result = link_duplicates(
        draft,
        candidates,
        window=window,
        threshold=settings.similarity_threshold,
        tie_break=TieBreak(settings.duplicate_tie_break),
    )

    created = await repo.create(result.incident)

    linked: list[Incident] = []
    try:
        for incident_id in result.matched_ids:
            linked.append(await repo.increment_counters(incident_id))
    except CampusSafetyError as exc:
        logger.error("Linking incident %s failed (%s); withdrawing it", created.id, exc.message)
        await _withdraw(repo, created, linked)
        raise

    if result.is_duplicate:
        logger.info(
            "Incident %s at %s corroborates %s (priority %d)",
            created.id, created.location.value, ", ".join(result.matched_ids), created.priority,
        )
    else:
        logger.info("Incident %s reported at %s", created.id, created.location.value)

    for inc in linked:
        broadcaster.updated(inc)
    broadcaster.inserted(created)

    return SubmitResponse(
        incident=created,
        is_duplicate=result.is_duplicate,
        linked_ids=result.matched_ids,
    )


async def change_status(
    repo: IncidentRepository,
    broadcaster: IncidentBroadcaster,
    incident_id: str,
    status: IncidentStatus,
    actor: UserOut,
) -> Incident:
    current = await repo.get(incident_id)
    target = apply_transition(current, status, actor)
    if target is current:
        return current

    updated = await repo.update_status(incident_id, target.status)
    broadcaster.updated(updated)
    return updated
