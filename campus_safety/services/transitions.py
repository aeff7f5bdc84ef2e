"""
transitions.py — Who may move an incident between statuses.

Lifecycle: reported → investigating → action_taken → resolved.

Direct jumps (reported → resolved, or reopening a resolved incident)
are allowed; only the actor's role is checked. Re-applying the current
status is a no-op that still succeeds.
"""

from __future__ import annotations

import logging

from campus_safety.core.errors import PermissionDeniedError
from campus_safety.models.incident import Incident, IncidentStatus
from campus_safety.models.user import UserOut
from campus_safety.services.roles import Capability, has_capability

logger = logging.getLogger(__name__)


def ensure_can_change_status(actor: UserOut) -> None:
    if not has_capability(actor.role, Capability.CHANGE_INCIDENT_STATUS):
        logger.warning(
            "Status change refused: user %s has role %s", actor.id, actor.role.value
        )
        raise PermissionDeniedError(
            "You do not have permission to change incident status"
        )


def apply_transition(incident: Incident, new_status: IncidentStatus, actor: UserOut) -> Incident:
    """
    Return a copy of `incident` with `new_status`.

    Raises PermissionDeniedError (and leaves `incident` untouched) when
    the actor's role lacks status authority.
    """
    ensure_can_change_status(actor)
    if incident.status is new_status:
        return incident
    logger.info(
        "Incident %s: %s → %s by %s",
        incident.id, incident.status.value, new_status.value, actor.id,
    )
    return incident.model_copy(update={"status": new_status})
