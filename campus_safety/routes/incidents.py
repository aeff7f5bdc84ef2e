"""
incidents.py — Incident reporting and triage routes.

Routes:
  GET   /api/v1/incidents               — list (filter by ?location= & ?status=)
  GET   /api/v1/incidents/recent        — newest reports (student dashboard feed)
  GET   /api/v1/incidents/catalog       — locations / types / statuses with labels
  GET   /api/v1/incidents/priority      — priority leaderboard (staff)
  GET   /api/v1/incidents/escalations   — corroborated, untriaged reports (staff)
  GET   /api/v1/incidents/{id}          — single incident
  POST  /api/v1/incidents               — submit a report (runs duplicate detection)
  PATCH /api/v1/incidents/{id}/status   — move through the lifecycle (status authority)
  WS    /api/v1/incidents/stream        — live insert / update events (token in ?token= or header)

Submissions are rate-limited per client IP.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.security import HTTPAuthorizationCredentials

from campus_safety.core.config import settings
from campus_safety.core.database import get_db
from campus_safety.core.errors import CampusSafetyError
from campus_safety.core.rate_limit import limiter
from campus_safety.models.incident import (
    INCIDENT_STATUS_LABELS,
    INCIDENT_TYPE_LABELS,
    CampusLocation,
    CatalogOption,
    CatalogResponse,
    Incident,
    IncidentCreate,
    IncidentStatus,
    StatusUpdate,
    SubmitResponse,
)
from campus_safety.models.user import UserOut
from campus_safety.repositories.incidents import IncidentRepository
from campus_safety.routes.auth import CurrentUser, require, resolve_session
from campus_safety.services import incidents as incident_service
from campus_safety.services.broadcaster import broadcaster
from campus_safety.services.rankings import (
    escalated_incidents,
    priority_leaderboard,
    recent_incidents,
)
from campus_safety.services.roles import Capability, roles_for
from campus_safety.services.session_gate import GateDecision, SessionState, decide, log_denial

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/incidents", tags=["incidents"])

Reporter = Annotated[UserOut, Depends(require(Capability.SUBMIT_INCIDENT))]
Staff = Annotated[UserOut, Depends(require(Capability.VIEW_ADMIN_DASHBOARD))]
StatusAuthority = Annotated[UserOut, Depends(require(Capability.CHANGE_INCIDENT_STATUS))]


def get_now() -> datetime:
    """Report timestamp source. Tests override this dependency with a fixed clock."""
    return datetime.now(tz=timezone.utc)


# ── Reads ─────────────────────────────────────────────────────────────────────

@router.get("", response_model=list[Incident])
async def list_incidents(
    user: CurrentUser,
    location: Optional[CampusLocation] = Query(default=None),
    incident_status: Optional[IncidentStatus] = Query(default=None, alias="status"),
    db=Depends(get_db),
):
    """All incidents, newest first."""
    return await IncidentRepository(db).list_incidents(location=location, status=incident_status)


@router.get("/recent", response_model=list[Incident])
async def list_recent(
    user: CurrentUser,
    limit: int = Query(default=settings.recent_limit, ge=1, le=50),
    db=Depends(get_db),
):
    incidents = await IncidentRepository(db).list_incidents()
    return recent_incidents(incidents, limit=limit)


@router.get("/catalog", response_model=CatalogResponse)
async def catalog():
    """Dropdown values. Labels are presentation only; values are what the API accepts."""
    return CatalogResponse(
        locations=[loc.value for loc in CampusLocation],
        types=[CatalogOption(value=t.value, label=INCIDENT_TYPE_LABELS[t]) for t in INCIDENT_TYPE_LABELS],
        statuses=[CatalogOption(value=s.value, label=INCIDENT_STATUS_LABELS[s]) for s in INCIDENT_STATUS_LABELS],
    )


@router.get("/priority", response_model=list[Incident])
async def leaderboard(
    user: Staff,
    limit: int = Query(default=settings.leaderboard_limit, ge=1, le=100),
    db=Depends(get_db),
):
    """Open incidents ranked by priority (duplicate reports raise priority)."""
    incidents = await IncidentRepository(db).list_incidents()
    return priority_leaderboard(incidents, limit=limit)


@router.get("/escalations", response_model=list[Incident])
async def escalations(user: Staff, db=Depends(get_db)):
    """Reported-but-untriaged incidents that other students have corroborated."""
    incidents = await IncidentRepository(db).list_incidents(status=IncidentStatus.REPORTED)
    return escalated_incidents(incidents)


@router.get("/{incident_id}", response_model=Incident)
async def get_incident(incident_id: str, user: CurrentUser, db=Depends(get_db)):
    return await IncidentRepository(db).get(incident_id)


# ── Writes ────────────────────────────────────────────────────────────────────

@router.post("", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.submit_rate_limit)
async def submit_incident(
    request: Request,
    payload: IncidentCreate,
    reporter: Reporter,
    now: datetime = Depends(get_now),
    db=Depends(get_db),
):
    """Submit a report. A near-duplicate raises the priority of the incident it corroborates."""
    draft = incident_service.build_draft(payload, reporter, now)
    return await incident_service.submit_incident(IncidentRepository(db), broadcaster, draft)


@router.patch("/{incident_id}/status", response_model=Incident)
async def update_status(
    incident_id: str,
    payload: StatusUpdate,
    actor: StatusAuthority,
    db=Depends(get_db),
):
    return await incident_service.change_status(
        IncidentRepository(db), broadcaster, incident_id, payload.status, actor
    )


# ── WebSocket live feed ────────────────────────────────────────────────────────

async def _stream_session(websocket: WebSocket, token: Optional[str], db) -> SessionState:
    """Browsers cannot set headers on a WebSocket, so ?token= is accepted too."""
    if not token:
        scheme, _, value = websocket.headers.get("authorization", "").partition(" ")
        if scheme.lower() == "bearer":
            token = value.strip()
    if not token:
        return SessionState.absent()

    try:
        return await resolve_session(HTTPAuthorizationCredentials(scheme="Bearer", credentials=token), db)
    except CampusSafetyError as exc:
        logger.info("Incident stream session refused: %s", exc.message)
        return SessionState.absent()


@router.websocket("/stream")
async def incident_stream(
    websocket: WebSocket,
    token: Optional[str] = Query(default=None),
    db=Depends(get_db),
):
    """
    Push every insert / status change as a JSON text frame:

      { "type": "incident.inserted", "incident": { ...Incident... } }

    Same audience as GET /api/v1/incidents. Without a permitted session
    the handshake is closed with 1008 before anything is sent.

    Consumers de-duplicate by incident id; an insert may also have been
    seen as the POST response.
    """
    session = await _stream_session(websocket, token, db)
    result = decide(session, roles_for(Capability.VIEW_INCIDENTS))
    if result.decision is not GateDecision.PERMIT:
        log_denial("WS /api/v1/incidents/stream", session, result.reason)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    queue = broadcaster.subscribe()
    try:
        while True:
            event = await queue.get()
            await websocket.send_text(json.dumps(event))
    except WebSocketDisconnect:
        logger.info("Incident stream client disconnected")
    except Exception as exc:
        logger.warning("Incident stream error: %s", exc)
    finally:
        broadcaster.unsubscribe(queue)
