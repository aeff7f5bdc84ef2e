"""
context.py — Application context for the student and admin front ends.

AppContext is created once at app start and passed to whatever needs it.
It owns:

  client   — CampusSafetyClient (all I/O goes through it)
  session  — SessionState, unresolved → absent | present(user)
  store    — IncidentStore, the local reflection of the incident set
  guards   — RouteGuards registered by protected views

Every session change re-evaluates the registered guards, so a view that
was waiting for its session either renders or redirects exactly once.

Mutations are keyed ("submit_incident", "status:<id>", ...). Starting an
action whose key is already in flight raises ConflictError instead of
queueing it, so a button can never be left spinning.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Iterable, Optional

from campus_safety.client import CampusSafetyClient
from campus_safety.core.errors import AuthError, CampusSafetyError, ConflictError, PermissionDeniedError
from campus_safety.models.incident import Incident, IncidentCreate, IncidentDraft, IncidentStatus, SubmitResponse
from campus_safety.models.user import Portal, Role, UserCreate, UserOut, UserStatus
from campus_safety.services.broadcaster import INSERTED, UPDATED
from campus_safety.services.incident_store import IncidentStore
from campus_safety.services.incidents import ANONYMOUS
from campus_safety.services.roles import Capability, has_capability
from campus_safety.services.session_gate import PUBLIC_ENTRY_POINT, RouteGuard, SessionState
from campus_safety.services.transitions import ensure_can_change_status

logger = logging.getLogger(__name__)


class AppContext:
    def __init__(self, client: CampusSafetyClient, store: Optional[IncidentStore] = None) -> None:
        self.client = client
        self.store = store or IncidentStore()
        self.session = SessionState.unresolved()
        self._guards: list[RouteGuard] = []
        self._in_flight: set[str] = set()

    # ── Session ───────────────────────────────────────────────────────────────

    @property
    def user(self) -> Optional[UserOut]:
        return self.session.user

    def _set_session(self, state: SessionState) -> None:
        self.session = state
        for guard in list(self._guards):
            guard.evaluate(state)

    async def start(self) -> SessionState:
        """Resolve the stored session and, if signed in, load incidents."""
        self._set_session(SessionState.unresolved())
        try:
            state = await self.client.resolve_current_session()
        except CampusSafetyError as exc:
            logger.warning("Could not resolve session: %s", exc.message)
            state = SessionState.absent()
        self._set_session(state)
        if state.user is not None:
            await self.refresh()
        return state

    async def login(
        self,
        college_id: str,
        password: str,
        biometric_id: Optional[str] = None,
        portal: Optional[Portal] = None,
    ) -> UserOut:
        async with self._exclusive("login"):
            user = await self.client.authenticate(college_id, password, biometric_id=biometric_id, portal=portal)
        self._set_session(SessionState.present(user))
        await self.refresh()
        return user

    async def continue_as_guest(self) -> UserOut:
        async with self._exclusive("login"):
            user = await self.client.guest_session()
        self._set_session(SessionState.present(user))
        await self.refresh()
        return user

    async def logout(self) -> None:
        """End the session and reset everything it owned."""
        await self.client.end_session()
        self._in_flight.clear()
        self.store.clear()
        # A fresh cycle: guards re-arm on unresolved, then redirect once on absent
        self._set_session(SessionState.unresolved())
        self._set_session(SessionState.absent())

    def guard(
        self,
        view: str,
        allowed_roles: Iterable[Role],
        on_redirect: Callable[[str], None],
        redirect_to: str = PUBLIC_ENTRY_POINT,
    ) -> RouteGuard:
        """Register a protected view. It is evaluated now and on every session change."""
        guard = RouteGuard(view, allowed_roles, on_redirect, redirect_to)
        self._guards.append(guard)
        guard.evaluate(self.session)
        return guard

    def release_guard(self, guard: RouteGuard) -> None:
        if guard in self._guards:
            self._guards.remove(guard)

    def _require_user(self) -> UserOut:
        if self.session.user is None:
            raise AuthError("Not authenticated")
        return self.session.user

    def _require_capability(self, capability: Capability) -> UserOut:
        user = self._require_user()
        if not has_capability(user.role, capability):
            raise PermissionDeniedError(f"Your role does not allow this action ({capability.value})")
        return user

    @asynccontextmanager
    async def _exclusive(self, action: str):
        if action in self._in_flight:
            raise ConflictError("This action is already in progress")
        self._in_flight.add(action)
        try:
            yield
        finally:
            self._in_flight.discard(action)

    def is_in_flight(self, action: str) -> bool:
        return action in self._in_flight

    # ── Incidents ─────────────────────────────────────────────────────────────

    async def refresh(self) -> list[Incident]:
        incidents = await self.client.list_incidents()
        self.store.replace_all(incidents)
        return incidents

    async def submit_incident(self, payload: IncidentCreate) -> SubmitResponse:
        """Show the report immediately, then reconcile with the stored incident."""
        user = self._require_capability(Capability.SUBMIT_INCIDENT)

        async with self._exclusive("submit_incident"):
            draft = IncidentDraft(
                location=payload.location,
                type=payload.type,
                description=payload.description,
                video_url=payload.video_url,
                reported_by=ANONYMOUS if payload.anonymous else user.name,
            )
            temp_id = self.store.add_optimistic(draft)
            try:
                # The server echoes client_ref, so whichever of the POST response
                # and the stream event arrives first replaces the temporary entry
                result = await self.client.create_incident(payload.model_copy(update={"client_ref": temp_id}))
            except CampusSafetyError:
                self.store.discard(temp_id)
                raise
            self.store.confirm(temp_id, result.incident)

        if result.is_duplicate:
            # Linked incidents changed server-side; pull their new counters
            try:
                await self.refresh()
            except CampusSafetyError as exc:
                logger.warning("Refresh after duplicate link failed: %s", exc.message)
        return result

    async def change_status(self, incident_id: str, status: IncidentStatus) -> Incident:
        # Checked locally first: an unauthorised role never reaches the network
        user = self._require_user()
        ensure_can_change_status(user)

        async with self._exclusive(f"status:{incident_id}"):
            updated = await self.client.update_incident_status(incident_id, status)
        self.store.upsert(updated)
        return updated

    # ── Realtime ──────────────────────────────────────────────────────────────

    def on_insert_notification(self, incident: Incident) -> None:
        self.store.upsert(incident)

    def on_update_notification(self, incident: Incident) -> None:
        self.store.upsert(incident)

    def handle_event(self, event: dict) -> None:
        """Apply one event from the incident stream."""
        incident = Incident.model_validate(event["incident"])
        if event.get("type") == INSERTED:
            self.on_insert_notification(incident)
        elif event.get("type") == UPDATED:
            self.on_update_notification(incident)
        else:
            logger.debug("Ignoring stream event %r", event.get("type"))

    async def on_subscription_failure(self, exc: BaseException) -> None:
        """Missed events are recovered by a full refresh, never surfaced to the user."""
        logger.warning("Incident stream failed (%s); refreshing", exc)
        try:
            await self.refresh()
        except CampusSafetyError as refresh_exc:
            logger.error("Refresh after stream failure failed: %s", refresh_exc.message)

    # ── Users ─────────────────────────────────────────────────────────────────

    async def list_users(self, role: Optional[Role] = None, status: Optional[UserStatus] = None) -> list[UserOut]:
        self._require_capability(Capability.MANAGE_USERS)
        return await self.client.list_users(role=role, status=status)

    async def create_user(self, payload: UserCreate) -> UserOut:
        self._require_capability(Capability.MANAGE_USERS)
        async with self._exclusive("create_user"):
            return await self.client.create_user(payload)

    async def set_user_status(self, user_id: str, status: UserStatus) -> UserOut:
        self._require_capability(Capability.MANAGE_USERS)
        async with self._exclusive(f"user_status:{user_id}"):
            return await self.client.set_user_status(user_id, status)
