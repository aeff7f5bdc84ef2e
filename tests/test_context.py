"""
test_context.py — AppContext: session lifecycle, guards, optimistic submit,
in-flight rejection and realtime recovery.

The context's client talks to the app through ASGITransport, backed by
the in-memory FakeDB.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport

from campus_safety.client import CampusSafetyClient
from campus_safety.context import AppContext
from campus_safety.core.errors import AuthError, ConflictError, PermissionDeniedError, TransientError
from campus_safety.models.incident import CampusLocation, IncidentCreate, IncidentStatus, IncidentType
from campus_safety.models.user import Role
from campus_safety.services.broadcaster import INSERTED, UPDATED
from campus_safety.services.roles import ADMIN_GROUP
from campus_safety.services.session_gate import PUBLIC_ENTRY_POINT, SessionPhase


def _report(description="small fire near gate", location=CampusLocation.GATE_A):
    return IncidentCreate(location=location, type=IncidentType.FIRE, description=description)


@pytest.fixture()
async def ctx(api, clock):  # noqa: ARG001 — FakeDB override and fixed clock
    from campus_safety.main import app

    client = CampusSafetyClient("http://test", transport=ASGITransport(app=app))
    yield AppContext(client)
    await client.aclose()


@pytest.fixture()
async def admin_login(make_user):
    await make_user(Role.ADMIN, college_id="ADM248", password="admin-pass-1")
    return {"college_id": "ADM248", "password": "admin-pass-1"}


class Redirects:
    def __init__(self):
        self.targets: list[str] = []

    def __call__(self, target: str) -> None:
        self.targets.append(target)


# ── Session ───────────────────────────────────────────────────────────────────

class TestSession:
    async def test_starts_unresolved(self, ctx):
        assert ctx.session.phase is SessionPhase.UNRESOLVED

    async def test_start_without_token_is_absent(self, ctx):
        state = await ctx.start()
        assert state.phase is SessionPhase.ABSENT

    async def test_guard_waits_then_redirects_once(self, ctx):
        redirects = Redirects()
        guard = ctx.guard("admin dashboard", ADMIN_GROUP, redirects)
        assert redirects.targets == []          # still unresolved

        await ctx.start()
        guard.evaluate(ctx.session)             # re-render, same cycle
        assert redirects.targets == [PUBLIC_ENTRY_POINT]

    async def test_guest_on_admin_view_redirected_once(self, ctx):
        redirects = Redirects()
        ctx.guard("admin dashboard", ADMIN_GROUP, redirects)
        await ctx.continue_as_guest()
        assert redirects.targets == [PUBLIC_ENTRY_POINT]
        assert ctx.user.is_guest

    async def test_admin_view_permits_admin(self, ctx, admin_login):
        redirects = Redirects()
        ctx.guard("admin dashboard", ADMIN_GROUP, redirects)
        await ctx.login(**admin_login)
        assert redirects.targets == []

    async def test_stored_token_restores_session(self, ctx, admin_login):
        user = await ctx.login(**admin_login)
        fresh = AppContext(ctx.client)
        state = await fresh.start()
        assert state.user.id == user.id

    async def test_logout_resets_and_redirects(self, ctx, admin_login):
        await ctx.login(**admin_login)
        await ctx.submit_incident(_report())
        redirects = Redirects()
        ctx.guard("admin dashboard", ADMIN_GROUP, redirects)

        await ctx.logout()

        assert ctx.session.phase is SessionPhase.ABSENT
        assert ctx.client.token is None
        assert len(ctx.store) == 0
        assert redirects.targets == [PUBLIC_ENTRY_POINT]

    async def test_failed_login_leaves_session(self, ctx):
        await ctx.start()
        with pytest.raises(AuthError):
            await ctx.login("248NOBODY", "whatever-pass")
        assert ctx.session.phase is SessionPhase.ABSENT


# ── Incidents ─────────────────────────────────────────────────────────────────

class TestSubmit:
    async def test_optimistic_entry_reconciled(self, ctx):
        await ctx.continue_as_guest()
        seen = []
        ctx.store.subscribe(lambda items: seen.append([i.id for i in items]))

        result = await ctx.submit_incident(_report())

        assert [i.id for i in ctx.store.incidents] == [result.incident.id]
        assert ctx.store.pending_ids == []
        # first the temporary entry, then the stored one
        assert seen[0][0].startswith("temp-")
        assert seen[-1] == [result.incident.id]

    async def test_stream_event_during_submit_shown_once(self, ctx):
        await ctx.continue_as_guest()
        seen = []
        ctx.store.subscribe(lambda items: seen.append([i.id for i in items]))
        real_create = ctx.client.create_incident

        async def create_then_stream(payload):
            result = await real_create(payload)
            # the insert event beats the POST response
            ctx.handle_event({"type": INSERTED, "incident": result.incident.model_dump(mode="json")})
            return result

        ctx.client.create_incident = create_then_stream
        result = await ctx.submit_incident(_report())

        assert result.incident.client_ref.startswith("temp-")
        assert all(len(ids) == 1 for ids in seen)
        assert seen[-1] == [result.incident.id]
        assert ctx.store.pending_ids == []

    async def test_requires_session(self, ctx):
        await ctx.start()
        with pytest.raises(AuthError):
            await ctx.submit_incident(_report())

    async def test_failure_discards_optimistic_entry(self, ctx):
        await ctx.continue_as_guest()
        ctx.client.create_incident = AsyncMock(side_effect=TransientError("Database unavailable"))

        with pytest.raises(TransientError):
            await ctx.submit_incident(_report())
        assert len(ctx.store) == 0
        assert not ctx.is_in_flight("submit_incident")

    async def test_second_submit_while_in_flight_rejected(self, ctx):
        await ctx.continue_as_guest()
        gate = asyncio.Event()
        real_create = ctx.client.create_incident

        async def slow_create(payload):
            await gate.wait()
            return await real_create(payload)

        ctx.client.create_incident = slow_create
        first = asyncio.create_task(ctx.submit_incident(_report()))
        await asyncio.sleep(0)

        with pytest.raises(ConflictError):
            await ctx.submit_incident(_report("another report"))

        gate.set()
        await first
        assert len(ctx.store) == 1
        assert not ctx.is_in_flight("submit_incident")

    async def test_duplicate_refreshes_linked_counters(self, ctx, clock):
        await ctx.continue_as_guest()
        first = await ctx.submit_incident(_report("small fire near gate"))
        clock.now += timedelta(minutes=10)
        second = await ctx.submit_incident(_report("fire spotted near the gate"))

        assert second.is_duplicate
        assert ctx.store.get(first.incident.id).priority == 2
        assert len(ctx.store) == 2


class TestStatusChange:
    async def test_authority_changes_status(self, ctx, admin_login):
        await ctx.login(**admin_login)
        created = await ctx.submit_incident(_report())

        updated = await ctx.change_status(created.incident.id, IncidentStatus.RESOLVED)

        assert updated.status is IncidentStatus.RESOLVED
        assert ctx.store.get(created.incident.id).status is IncidentStatus.RESOLVED

    async def test_unauthorised_role_rejected_before_io(self, ctx):
        await ctx.continue_as_guest()
        created = await ctx.submit_incident(_report())
        ctx.client.update_incident_status = AsyncMock()

        with pytest.raises(PermissionDeniedError):
            await ctx.change_status(created.incident.id, IncidentStatus.RESOLVED)

        ctx.client.update_incident_status.assert_not_called()
        assert ctx.store.get(created.incident.id).status is IncidentStatus.REPORTED


# ── Realtime ──────────────────────────────────────────────────────────────────

class TestRealtime:
    async def test_insert_event_deduplicated(self, ctx):
        await ctx.continue_as_guest()
        result = await ctx.submit_incident(_report())
        event = {"type": INSERTED, "incident": result.incident.model_dump(mode="json")}

        ctx.handle_event(event)
        ctx.handle_event(event)

        assert len(ctx.store) == 1

    async def test_update_event_applied(self, ctx):
        await ctx.continue_as_guest()
        result = await ctx.submit_incident(_report())
        changed = result.incident.model_copy(update={"status": IncidentStatus.INVESTIGATING})

        ctx.handle_event({"type": UPDATED, "incident": changed.model_dump(mode="json")})

        assert ctx.store.get(result.incident.id).status is IncidentStatus.INVESTIGATING

    async def test_subscription_failure_refreshes(self, ctx):
        await ctx.continue_as_guest()
        result = await ctx.submit_incident(_report())
        ctx.store.clear()

        await ctx.on_subscription_failure(ConnectionResetError("stream dropped"))

        assert [i.id for i in ctx.store.incidents] == [result.incident.id]

    async def test_failed_refresh_after_stream_failure_is_not_raised(self, ctx):
        await ctx.continue_as_guest()
        ctx.client.list_incidents = AsyncMock(side_effect=TransientError("Database unavailable"))
        await ctx.on_subscription_failure(ConnectionResetError("stream dropped"))


# ── Users ─────────────────────────────────────────────────────────────────────

async def test_user_management_checked_locally(ctx):
    await ctx.continue_as_guest()
    ctx.client.list_users = AsyncMock()
    with pytest.raises(PermissionDeniedError):
        await ctx.list_users()
    ctx.client.list_users.assert_not_called()
