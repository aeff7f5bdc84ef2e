"""
roles.py — Role model: capability lookup table and role groups.

One canonical User carries one Role; everything a role may do is decided
here and nowhere else. Routes ask `has_capability()` (through the
`require()` dependency), the client context asks the same table before
sending a request, so both sides agree on who may do what.

USAGE
─────
    from campus_safety.services.roles import Capability, has_capability

    if not has_capability(user.role, Capability.CHANGE_INCIDENT_STATUS):
        raise PermissionDeniedError(...)
"""

from __future__ import annotations

from enum import Enum

from campus_safety.models.user import Portal, Role


class Capability(str, Enum):
    SUBMIT_INCIDENT = "submit_incident"
    VIEW_INCIDENTS = "view_incidents"
    VIEW_ADMIN_DASHBOARD = "view_admin_dashboard"
    MANAGE_USERS = "manage_users"
    CHANGE_INCIDENT_STATUS = "change_incident_status"


ALL_ROLES: frozenset[Role] = frozenset(Role)

# Every staff role. An admin-tagged view accepts any of these,
# not only the literal "admin".
ADMIN_GROUP: frozenset[Role] = frozenset({
    Role.ADMIN,
    Role.SECURITY_HEAD,
    Role.PRINCIPAL,
    Role.HOD,
    Role.CLASS_IN_CHARGE,
})

# Roles that may move an incident through its lifecycle.
STATUS_AUTHORITY: frozenset[Role] = frozenset({
    Role.ADMIN,
    Role.SECURITY_HEAD,
    Role.PRINCIPAL,
})

CAPABILITIES: dict[Capability, frozenset[Role]] = {
    Capability.SUBMIT_INCIDENT: ALL_ROLES,
    Capability.VIEW_INCIDENTS: ALL_ROLES,
    Capability.VIEW_ADMIN_DASHBOARD: ADMIN_GROUP,
    Capability.MANAGE_USERS: ADMIN_GROUP,
    Capability.CHANGE_INCIDENT_STATUS: STATUS_AUTHORITY,
}

# Which roles may sign in through each login screen.
PORTAL_ROLES: dict[Portal, frozenset[Role]] = {
    Portal.STUDENT: frozenset({Role.STUDENT, Role.ADMIN}),
    Portal.ADMIN: ADMIN_GROUP,
}


def roles_for(capability: Capability) -> frozenset[Role]:
    return CAPABILITIES[capability]


def has_capability(role: Role, capability: Capability) -> bool:
    return role in CAPABILITIES[capability]


def is_admin_role(role: Role) -> bool:
    return role in ADMIN_GROUP


def can_use_portal(role: Role, portal: Portal) -> bool:
    return role in PORTAL_ROLES[portal]


def landing_path(role: Role) -> str:
    """Dashboard a freshly logged-in user is sent to."""
    return "/admin/dashboard" if is_admin_role(role) else "/student/dashboard"
