"""
test_roles.py — Capability table and portal rules.
"""

import pytest

from campus_safety.models.user import Portal, Role
from campus_safety.services.roles import (
    ADMIN_GROUP,
    Capability,
    can_use_portal,
    has_capability,
    is_admin_role,
    landing_path,
    roles_for,
)


class TestCapabilities:
    @pytest.mark.parametrize("role", list(Role))
    def test_everyone_can_submit_and_view(self, role):
        assert has_capability(role, Capability.SUBMIT_INCIDENT)
        assert has_capability(role, Capability.VIEW_INCIDENTS)

    def test_student_has_no_staff_capabilities(self):
        assert not has_capability(Role.STUDENT, Capability.VIEW_ADMIN_DASHBOARD)
        assert not has_capability(Role.STUDENT, Capability.MANAGE_USERS)
        assert not has_capability(Role.STUDENT, Capability.CHANGE_INCIDENT_STATUS)

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.SECURITY_HEAD, Role.PRINCIPAL])
    def test_status_authority(self, role):
        assert has_capability(role, Capability.CHANGE_INCIDENT_STATUS)

    @pytest.mark.parametrize("role", [Role.HOD, Role.CLASS_IN_CHARGE])
    def test_dashboard_without_status_authority(self, role):
        assert has_capability(role, Capability.VIEW_ADMIN_DASHBOARD)
        assert not has_capability(role, Capability.CHANGE_INCIDENT_STATUS)

    def test_admin_view_accepts_whole_group(self):
        assert roles_for(Capability.VIEW_ADMIN_DASHBOARD) == ADMIN_GROUP
        assert Role.SECURITY_HEAD in ADMIN_GROUP
        assert Role.STUDENT not in ADMIN_GROUP


class TestPortals:
    def test_student_portal(self):
        assert can_use_portal(Role.STUDENT, Portal.STUDENT)
        assert can_use_portal(Role.ADMIN, Portal.STUDENT)
        assert not can_use_portal(Role.HOD, Portal.STUDENT)

    def test_admin_portal(self):
        assert not can_use_portal(Role.STUDENT, Portal.ADMIN)
        for role in ADMIN_GROUP:
            assert can_use_portal(role, Portal.ADMIN)


def test_landing_path():
    assert landing_path(Role.STUDENT) == "/student/dashboard"
    assert landing_path(Role.PRINCIPAL) == "/admin/dashboard"
    assert is_admin_role(Role.CLASS_IN_CHARGE)
