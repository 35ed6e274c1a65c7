"""
Tests for role decoding and the authorization gate.
"""

import pytest

from storefront.core.roles import (
    ANONYMOUS,
    Caller,
    Role,
    has_dashboard_access,
    has_read_write_access,
    is_admin,
    is_demo_admin,
)


class TestRoleDecoding:
    @pytest.mark.parametrize(
        "claim, expected",
        [
            ("admin", Role.ADMIN),
            ("demo_admin", Role.DEMO_ADMIN),
            (None, Role.NONE),
            ("", Role.NONE),
            ("Admin", Role.NONE),
            ("superuser", Role.NONE),
        ],
    )
    def test_from_claim(self, claim, expected):
        assert Role.from_claim(claim) is expected


class TestAuthorizationGate:
    def test_admin_has_read_write_access(self):
        assert has_read_write_access(Role.ADMIN) is True

    def test_demo_admin_has_no_read_write_access(self):
        assert has_read_write_access(Role.DEMO_ADMIN) is False

    @pytest.mark.parametrize("role", [None, Role.NONE])
    def test_missing_role_has_no_access(self, role):
        assert has_read_write_access(role) is False
        assert has_dashboard_access(role) is False

    def test_demo_admin_sees_dashboard_but_cannot_write(self):
        assert has_dashboard_access(Role.DEMO_ADMIN) is True
        assert has_read_write_access(Role.DEMO_ADMIN) is False

    def test_admin_sees_dashboard(self):
        assert has_dashboard_access(Role.ADMIN) is True

    def test_predicates(self):
        assert is_admin(Role.ADMIN) and not is_admin(Role.DEMO_ADMIN)
        assert is_demo_admin(Role.DEMO_ADMIN) and not is_demo_admin(Role.ADMIN)


class TestCaller:
    def test_anonymous(self):
        assert ANONYMOUS.is_authenticated is False
        assert ANONYMOUS.role is Role.NONE

    def test_authenticated_default_role(self):
        caller = Caller(id="u1")
        assert caller.is_authenticated is True
        assert caller.role is Role.NONE
