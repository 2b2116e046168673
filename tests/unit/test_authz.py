"""
Unit tests for role hierarchy and ownership checks
"""

import pytest

from cms_auth.core.exceptions import InsufficientRoleError, OwnershipError
from cms_auth.models import UserRole
from cms_auth.services.authz_service import authorize_role, check_ownership, check_role


class TestRoleHierarchy:
    """Test UserRole ordering"""

    def test_ranks_are_ordered(self):
        assert UserRole.USER.rank < UserRole.CONTENT.rank < UserRole.ADMIN.rank

    @pytest.mark.parametrize("role,required,expected", [
        (UserRole.ADMIN, UserRole.USER, True),
        (UserRole.ADMIN, UserRole.ADMIN, True),
        (UserRole.CONTENT, UserRole.USER, True),
        (UserRole.CONTENT, UserRole.ADMIN, False),
        (UserRole.USER, UserRole.CONTENT, False),
    ])
    def test_satisfies(self, role, required, expected):
        assert role.satisfies(required) is expected


class TestAuthorizeRole:
    """Test authorize_role"""

    def test_content_passes_content_or_admin(self):
        assert authorize_role(UserRole.CONTENT, [UserRole.CONTENT, UserRole.ADMIN]) is True

    def test_content_passes_content(self):
        assert authorize_role(UserRole.CONTENT, [UserRole.CONTENT]) is True

    def test_user_fails_content(self):
        assert authorize_role(UserRole.USER, [UserRole.CONTENT, UserRole.ADMIN]) is False
        assert authorize_role(UserRole.USER, [UserRole.CONTENT]) is False

    def test_admin_passes_user(self):
        assert authorize_role(UserRole.ADMIN, [UserRole.USER]) is True

    def test_content_fails_admin_only(self):
        assert authorize_role(UserRole.CONTENT, [UserRole.ADMIN]) is False

    def test_accepts_strings(self):
        assert authorize_role("admin", ["content"]) is True

    @pytest.mark.parametrize("role", [None, "", "superuser"])
    def test_unknown_roles_never_pass(self, role):
        assert authorize_role(role, [UserRole.USER]) is False

    def test_empty_allowed_list(self):
        assert authorize_role(UserRole.ADMIN, []) is False


class TestChecks:
    """Test raising variants"""

    def test_check_role_error_details(self):
        with pytest.raises(InsufficientRoleError) as exc_info:
            check_role(UserRole.USER, [UserRole.CONTENT, UserRole.ADMIN])

        assert exc_info.value.status_code == 403
        assert exc_info.value.required == ["content", "admin"]
        assert exc_info.value.current == "user"

    def test_check_role_passes(self):
        check_role(UserRole.ADMIN, [UserRole.CONTENT])

    def test_owner_allowed(self):
        check_ownership("user-1", UserRole.USER, "user-1")

    def test_admin_bypasses_ownership(self):
        check_ownership("admin-1", UserRole.ADMIN, "user-1")

    def test_non_owner_rejected(self):
        with pytest.raises(OwnershipError):
            check_ownership("user-2", UserRole.CONTENT, "user-1")

    def test_missing_owner_rejected(self):
        with pytest.raises(OwnershipError):
            check_ownership("user-2", UserRole.USER, None)
