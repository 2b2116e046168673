"""
Authorization checks - role hierarchy and resource ownership

Pure functions; the FastAPI guards in `cms_auth.api.dependencies` wrap
them and turn failures into 401/403 responses.
"""

from typing import Iterable, Optional, Union

from cms_auth.core.exceptions import InsufficientRoleError, OwnershipError
from cms_auth.models.user import UserRole


RoleLike = Union[UserRole, str]


def authorize_role(role: Optional[RoleLike], allowed: Iterable[RoleLike]) -> bool:
    """
    Check a role against a set of allowed roles

    The hierarchy is user < content < admin, so a role passes if it
    satisfies any allowed role, i.e. at least the lowest-ranked one.

    Args:
        role: Caller's role (None or unknown values never pass)
        allowed: Roles the operation is open to

    Returns:
        True if authorized
    """
    try:
        current = UserRole(role)
    except ValueError:
        return False

    return any(current.satisfies(UserRole(required)) for required in allowed)


def check_role(role: Optional[RoleLike], allowed: Iterable[RoleLike]) -> None:
    """
    Raise unless `role` passes `authorize_role`

    Raises:
        InsufficientRoleError: Carries the allowed roles and the caller's role
    """
    allowed = [UserRole(r) for r in allowed]
    if not authorize_role(role, allowed):
        current = role.value if isinstance(role, UserRole) else str(role)
        raise InsufficientRoleError(required=[r.value for r in allowed], current=current)


def check_ownership(user_id: str, role: RoleLike, owner_id: Optional[str]) -> None:
    """
    Require the caller to own the resource; admins bypass

    Raises:
        OwnershipError: If the caller is neither owner nor admin
    """
    if authorize_role(role, [UserRole.ADMIN]):
        return

    if owner_id is None or str(owner_id) != str(user_id):
        raise OwnershipError()
