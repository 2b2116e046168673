"""
User administration endpoints
"""

from fastapi import APIRouter, Depends

from cms_auth.api.dependencies import get_auth_service, require_ownership, require_role
from cms_auth.core.exceptions import UserNotFoundError
from cms_auth.models import UserRole
from cms_auth.schemas.auth import MessageResponse, UserResponse
from cms_auth.schemas.user import (
    ProfileUpdateRequest,
    RoleUpdateRequest,
    StatusUpdateRequest,
    UserDetailResponse,
)
from cms_auth.services.auth_service import AuthService


router = APIRouter()

require_owner_or_admin = require_ownership(lambda request: request.path_params.get("user_id"))


@router.get(
    "/{user_id}",
    response_model=UserDetailResponse,
    dependencies=[Depends(require_owner_or_admin)]
)
def get_user(
    user_id: str,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Get a user's profile

    **Authorization:** the user themself, or an admin
    """
    user = auth_service.get_user(user_id)
    if not user:
        raise UserNotFoundError()

    return UserDetailResponse(user=UserResponse.model_validate(user))


@router.patch(
    "/{user_id}/role",
    response_model=UserDetailResponse,
    dependencies=[Depends(require_role(UserRole.ADMIN))]
)
def update_user_role(
    user_id: str,
    request_data: RoleUpdateRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Change a user's role

    Takes effect on the user's next access token; tokens already issued
    keep the old role until they expire.
    """
    user = auth_service.update_role(user_id, request_data.role)
    return UserDetailResponse(user=UserResponse.model_validate(user))


@router.patch(
    "/{user_id}/status",
    response_model=UserDetailResponse,
    dependencies=[Depends(require_role(UserRole.ADMIN))]
)
def update_user_status(
    user_id: str,
    request_data: StatusUpdateRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Activate or deactivate a user

    A deactivated user cannot log in or refresh tokens.
    """
    user = auth_service.set_active(user_id, request_data.is_active)
    return UserDetailResponse(user=UserResponse.model_validate(user))


@router.patch(
    "/{user_id}",
    response_model=UserDetailResponse,
    dependencies=[Depends(require_owner_or_admin)]
)
def update_user_profile(
    user_id: str,
    request_data: ProfileUpdateRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Update a user's name and/or email

    **Authorization:** the user themself, or an admin

    **Errors:**
    - 400: Email already in use by another account
    - 404: User not found
    """
    user = auth_service.update_profile(
        user_id,
        full_name=request_data.full_name,
        email=request_data.email
    )
    return UserDetailResponse(user=UserResponse.model_validate(user))


@router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_role(UserRole.ADMIN))]
)
def delete_user(
    user_id: str,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Delete a user together with their 2FA settings

    **Authorization:** admin
    """
    auth_service.delete_user(user_id)
    return MessageResponse(message="User deleted successfully")
