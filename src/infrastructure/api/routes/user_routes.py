from __future__ import annotations

from fastapi import APIRouter, Depends

from src.application.dtos.auth_dto import ProfileOut
from src.application.dtos.common_dto import ErrorResponse, SuccessResponse
from src.application.dtos.user_dto import (
    FIELD_ALIASES,
    UpdateUserRequest,
    UpdateUserResponse,
    UserResponse,
)
from src.application.use_cases.manage_profile import ManageProfileUseCase
from src.infrastructure.api.dependencies import get_current_user, get_profile_use_case

router = APIRouter(
    prefix="/api/users",
    tags=["Users"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized - Invalid or missing authentication token"},
        403: {"model": ErrorResponse, "description": "Forbidden - Users can only access their own profile"},
        404: {"model": ErrorResponse, "description": "Not Found - Profile does not exist"},
    },
)


@router.get(
    "/{uid}",
    response_model=UserResponse,
    summary="Get User Profile",
    description="""
    Retrieve a profile. Only the profile's own user may read it.

    **Authentication required**: Yes (Bearer token)
    """,
)
def get_user(
    uid: str,
    user=Depends(get_current_user),
    uc: ManageProfileUseCase = Depends(get_profile_use_case),
):
    """Get the caller's own profile."""
    return UserResponse(user=ProfileOut.from_entity(uc.get(user.id, uid)))


@router.put(
    "/{uid}",
    response_model=UpdateUserResponse,
    summary="Update User Profile",
    description="""
    Update `firstName`, `lastName`, `age` or `email`. Other fields in the body
    are ignored and blank values are skipped.

    Changing the email also changes the sign-in email and marks it
    unverified.

    **Authentication required**: Yes (Bearer token)
    """,
    responses={400: {"model": ErrorResponse, "description": "Bad Request - No valid fields or invalid values"}},
)
def update_user(
    uid: str,
    body: UpdateUserRequest,
    user=Depends(get_current_user),
    uc: ManageProfileUseCase = Depends(get_profile_use_case),
):
    """Update the caller's own profile."""
    profile, fields = uc.update(user.id, uid, body.model_dump(exclude_unset=True))
    return UpdateUserResponse(
        updated_fields=[FIELD_ALIASES[f] for f in fields],
        user=ProfileOut.from_entity(profile),
    )


@router.delete(
    "/{uid}",
    response_model=SuccessResponse,
    summary="Delete User Account",
    description="""
    Delete the profile and the sign-in account behind it. Irreversible.

    **Authentication required**: Yes (Bearer token)
    """,
)
def delete_user(
    uid: str,
    user=Depends(get_current_user),
    uc: ManageProfileUseCase = Depends(get_profile_use_case),
):
    """Delete the caller's own account."""
    uc.delete(user.id, uid)
    return SuccessResponse(message="User account deleted successfully")
