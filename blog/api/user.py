from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import UUID4

from blog.dependencies import CurrentIdentity, auth_service
from blog.models.identity import Role
from blog.models.user import PasswordChange, RoleUpdate, User, UserProfileUpdate
from blog.schemas.responses import DataResponse, MessageResponse, PageResponse
from blog.services.auth import InvalidCredentialsError
from blog.services.user import (
    UserError,
    UserForbiddenError,
    UserNotFoundError,
    UserService,
)

router = APIRouter(prefix="/users", tags=["users"])
user_service = UserService()


def user_http_error(e: UserError) -> HTTPException:
    if isinstance(e, UserNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, UserForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error"
    )


@router.get("/profile/{user_id}", response_model=DataResponse[User])
async def get_profile(user_id: UUID4) -> DataResponse[User]:
    """Get a user's public profile."""
    try:
        user = await user_service.get_user(user_id)
    except UserError as e:
        raise user_http_error(e)
    return DataResponse[User](data=user)


@router.put("/profile", response_model=DataResponse[User])
async def update_profile(
    update: UserProfileUpdate,
    identity: CurrentIdentity,
) -> DataResponse[User]:
    """Update the requester's own profile.

    Args:
        update: New name, bio, avatar and social links
        identity: The authenticated user

    Returns:
        The updated user
    """
    try:
        user = await user_service.update_profile(identity, update)
    except UserError as e:
        raise user_http_error(e)
    return DataResponse[User](data=user)


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    change: PasswordChange,
    identity: CurrentIdentity,
) -> MessageResponse:
    """Change the requester's password.

    Raises:
        HTTPException: 400 if the current password is incorrect
    """
    try:
        await auth_service.change_password(identity.user_id, change)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UserError as e:
        raise user_http_error(e)
    return MessageResponse(success=True, message="Password updated")


@router.get("", response_model=PageResponse[User])
async def list_users(
    identity: CurrentIdentity,
    search: str | None = None,
    role: Role | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> PageResponse[User]:
    """List users newest first. Admin only."""
    try:
        result = await user_service.list_users(
            identity, search=search or None, role=role, page=page, limit=limit
        )
    except UserError as e:
        raise user_http_error(e)
    return PageResponse[User].of(result)


@router.put("/{user_id}/role", response_model=DataResponse[User])
async def update_role(
    user_id: UUID4,
    update: RoleUpdate,
    identity: CurrentIdentity,
) -> DataResponse[User]:
    """Change a user's role. Admin only.

    Raises:
        HTTPException: 403 for non-admins, 404 if the user is missing
    """
    try:
        user = await user_service.update_role(identity, user_id, update.role)
    except UserError as e:
        raise user_http_error(e)
    return DataResponse[User](data=user)
