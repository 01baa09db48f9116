from fastapi import APIRouter, HTTPException, status

from blog.dependencies import CurrentUser, auth_service
from blog.models.user import AuthToken, User, UserCreate, UserLogin
from blog.schemas.responses import DataResponse, MessageResponse
from blog.services.auth import AuthError, InvalidCredentialsError, UserExistsError

router = APIRouter(prefix="/auth", tags=["auth"])


def auth_http_error(e: AuthError) -> HTTPException:
    if isinstance(e, (UserExistsError, InvalidCredentialsError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


@router.post(
    "/register",
    response_model=DataResponse[AuthToken],
    status_code=status.HTTP_201_CREATED,
)
async def register(user: UserCreate) -> DataResponse[AuthToken]:
    """Register a new account.

    Args:
        user: Name, email and password of the new account

    Returns:
        A bearer token and the created user

    Raises:
        HTTPException: 400 if the email is already registered
    """
    try:
        token = await auth_service.register(user)
    except AuthError as e:
        raise auth_http_error(e)
    return DataResponse[AuthToken](data=token)


@router.post("/login", response_model=DataResponse[AuthToken])
async def login(credentials: UserLogin) -> DataResponse[AuthToken]:
    """Exchange an email and password for a bearer token.

    Raises:
        HTTPException: 400 if the credentials do not match
    """
    try:
        token = await auth_service.login(credentials)
    except AuthError as e:
        raise auth_http_error(e)
    return DataResponse[AuthToken](data=token)


@router.get("/me", response_model=DataResponse[User])
async def get_me(current_user: CurrentUser) -> DataResponse[User]:
    """Get the current user's profile.

    This is a protected endpoint that requires authentication.
    The user is fetched from the bearer token.
    """
    return DataResponse[User](data=current_user)


@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: CurrentUser) -> MessageResponse:
    # Tokens are stateless; clients discard theirs.
    return MessageResponse(success=True, message="Logged out")
