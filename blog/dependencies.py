from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from blog.models.identity import Identity
from blog.models.user import User
from blog.services.auth import AuthService, InvalidTokenError, TokenExpiredError
from blog.services.user import UserNotFoundError, UserStoreError

security = HTTPBearer(auto_error=False)
auth_service = AuthService()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> User:
    """Dependency for getting the current authenticated user.

    This dependency validates the bearer token and returns the user.
    Use this to protect routes that require authentication.

    Args:
        credentials: The HTTP Authorization header credentials, if any

    Returns:
        The authenticated user

    Raises:
        HTTPException: If authentication fails
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized to access this route",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await auth_service.get_current_user(credentials.credentials)
    except (InvalidTokenError, TokenExpiredError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except UserNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User no longer exists",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except UserStoreError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error"
        )


async def get_identity(
    current_user: Annotated[User, Depends(get_current_user)],
) -> Identity:
    """Dependency reducing the authenticated user to the identity that
    services authorize against."""
    return current_user.identity


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentIdentity = Annotated[Identity, Depends(get_identity)]
