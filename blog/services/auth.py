import logging
from datetime import UTC, datetime, timedelta
from os import environ
from typing import Any, cast
from uuid import UUID, uuid4

from jose import ExpiredSignatureError, JWTError, jwt
from neo4j import ManagedTransaction
from passlib.context import CryptContext
from pydantic import UUID4

from blog.db import DatabaseManager
from blog.models.identity import Role
from blog.models.user import (
    DEFAULT_AVATAR,
    AuthToken,
    PasswordChange,
    SocialLinks,
    User,
    UserCreate,
    UserLogin,
)
from blog.services.user import (
    UserError,
    UserNotFoundError,
    UserStoreError,
    social_properties,
    user_from_node,
)

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_EXPIRE_MINUTES = 30 * 24 * 60

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthError(Exception):
    """Base exception for auth-related errors."""

    pass


class InvalidTokenError(AuthError):
    """Exception raised when a token is invalid."""

    pass


class TokenExpiredError(AuthError):
    """Exception raised when a token has expired."""

    pass


class InvalidCredentialsError(AuthError):
    """Exception raised when an email/password pair does not match."""

    pass


class UserExistsError(AuthError):
    """Exception raised when registering an email that is already taken."""

    pass


class AuthService:
    """Service for registering users, checking passwords and issuing tokens.

    Tokens are HS256-signed JWTs whose subject is the user ID.

    Attributes:
        secret_key: Key used to sign and verify tokens
        algorithm: JWT signing algorithm
        expire_minutes: Lifetime of an issued token
    """

    def __init__(self) -> None:
        self.secret_key: str = environ.get("JWT_SECRET_KEY", "change-me")
        self.algorithm: str = environ.get("JWT_ALGORITHM", "HS256")
        self.expire_minutes: int = int(
            environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", DEFAULT_TOKEN_EXPIRE_MINUTES)
        )

    def hash_password(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        return pwd_context.verify(password, password_hash)

    def create_access_token(self, user_id: UUID4) -> str:
        """Issue a bearer token for a user.

        Args:
            user_id: ID of the user the token identifies

        Returns:
            The encoded JWT
        """
        expire = datetime.now(UTC) + timedelta(minutes=self.expire_minutes)
        claims = {"sub": str(user_id), "exp": expire, "type": "access"}
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def validate_token(self, token: str) -> dict[str, Any]:
        """Validate a bearer token.

        Args:
            token: The JWT token to validate

        Returns:
            The decoded token payload

        Raises:
            InvalidTokenError: If token is invalid
            TokenExpiredError: If token has expired
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {str(e)}")

        if payload.get("type") != "access" or not payload.get("sub"):
            raise InvalidTokenError("Invalid token: not an access token")
        return cast(dict[str, Any], payload)

    async def get_current_user(self, token: str) -> User:
        """Get the current authenticated user from token.

        Args:
            token: The JWT token string

        Returns:
            The authenticated user

        Raises:
            InvalidTokenError: If token is invalid
            TokenExpiredError: If token has expired
            UserNotFoundError: If the token's user no longer exists
            UserStoreError: If the user lookup fails
        """
        payload = self.validate_token(token)
        try:
            user_id = UUID(payload["sub"])
        except ValueError:
            raise InvalidTokenError("Invalid token: malformed subject")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(self._get_user_by_id, user_id)
        except (AuthError, UserError):
            raise
        except Exception as e:
            logger.exception("Failed to resolve user %s", user_id)
            raise UserStoreError(f"Failed to get user: {str(e)}") from e

    def _get_user_by_id(self, tx: ManagedTransaction, user_id: UUID4) -> User:
        query = """
        MATCH (user:User {user_id: $user_id})
        RETURN user
        """
        if record := tx.run(query, user_id=str(user_id)).single():
            return user_from_node(record["user"])
        raise UserNotFoundError("User not found")

    async def register(self, user: UserCreate) -> AuthToken:
        """Register a new user and issue their first token.

        Args:
            user: Registration data

        Returns:
            The token and the created user

        Raises:
            UserExistsError: If the email is already registered
        """
        db_manager = DatabaseManager()
        with db_manager.driver.session(database=db_manager.database) as session:
            created = session.execute_write(
                self._create_user, user, self.hash_password(user.password)
            )
        logger.info("Registered user %s", created.user_id)
        return AuthToken(token=self.create_access_token(created.user_id), user=created)

    def _create_user(
        self, tx: ManagedTransaction, user: UserCreate, password_hash: str
    ) -> User:
        check_query = """
        MATCH (user:User {email: $email})
        RETURN count(user) AS count
        """
        count = tx.run(check_query, email=user.email).single()
        if count and count["count"] > 0:
            raise UserExistsError("User already exists")

        query = """
        CREATE (user:User {
            user_id: $user_id,
            name: $name,
            email: $email,
            password_hash: $password_hash,
            avatar: $avatar,
            bio: '',
            role: $role,
            is_verified: false,
            created_at: $current_time,
            updated_at: $current_time
        })
        SET user += $social
        RETURN user
        """
        result = tx.run(
            query,
            user_id=str(uuid4()),
            name=user.name,
            email=user.email,
            password_hash=password_hash,
            avatar=DEFAULT_AVATAR,
            role=Role.USER.value,
            social=social_properties(SocialLinks()),
            current_time=datetime.now(UTC),
        )
        if record := result.single():
            return user_from_node(record["user"])
        raise ValueError("Failed to create user")

    async def login(self, credentials: UserLogin) -> AuthToken:
        """Check an email/password pair and issue a token.

        Raises:
            InvalidCredentialsError: If the email is unknown or the password wrong
        """
        db_manager = DatabaseManager()
        with db_manager.driver.session(database=db_manager.database) as session:
            record = session.execute_read(self._get_credentials, credentials.email)

        if record is None or not self.verify_password(
            credentials.password, record["password_hash"]
        ):
            raise InvalidCredentialsError("Invalid credentials")

        user = user_from_node(record["user"])
        return AuthToken(token=self.create_access_token(user.user_id), user=user)

    def _get_credentials(
        self, tx: ManagedTransaction, email: str
    ) -> dict[str, Any] | None:
        query = """
        MATCH (user:User {email: $email})
        RETURN user, user.password_hash AS password_hash
        """
        if record := tx.run(query, email=email).single():
            return {"user": record["user"], "password_hash": record["password_hash"]}
        return None

    async def change_password(self, user_id: UUID4, change: PasswordChange) -> None:
        """Replace a user's password after checking the current one.

        Raises:
            InvalidCredentialsError: If the current password is incorrect
            UserNotFoundError: If the user no longer exists
        """
        db_manager = DatabaseManager()
        with db_manager.driver.session(database=db_manager.database) as session:
            session.execute_write(self._change_password, user_id, change)
        logger.info("User %s changed their password", user_id)

    def _change_password(
        self, tx: ManagedTransaction, user_id: UUID4, change: PasswordChange
    ) -> None:
        query = """
        MATCH (user:User {user_id: $user_id})
        RETURN user.password_hash AS password_hash
        """
        record = tx.run(query, user_id=str(user_id)).single()
        if record is None:
            raise UserNotFoundError("User not found")
        if not self.verify_password(change.current_password, record["password_hash"]):
            raise InvalidCredentialsError("Current password is incorrect")

        update_query = """
        MATCH (user:User {user_id: $user_id})
        SET user.password_hash = $password_hash,
            user.updated_at = $current_time
        """
        tx.run(
            update_query,
            user_id=str(user_id),
            password_hash=self.hash_password(change.new_password),
            current_time=datetime.now(UTC),
        ).consume()
