import logging
from datetime import UTC, datetime
from typing import Any

from neo4j import ManagedTransaction
from pydantic import UUID4

from blog.db import DatabaseManager
from blog.models.identity import Capability, Identity, Role
from blog.models.user import SocialLinks, User, UserProfileUpdate
from blog.schemas.responses import Page, Pagination
from blog.utils.records import node_to_dict

logger = logging.getLogger(__name__)

SOCIAL_PREFIX = "social_"


def user_from_node(node: Any) -> User:
    """Build a User from a stored node.

    Social links are stored as flat `social_<network>` properties because
    node properties cannot hold maps; the password hash is left out.
    """
    data = node_to_dict(node)
    data.pop("password_hash", None)
    links = {
        key.removeprefix(SOCIAL_PREFIX): data.pop(key)
        for key in list(data)
        if key.startswith(SOCIAL_PREFIX)
    }
    return User(**data, social_links=SocialLinks(**links))


def social_properties(links: SocialLinks) -> dict[str, str]:
    return {
        f"{SOCIAL_PREFIX}{network}": url for network, url in links.model_dump().items()
    }


class UserError(Exception):
    """Base exception for user-related errors."""

    pass


class UserNotFoundError(UserError):
    """Exception raised when a user cannot be found."""

    pass


class UserForbiddenError(UserError):
    """Exception raised when the requester may not manage users."""

    pass


class UserStoreError(UserError):
    """Exception raised when the store fails unexpectedly."""

    pass


class UserService:
    """Service for reading and managing user profiles and roles."""

    async def get_user(self, user_id: UUID4) -> User:
        """Get a user's public profile.

        Args:
            user_id: ID of the user

        Returns:
            The user

        Raises:
            UserNotFoundError: If user not found
            UserStoreError: If the lookup fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(self._get_user, user_id)
        except UserError:
            raise
        except Exception as e:
            logger.exception("Failed to get user %s", user_id)
            raise UserStoreError(f"Failed to get user: {str(e)}") from e

    def _get_user(self, tx: ManagedTransaction, user_id: UUID4) -> User:
        query = """
        MATCH (user:User {user_id: $user_id})
        RETURN user
        """
        if record := tx.run(query, user_id=str(user_id)).single():
            return user_from_node(record["user"])
        raise UserNotFoundError("User not found")

    async def update_profile(
        self, requester: Identity, update: UserProfileUpdate
    ) -> User:
        """Update the requester's own profile.

        Social links are merged into the existing ones.

        Args:
            requester: The authenticated user
            update: The profile changes

        Returns:
            The updated user

        Raises:
            UserNotFoundError: If the requester no longer exists
            UserStoreError: If the update fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_write(
                    self._update_profile, requester.user_id, update
                )
        except UserError:
            raise
        except Exception as e:
            logger.exception("Failed to update profile of %s", requester.user_id)
            raise UserStoreError(f"Failed to update profile: {str(e)}") from e

    def _update_profile(
        self, tx: ManagedTransaction, user_id: UUID4, update: UserProfileUpdate
    ) -> User:
        existing = self._get_user(tx, user_id)
        props: dict[str, Any] = {
            "name": update.name,
            "updated_at": datetime.now(UTC),
        }
        if update.bio is not None:
            props["bio"] = update.bio
        if update.avatar:
            props["avatar"] = update.avatar
        if update.social_links:
            merged = SocialLinks(
                **{**existing.social_links.model_dump(), **update.social_links}
            )
            props.update(social_properties(merged))

        query = """
        MATCH (user:User {user_id: $user_id})
        SET user += $props
        RETURN user
        """
        if record := tx.run(query, user_id=str(user_id), props=props).single():
            return user_from_node(record["user"])
        raise UserNotFoundError("User not found")

    async def list_users(
        self,
        requester: Identity,
        search: str | None = None,
        role: Role | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[User]:
        """List users newest first. Admin only.

        Args:
            requester: The authenticated user
            search: Case-insensitive text matched against name and email
            role: Only users with this role
            page: 1-based page number
            limit: Maximum number of users per page

        Returns:
            The requested page of users

        Raises:
            UserForbiddenError: If requester may not manage users
            UserStoreError: If the listing fails
        """
        if not requester.can(Capability.MANAGE_USERS):
            raise UserForbiddenError("Not authorized to list users")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(
                    self._list_users, search, role, page, limit
                )
        except Exception as e:
            logger.exception("Failed to list users")
            raise UserStoreError(f"Failed to list users: {str(e)}") from e

    def _list_users(
        self,
        tx: ManagedTransaction,
        search: str | None,
        role: Role | None,
        page: int,
        limit: int,
    ) -> Page[User]:
        where = """
        WHERE ($role IS NULL OR user.role = $role)
          AND ($search IS NULL
               OR toLower(user.name) CONTAINS $search
               OR user.email CONTAINS $search)
        """
        params = {
            "role": role.value if role else None,
            "search": search.lower() if search else None,
        }
        total_record = tx.run(
            "MATCH (user:User)" + where + "RETURN count(user) AS total", **params
        ).single()
        total = total_record["total"] if total_record else 0

        query = (
            "MATCH (user:User)"
            + where
            + """
        RETURN user
        ORDER BY user.created_at DESC
        SKIP $skip
        LIMIT $limit
        """
        )
        result = tx.run(query, skip=(page - 1) * limit, limit=limit, **params)
        return Page[User](
            items=[user_from_node(record["user"]) for record in result],
            pagination=Pagination.build(total, page, limit),
        )

    async def update_role(
        self, requester: Identity, user_id: UUID4, role: Role
    ) -> User:
        """Change the role of a user. Admin only.

        Raises:
            UserForbiddenError: If requester may not manage users
            UserNotFoundError: If user not found
            UserStoreError: If the update fails
        """
        if not requester.can(Capability.MANAGE_USERS):
            raise UserForbiddenError("Not authorized to change roles")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                updated = session.execute_write(self._update_role, user_id, role)
        except UserError:
            raise
        except Exception as e:
            logger.exception("Failed to update role of %s", user_id)
            raise UserStoreError(f"Failed to update role: {str(e)}") from e

        logger.info(
            "User %s set role of %s to %s", requester.user_id, user_id, role.value
        )
        return updated

    def _update_role(self, tx: ManagedTransaction, user_id: UUID4, role: Role) -> User:
        query = """
        MATCH (user:User {user_id: $user_id})
        SET user.role = $role,
            user.updated_at = $current_time
        RETURN user
        """
        result = tx.run(
            query,
            user_id=str(user_id),
            role=role.value,
            current_time=datetime.now(UTC),
        )
        if record := result.single():
            return user_from_node(record["user"])
        raise UserNotFoundError("User not found")
