from enum import Enum

from pydantic import UUID4, BaseModel, ConfigDict


class Role(str, Enum):
    """Roles a user account can hold.

    Attributes:
        USER: A regular reader/author
        EDITOR: May curate tags
        ADMIN: Full moderation and management rights
    """

    USER = "user"
    EDITOR = "editor"
    ADMIN = "admin"


class Capability(str, Enum):
    """Named permissions checked by role-gated operations."""

    MODERATE_COMMENTS = "moderate_comments"
    MANAGE_ANY_POST = "manage_any_post"
    MANAGE_CATEGORIES = "manage_categories"
    MANAGE_TAGS = "manage_tags"
    DELETE_TAGS = "delete_tags"
    MANAGE_USERS = "manage_users"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.USER: frozenset(),
    Role.EDITOR: frozenset({Capability.MANAGE_TAGS}),
    Role.ADMIN: frozenset(Capability),
}

missing_roles = set(Role) - ROLE_CAPABILITIES.keys()
if missing_roles:
    raise RuntimeError(f"Roles without a capability set: {sorted(missing_roles)}")


def has_capability(role: Role, capability: Capability) -> bool:
    """Check whether a role grants a capability.

    Args:
        role: The role to check
        capability: The capability required

    Returns:
        True if the role holds the capability
    """
    return capability in ROLE_CAPABILITIES[role]


class Identity(BaseModel):
    """The authenticated requester, passed explicitly into service calls.

    Attributes:
        user_id: ID of the authenticated user
        role: Role the user held when the request was authenticated
    """

    model_config = ConfigDict(frozen=True)

    user_id: UUID4
    role: Role = Role.USER

    def can(self, capability: Capability) -> bool:
        return has_capability(self.role, capability)

    def owns_or_can(self, owner_id: UUID4, capability: Capability) -> bool:
        """True if the requester is the owner or holds the capability."""
        return self.user_id == owner_id or self.can(capability)
