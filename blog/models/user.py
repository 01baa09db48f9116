from datetime import datetime

from pydantic import UUID4, BaseModel, ConfigDict, EmailStr, Field, field_validator

from blog.models.identity import Identity, Role

DEFAULT_AVATAR = (
    "https://res.cloudinary.com/demo/image/upload/v1580125061/"
    "samples/people/default-avatar.jpg"
)


class SocialLinks(BaseModel):
    """Links to a user's profiles elsewhere."""

    model_config = ConfigDict(frozen=True)

    twitter: str = ""
    facebook: str = ""
    instagram: str = ""
    linkedin: str = ""
    website: str = ""


class UserCreate(BaseModel):
    """Model for registering a new user.

    Attributes:
        name: Display name
        email: Login email, stored lower-case
        password: Plain text password, hashed before storage
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)

    @field_validator("name")
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    @field_validator("email")
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class UserLogin(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class UserProfileUpdate(BaseModel):
    """Model for updating the current user's own profile.

    Only the name is required; omitted fields are left unchanged and social
    links are merged into the existing ones.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    bio: str | None = Field(None, max_length=500)
    avatar: str | None = None
    social_links: dict[str, str] | None = None


class PasswordChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


class RoleUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role


class AuthorSummary(BaseModel):
    """Display-safe projection of a user attached to posts and comments."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID4
    name: str
    avatar: str = DEFAULT_AVATAR


class AuthorProfile(AuthorSummary):
    """Author projection shown on a post's detail view."""

    bio: str = ""
    social_links: SocialLinks = Field(default_factory=SocialLinks)


class User(BaseModel):
    """User model representing a user in the system.

    The password hash is never part of this model; it only lives in the
    store and inside the auth service.

    Attributes:
        user_id: Unique identifier for the user
        name: Display name
        email: Login email address
        avatar: URL of the profile picture
        bio: Short biography
        role: Role that gates privileged operations
        social_links: Links to profiles elsewhere
        is_verified: Whether the email has been verified
        created_at: When the account was created
        updated_at: When the account was last modified
    """

    model_config = ConfigDict(frozen=True)

    user_id: UUID4
    name: str
    email: EmailStr
    avatar: str = DEFAULT_AVATAR
    bio: str = Field(default="", max_length=500)
    role: Role = Role.USER
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    is_verified: bool = False
    created_at: datetime
    updated_at: datetime | None = None

    @property
    def identity(self) -> Identity:
        return Identity(user_id=self.user_id, role=self.role)

    @property
    def summary(self) -> AuthorSummary:
        return AuthorSummary(user_id=self.user_id, name=self.name, avatar=self.avatar)

    @property
    def profile(self) -> AuthorProfile:
        return AuthorProfile(
            **self.summary.model_dump(), bio=self.bio, social_links=self.social_links
        )


class AuthToken(BaseModel):
    """A freshly issued bearer token together with the user it belongs to."""

    model_config = ConfigDict(frozen=True)

    token: str
    user: User
