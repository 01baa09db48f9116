from datetime import datetime

from pydantic import UUID4, BaseModel, ConfigDict, Field, field_validator

from blog.models.user import AuthorSummary

MAX_COMMENT_LENGTH = 2000


class CommentBase(BaseModel):
    """Base model for comment data.

    This model contains the common fields shared between Comment, CommentCreate,
    and CommentUpdate models.

    Attributes:
        content: The text content of the comment, trimmed
    """

    model_config = ConfigDict(frozen=True)

    content: str = Field(min_length=1, max_length=MAX_COMMENT_LENGTH)

    @field_validator("content", mode="before")
    def strip_content(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v


class CommentCreate(CommentBase):
    """Model for creating a new comment.

    The author is not part of the payload; it is always the authenticated
    requester.

    Attributes:
        post_id: ID of the post being commented on
        parent_id: Optional ID of the top-level comment being replied to
    """

    post_id: UUID4
    parent_id: UUID4 | None = None


class CommentUpdate(CommentBase):
    """Model for updating an existing comment.

    Only the content can be updated.
    """

    pass


class Comment(CommentBase):
    """Model representing a comment on a post.

    Attributes:
        comment_id: Unique identifier for the comment
        post_id: ID of the post being commented on
        author: Display-safe projection of the comment's author
        parent_id: ID of the parent comment if this is a reply
        approved: Whether the comment is visible in threaded retrieval
        likes: IDs of users who liked the comment, most recent first
        created_at: When the comment was created
        updated_at: When the comment was last modified
    """

    comment_id: UUID4
    post_id: UUID4
    author: AuthorSummary
    parent_id: UUID4 | None = None
    approved: bool = True
    likes: list[UUID4] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None


class ThreadedComment(Comment):
    """A top-level comment together with its approved direct replies."""

    replies: list[Comment] = Field(default_factory=list)
