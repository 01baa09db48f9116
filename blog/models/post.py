from datetime import datetime
from enum import Enum

from pydantic import UUID4, BaseModel, ConfigDict, Field, field_validator

from blog.models.category import CategorySummary
from blog.models.comment import ThreadedComment
from blog.models.tag import TagSummary
from blog.models.user import AuthorProfile, AuthorSummary

DEFAULT_COVER_IMAGE = (
    "https://res.cloudinary.com/demo/image/upload/v1580125061/"
    "samples/landscapes/default-blog-cover.jpg"
)


class PostStatus(str, Enum):
    """Publication states of a post.

    Attributes:
        DRAFT: Only visible to its author
        PUBLISHED: Publicly listed
        ARCHIVED: Hidden from listings but kept
    """

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class PostSortField(str, Enum):
    CREATED_AT = "created_at"
    TITLE = "title"
    VIEW_COUNT = "view_count"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class PostBase(BaseModel):
    """Base model for post data.

    This model contains the common fields shared between Post, PostCreate,
    and PostUpdate models.

    Attributes:
        title: Title of the post, source of the slug
        content: Body of the post
        excerpt: Short summary shown in listings
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1, max_length=200, description="Title of the post")
    content: str = Field(min_length=1, description="Body of the post")
    excerpt: str = Field(
        min_length=1, max_length=500, description="Short summary shown in listings"
    )

    @field_validator("title", "content", "excerpt", mode="before")
    def strip_text(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v


class PostCreate(PostBase):
    """Model for creating a new post.

    The author is always the authenticated requester.
    """

    cover_image: str | None = Field(None, description="URL of the cover image")
    category_ids: list[UUID4] = Field(default_factory=list)
    tag_ids: list[UUID4] = Field(default_factory=list)
    status: PostStatus = Field(default=PostStatus.DRAFT)
    featured: bool = Field(default=False)
    scheduled_for: datetime | None = Field(None, description="Planned publish time")


class PostUpdate(PostBase):
    """Model for updating an existing post.

    Title, content and excerpt are always replaced; every other field is
    only changed when it is provided.
    """

    cover_image: str | None = None
    category_ids: list[UUID4] | None = None
    tag_ids: list[UUID4] | None = None
    status: PostStatus | None = None
    featured: bool | None = None
    scheduled_for: datetime | None = None


class Post(PostBase):
    """Model representing a blog post.

    Attributes:
        post_id: Unique identifier for the post
        slug: Unique URL slug derived from the title
        author: Display-safe projection of the author
        cover_image: URL of the cover image
        categories: Categories the post is filed under
        tags: Tags attached to the post
        status: Publication state
        featured: Whether the post is featured
        view_count: Number of views while published
        read_time: Estimated reading time in minutes
        scheduled_for: Planned publish time if any
        created_at: When the post was created
        updated_at: When the post was last modified
    """

    post_id: UUID4
    slug: str
    author: AuthorSummary
    cover_image: str = DEFAULT_COVER_IMAGE
    categories: list[CategorySummary] = Field(default_factory=list)
    tags: list[TagSummary] = Field(default_factory=list)
    status: PostStatus = PostStatus.DRAFT
    featured: bool = False
    view_count: int = Field(default=0, ge=0)
    read_time: int = Field(default=1, ge=0)
    scheduled_for: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PostDetail(Post):
    """A post with its author's profile and its approved, threaded comments."""

    author: AuthorProfile
    comments: list[ThreadedComment] = Field(default_factory=list)


class PostFilter(BaseModel):
    """Listing filters for posts.

    Attributes:
        search: Case-insensitive text matched against title, excerpt and content
        category_id: Only posts in this category
        tag_id: Only posts with this tag
        author_id: Only posts by this author
        status: Only posts in this state; None means any state
    """

    model_config = ConfigDict(frozen=True)

    search: str | None = None
    category_id: UUID4 | None = None
    tag_id: UUID4 | None = None
    author_id: UUID4 | None = None
    status: PostStatus | None = PostStatus.PUBLISHED
    sort_by: PostSortField = PostSortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
