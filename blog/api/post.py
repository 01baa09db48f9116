from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import UUID4

from blog.api.comment import comment_service
from blog.api.user import user_http_error, user_service
from blog.dependencies import CurrentIdentity
from blog.models.post import (
    Post,
    PostCreate,
    PostDetail,
    PostFilter,
    PostSortField,
    PostStatus,
    PostUpdate,
    SortOrder,
)
from blog.schemas.responses import DataResponse, MessageResponse, PageResponse
from blog.services.post import (
    PostError,
    PostForbiddenError,
    PostNotFoundError,
    PostService,
)
from blog.services.user import UserError

router = APIRouter(prefix="/posts", tags=["posts"])
post_service = PostService()

PageQuery = Annotated[int, Query(ge=1)]
LimitQuery = Annotated[int, Query(ge=1, le=100)]


def post_http_error(e: PostError) -> HTTPException:
    """Translate a post service error into the HTTP error it surfaces as."""
    if isinstance(e, PostNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, PostForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error"
    )


async def with_details(post: Post) -> PostDetail:
    try:
        author = await user_service.get_user(post.author.user_id)
    except UserError as e:
        raise user_http_error(e)
    thread = await comment_service.get_post_thread(post.post_id)
    return PostDetail(
        **post.model_dump(exclude={"author"}), author=author.profile, comments=thread
    )


@router.get("", response_model=PageResponse[Post])
async def list_posts(
    search: str | None = None,
    category: UUID4 | None = None,
    tag: UUID4 | None = None,
    author: UUID4 | None = None,
    sort_by: PostSortField = PostSortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    page: PageQuery = 1,
    limit: LimitQuery = 10,
) -> PageResponse[Post]:
    """List published posts.

    Args:
        search: Text matched against title, excerpt and content
        category: Only posts in this category
        tag: Only posts with this tag
        author: Only posts by this author
        sort_by: Field to sort on
        sort_order: Sort direction
        page: 1-based page number
        limit: Maximum number of posts per page

    Returns:
        One page of posts with pagination metadata
    """
    filters = PostFilter(
        search=search or None,
        category_id=category,
        tag_id=tag,
        author_id=author,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    try:
        result = await post_service.list_posts(filters, page=page, limit=limit)
    except PostError as e:
        raise post_http_error(e)
    return PageResponse[Post].of(result)


@router.get("/dashboard/myposts", response_model=PageResponse[Post])
async def list_my_posts(
    identity: CurrentIdentity,
    post_status: Annotated[PostStatus | None, Query(alias="status")] = None,
    page: PageQuery = 1,
    limit: LimitQuery = 10,
) -> PageResponse[Post]:
    """List the requester's own posts in any state, drafts included."""
    filters = PostFilter(author_id=identity.user_id, status=post_status)
    try:
        result = await post_service.list_posts(filters, page=page, limit=limit)
    except PostError as e:
        raise post_http_error(e)
    return PageResponse[Post].of(result)


@router.get("/user/{user_id}", response_model=PageResponse[Post])
async def list_user_posts(
    user_id: UUID4,
    page: PageQuery = 1,
    limit: LimitQuery = 10,
) -> PageResponse[Post]:
    """List the published posts of a user, newest first."""
    try:
        result = await post_service.list_posts(
            PostFilter(author_id=user_id), page=page, limit=limit
        )
    except PostError as e:
        raise post_http_error(e)
    return PageResponse[Post].of(result)


@router.get("/slug/{slug}", response_model=DataResponse[PostDetail])
async def get_post_by_slug(slug: str) -> DataResponse[PostDetail]:
    """Get a post by slug with its author profile and threaded comments, counting the view."""
    try:
        post = await post_service.get_post_by_slug(slug)
    except PostError as e:
        raise post_http_error(e)
    return DataResponse[PostDetail](data=await with_details(post))


@router.get("/{post_id}", response_model=DataResponse[PostDetail])
async def get_post(post_id: UUID4) -> DataResponse[PostDetail]:
    """Get a post by ID with its threaded comments, counting the view.

    Args:
        post_id: ID of the post to get

    Returns:
        The post, its author profile and its approved comments

    Raises:
        HTTPException: If post not found
    """
    try:
        post = await post_service.get_post(post_id, count_view=True)
    except PostError as e:
        raise post_http_error(e)
    return DataResponse[PostDetail](data=await with_details(post))


@router.post(
    "", response_model=DataResponse[Post], status_code=status.HTTP_201_CREATED
)
async def create_post(
    post: PostCreate,
    identity: CurrentIdentity,
) -> DataResponse[Post]:
    """Create a new post authored by the requester.

    Args:
        post: The post data
        identity: The authenticated author

    Returns:
        The created post
    """
    try:
        created = await post_service.create_post(post, identity)
    except PostError as e:
        raise post_http_error(e)
    return DataResponse[Post](data=created)


@router.put("/{post_id}", response_model=DataResponse[Post])
async def update_post(
    post_id: UUID4,
    post: PostUpdate,
    identity: CurrentIdentity,
) -> DataResponse[Post]:
    """Update a post.

    Args:
        post_id: ID of the post to update
        post: The updated post data
        identity: The authenticated user

    Returns:
        The updated post

    Raises:
        HTTPException: If post not found or user not authorized
    """
    try:
        updated = await post_service.update_post(post_id, post, identity)
    except PostError as e:
        raise post_http_error(e)
    return DataResponse[Post](data=updated)


@router.delete("/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: UUID4,
    identity: CurrentIdentity,
) -> MessageResponse:
    """Delete a post and its comments.

    Raises:
        HTTPException: If post not found or user not authorized
    """
    try:
        await post_service.delete_post(post_id, identity)
    except PostError as e:
        raise post_http_error(e)
    return MessageResponse(success=True, message="Post removed")
