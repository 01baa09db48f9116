from fastapi import APIRouter, HTTPException, status
from pydantic import UUID4

from blog.dependencies import CurrentIdentity
from blog.models.comment import Comment, CommentCreate, CommentUpdate, ThreadedComment
from blog.schemas.responses import DataResponse, ListResponse, MessageResponse
from blog.services.comment import (
    CommentAlreadyLikedError,
    CommentError,
    CommentForbiddenError,
    CommentNotFoundError,
    CommentNotLikedError,
    CommentService,
    CommentValidationError,
)

router = APIRouter(prefix="/comments", tags=["comments"])
comment_service = CommentService()


def comment_http_error(e: CommentError) -> HTTPException:
    """Translate a comment service error into the HTTP error it surfaces as."""
    if isinstance(e, CommentNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, CommentForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(
        e, (CommentValidationError, CommentAlreadyLikedError, CommentNotLikedError)
    ):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error"
    )


@router.post(
    "",
    response_model=DataResponse[Comment],
    status_code=status.HTTP_201_CREATED,
)
async def create_comment(
    comment: CommentCreate,
    identity: CurrentIdentity,
) -> DataResponse[Comment]:
    """Create a comment on a post, or a reply to a top-level comment.

    Args:
        comment: The comment data
        identity: The authenticated author

    Returns:
        The created comment with its author expanded

    Raises:
        HTTPException: 404 if the post or parent is missing, 400 if the
            parent cannot take replies
    """
    try:
        created = await comment_service.create_comment(comment, identity)
    except CommentError as e:
        raise comment_http_error(e)
    return DataResponse[Comment](data=created)


@router.get("/post/{post_id}", response_model=ListResponse[ThreadedComment])
async def get_post_comments(post_id: UUID4) -> ListResponse[ThreadedComment]:
    """Get the approved comments of a post, threaded one level deep.

    Args:
        post_id: ID of the post

    Returns:
        Top-level comments newest first, replies oldest first
    """
    try:
        thread = await comment_service.get_post_thread(post_id)
    except CommentError as e:
        raise comment_http_error(e)
    return ListResponse[ThreadedComment].of(thread)


@router.get("/{comment_id}", response_model=DataResponse[Comment])
async def get_comment(comment_id: UUID4) -> DataResponse[Comment]:
    """Get a single comment by ID."""
    try:
        return DataResponse[Comment](data=await comment_service.get_comment(comment_id))
    except CommentError as e:
        raise comment_http_error(e)


@router.put("/like/{comment_id}", response_model=DataResponse[list[UUID4]])
async def like_comment(
    comment_id: UUID4,
    identity: CurrentIdentity,
) -> DataResponse[list[UUID4]]:
    """Like a comment.

    Returns:
        IDs of users who like the comment, most recent first

    Raises:
        HTTPException: 404 if the comment is missing, 400 if already liked
    """
    try:
        likes = await comment_service.like_comment(comment_id, identity)
    except CommentError as e:
        raise comment_http_error(e)
    return DataResponse[list[UUID4]](data=likes)


@router.put("/unlike/{comment_id}", response_model=DataResponse[list[UUID4]])
async def unlike_comment(
    comment_id: UUID4,
    identity: CurrentIdentity,
) -> DataResponse[list[UUID4]]:
    """Remove the requester's like from a comment.

    Raises:
        HTTPException: 404 if the comment is missing, 400 if not yet liked
    """
    try:
        likes = await comment_service.unlike_comment(comment_id, identity)
    except CommentError as e:
        raise comment_http_error(e)
    return DataResponse[list[UUID4]](data=likes)


@router.put("/approve/{comment_id}", response_model=DataResponse[Comment])
async def approve_comment(
    comment_id: UUID4,
    identity: CurrentIdentity,
) -> DataResponse[Comment]:
    """Approve a comment. Admin only.

    Raises:
        HTTPException: 403 for non-admins, 404 if the comment is missing
    """
    try:
        approved = await comment_service.approve_comment(comment_id, identity)
    except CommentError as e:
        raise comment_http_error(e)
    return DataResponse[Comment](data=approved)


@router.put("/{comment_id}", response_model=DataResponse[Comment])
async def update_comment(
    comment_id: UUID4,
    comment: CommentUpdate,
    identity: CurrentIdentity,
) -> DataResponse[Comment]:
    """Edit the content of a comment.

    Args:
        comment_id: ID of the comment to update
        comment: The new content
        identity: The authenticated user

    Returns:
        The updated comment

    Raises:
        HTTPException: 403 unless author or admin, 404 if missing
    """
    try:
        updated = await comment_service.update_comment(comment_id, comment, identity)
    except CommentError as e:
        raise comment_http_error(e)
    return DataResponse[Comment](data=updated)


@router.delete("/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: UUID4,
    identity: CurrentIdentity,
) -> MessageResponse:
    """Delete a comment; deleting a top-level comment removes its replies too.

    Raises:
        HTTPException: 403 unless author or admin, 404 if missing
    """
    try:
        await comment_service.delete_comment(comment_id, identity)
    except CommentError as e:
        raise comment_http_error(e)
    return MessageResponse(success=True, message="Comment removed")
