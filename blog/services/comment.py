import logging
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from neo4j import ManagedTransaction, Record
from pydantic import UUID4

from blog.db import DatabaseManager
from blog.models.comment import Comment, CommentCreate, CommentUpdate, ThreadedComment
from blog.models.identity import Capability, Identity
from blog.models.user import AuthorSummary
from blog.services.post import PostService
from blog.utils.records import node_to_dict

logger = logging.getLogger(__name__)

# Expands a matched `comment` into the author projection and its likes,
# most recent like first.
COMMENT_PROJECTION = """
MATCH (author:User)-[:AUTHORED]->(comment)
OPTIONAL MATCH (liker:User)-[like:LIKED]->(comment)
WITH comment, author, liker, like
ORDER BY like.created_at DESC
WITH comment, author, collect(liker.user_id) AS likes
RETURN comment, author {.user_id, .name, .avatar} AS author, likes
"""


class CommentError(Exception):
    """Base exception for comment-related errors."""

    pass


class CommentValidationError(CommentError):
    """Exception raised when comment input is malformed."""

    pass


class CommentNotFoundError(CommentError):
    """Exception raised when a comment, or the post or parent it refers to,
    is not found."""

    pass


class CommentForbiddenError(CommentError):
    """Exception raised when the requester may not act on a comment."""

    pass


class CommentAlreadyLikedError(CommentError):
    """Exception raised when a user likes a comment twice."""

    pass


class CommentNotLikedError(CommentError):
    """Exception raised when a user unlikes a comment they never liked."""

    pass


class CommentStoreError(CommentError):
    """Exception raised when the store fails unexpectedly."""

    pass


def build_thread(comments: list[Comment]) -> list[ThreadedComment]:
    """Arrange a post's comments into one-level threads.

    Top-level comments come newest first; the replies under each come
    oldest first. Unapproved comments are dropped, and so are replies whose
    parent is not an approved top-level comment.

    Args:
        comments: Comments of a single post in any order

    Returns:
        The threaded comments
    """
    approved = [comment for comment in comments if comment.approved]
    replies: defaultdict[UUID, list[Comment]] = defaultdict(list)
    for comment in approved:
        if comment.parent_id is not None:
            replies[comment.parent_id].append(comment)

    top_level = sorted(
        (comment for comment in approved if comment.parent_id is None),
        key=lambda comment: comment.created_at,
        reverse=True,
    )
    return [
        ThreadedComment(
            **comment.model_dump(),
            replies=sorted(
                replies[comment.comment_id], key=lambda reply: reply.created_at
            ),
        )
        for comment in top_level
    ]


class CommentService:
    """Service for managing comments on posts.

    This service handles creating, retrieving, moderating, liking and
    deleting comments, including one level of replies.
    """

    def __init__(self, post_service: PostService | None = None) -> None:
        self.post_service = post_service or PostService()

    def _comment_from_record(self, record: Record | dict[str, Any]) -> Comment:
        return Comment(
            **node_to_dict(record["comment"]),
            author=AuthorSummary(**node_to_dict(record["author"])),
            likes=[UUID(str(user_id)) for user_id in record["likes"]],
        )

    async def create_comment(
        self, comment: CommentCreate, requester: Identity
    ) -> Comment:
        """Create a new comment or reply on a post.

        Args:
            comment: The comment data to create
            requester: The authenticated author

        Returns:
            The created comment with its author expanded

        Raises:
            CommentNotFoundError: If the post or parent comment does not exist
            CommentValidationError: If the parent is itself a reply or belongs
                to another post
            CommentStoreError: If comment creation fails
        """
        if not await self.post_service.exists(comment.post_id):
            raise CommentNotFoundError("Post not found")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                created = session.execute_write(
                    self._create_comment, comment, requester.user_id
                )
        except CommentError:
            raise
        except Exception as e:
            logger.exception("Failed to create comment on post %s", comment.post_id)
            raise CommentStoreError(f"Failed to create comment: {str(e)}") from e

        logger.info(
            "User %s created comment %s on post %s",
            requester.user_id,
            created.comment_id,
            created.post_id,
        )
        return created

    def _check_parent(
        self, tx: ManagedTransaction, parent_id: UUID4, post_id: UUID4
    ) -> None:
        """Check that a reply target exists and can take replies.

        Raises:
            CommentNotFoundError: If the parent comment does not exist
            CommentValidationError: If the parent is a reply or on another post
        """
        query = """
        MATCH (parent:Comment {comment_id: $parent_id})
        RETURN parent.parent_id AS grandparent_id, parent.post_id AS post_id
        """
        record = tx.run(query, parent_id=str(parent_id)).single()
        if record is None:
            raise CommentNotFoundError("Parent comment not found")
        if record["grandparent_id"] is not None:
            raise CommentValidationError("Cannot reply to a reply")
        if record["post_id"] != str(post_id):
            raise CommentValidationError("Parent comment belongs to another post")

    def _create_comment(
        self, tx: ManagedTransaction, comment: CommentCreate, author_id: UUID4
    ) -> Comment:
        if comment.parent_id is not None:
            self._check_parent(tx, comment.parent_id, comment.post_id)

        query = (
            """
        MATCH (author:User {user_id: $author_id})
        MATCH (post:Post {post_id: $post_id})
        CREATE (comment:Comment {
            comment_id: $comment_id,
            content: $content,
            post_id: $post_id,
            author_id: $author_id,
            parent_id: $parent_id,
            approved: true,
            created_at: $current_time,
            updated_at: $current_time
        })
        CREATE (author)-[:AUTHORED]->(comment)
        CREATE (comment)-[:ON_POST]->(post)
        WITH comment
        OPTIONAL MATCH (parent:Comment {comment_id: $parent_id})
        FOREACH (_ IN CASE WHEN parent IS NULL THEN [] ELSE [1] END |
            CREATE (comment)-[:REPLY_TO]->(parent)
        )
        WITH comment
        """
            + COMMENT_PROJECTION
        )
        result = tx.run(
            query,
            comment_id=str(uuid4()),
            content=comment.content,
            post_id=str(comment.post_id),
            author_id=str(author_id),
            parent_id=str(comment.parent_id) if comment.parent_id else None,
            current_time=datetime.now(UTC),
        )
        if record := result.single():
            return self._comment_from_record(record)
        raise CommentNotFoundError("Post or author not found")

    async def get_comment(self, comment_id: UUID4) -> Comment:
        """Get a comment by ID, whatever its approval state.

        Args:
            comment_id: ID of the comment to get

        Returns:
            The requested comment

        Raises:
            CommentNotFoundError: If comment not found
            CommentStoreError: If the lookup fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(self._get_comment, comment_id)
        except CommentError:
            raise
        except Exception as e:
            logger.exception("Failed to get comment %s", comment_id)
            raise CommentStoreError(f"Failed to get comment: {str(e)}") from e

    def _get_comment(self, tx: ManagedTransaction, comment_id: UUID4) -> Comment:
        query = (
            """
        MATCH (comment:Comment {comment_id: $comment_id})
        """
            + COMMENT_PROJECTION
        )
        result = tx.run(query, comment_id=str(comment_id))
        if record := result.single():
            return self._comment_from_record(record)
        raise CommentNotFoundError("Comment not found")

    async def get_post_thread(self, post_id: UUID4) -> list[ThreadedComment]:
        """Get the approved comments of a post arranged in threads.

        Args:
            post_id: ID of the post

        Returns:
            Top-level comments newest first, each with its replies oldest
            first. Empty if the post has no comments or does not exist.

        Raises:
            CommentStoreError: If fetching comments fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                comments = session.execute_read(
                    self._get_approved_post_comments, post_id
                )
        except Exception as e:
            logger.exception("Failed to get comments of post %s", post_id)
            raise CommentStoreError(f"Failed to get post comments: {str(e)}") from e
        return build_thread(comments)

    def _get_approved_post_comments(
        self, tx: ManagedTransaction, post_id: UUID4
    ) -> list[Comment]:
        query = (
            """
        MATCH (comment:Comment {post_id: $post_id})
        WHERE comment.approved = true
        """
            + COMMENT_PROJECTION
        )
        result = tx.run(query, post_id=str(post_id))
        return [self._comment_from_record(record) for record in result]

    async def update_comment(
        self, comment_id: UUID4, update: CommentUpdate, requester: Identity
    ) -> Comment:
        """Replace the content of a comment.

        Args:
            comment_id: ID of the comment to update
            update: The new content
            requester: The authenticated user asking for the edit

        Returns:
            The updated comment

        Raises:
            CommentNotFoundError: If comment not found
            CommentForbiddenError: If requester is neither author nor moderator
            CommentStoreError: If update fails
        """
        existing = await self.get_comment(comment_id)
        if not requester.owns_or_can(
            existing.author.user_id, Capability.MODERATE_COMMENTS
        ):
            raise CommentForbiddenError("Not authorized to update this comment")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_write(self._update_comment, comment_id, update)
        except CommentError:
            raise
        except Exception as e:
            logger.exception("Failed to update comment %s", comment_id)
            raise CommentStoreError(f"Failed to update comment: {str(e)}") from e

    def _update_comment(
        self, tx: ManagedTransaction, comment_id: UUID4, update: CommentUpdate
    ) -> Comment:
        query = """
        MATCH (comment:Comment {comment_id: $comment_id})
        SET comment.content = $content,
            comment.updated_at = $current_time
        RETURN comment.comment_id AS comment_id
        """
        result = tx.run(
            query,
            comment_id=str(comment_id),
            content=update.content,
            current_time=datetime.now(UTC),
        )
        if result.single() is None:
            raise CommentNotFoundError("Comment not found")
        return self._get_comment(tx, comment_id)

    async def approve_comment(self, comment_id: UUID4, requester: Identity) -> Comment:
        """Mark a comment as approved. Approving twice is a no-op.

        Args:
            comment_id: ID of the comment to approve
            requester: The authenticated moderator

        Returns:
            The approved comment

        Raises:
            CommentForbiddenError: If requester may not moderate comments
            CommentNotFoundError: If comment not found
            CommentStoreError: If approval fails
        """
        if not requester.can(Capability.MODERATE_COMMENTS):
            raise CommentForbiddenError("Not authorized to approve comments")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                approved = session.execute_write(self._approve_comment, comment_id)
        except CommentError:
            raise
        except Exception as e:
            logger.exception("Failed to approve comment %s", comment_id)
            raise CommentStoreError(f"Failed to approve comment: {str(e)}") from e

        logger.info("User %s approved comment %s", requester.user_id, comment_id)
        return approved

    def _approve_comment(self, tx: ManagedTransaction, comment_id: UUID4) -> Comment:
        query = """
        MATCH (comment:Comment {comment_id: $comment_id})
        WITH comment, comment.approved AS was_approved
        SET comment.approved = true,
            comment.updated_at = CASE
                WHEN was_approved THEN comment.updated_at
                ELSE $current_time END
        RETURN comment.comment_id AS comment_id
        """
        result = tx.run(
            query, comment_id=str(comment_id), current_time=datetime.now(UTC)
        )
        if result.single() is None:
            raise CommentNotFoundError("Comment not found")
        return self._get_comment(tx, comment_id)

    async def like_comment(self, comment_id: UUID4, requester: Identity) -> list[UUID4]:
        """Like a comment.

        Args:
            comment_id: ID of the comment to like
            requester: The authenticated user liking it

        Returns:
            IDs of users who like the comment, most recent first

        Raises:
            CommentNotFoundError: If comment not found
            CommentAlreadyLikedError: If the user already likes the comment
            CommentStoreError: If the like fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_write(
                    self._like_comment, comment_id, requester.user_id
                )
        except CommentError:
            raise
        except Exception as e:
            logger.exception("Failed to like comment %s", comment_id)
            raise CommentStoreError(f"Failed to like comment: {str(e)}") from e

    def _is_liked(
        self, tx: ManagedTransaction, comment_id: UUID4, user_id: UUID4
    ) -> bool:
        """Whether a user currently likes a comment.

        Raises:
            CommentNotFoundError: If comment not found
        """
        query = """
        MATCH (comment:Comment {comment_id: $comment_id})
        OPTIONAL MATCH (:User {user_id: $user_id})-[like:LIKED]->(comment)
        RETURN like IS NOT NULL AS liked
        """
        record = tx.run(
            query, comment_id=str(comment_id), user_id=str(user_id)
        ).single()
        if record is None:
            raise CommentNotFoundError("Comment not found")
        return bool(record["liked"])

    def _get_likes(self, tx: ManagedTransaction, comment_id: UUID4) -> list[UUID4]:
        query = """
        MATCH (liker:User)-[like:LIKED]->(:Comment {comment_id: $comment_id})
        RETURN liker.user_id AS user_id
        ORDER BY like.created_at DESC
        """
        result = tx.run(query, comment_id=str(comment_id))
        return [UUID(record["user_id"]) for record in result]

    def _like_comment(
        self, tx: ManagedTransaction, comment_id: UUID4, user_id: UUID4
    ) -> list[UUID4]:
        if self._is_liked(tx, comment_id, user_id):
            raise CommentAlreadyLikedError("Comment already liked")

        query = """
        MATCH (comment:Comment {comment_id: $comment_id})
        MATCH (user:User {user_id: $user_id})
        MERGE (user)-[like:LIKED]->(comment)
        ON CREATE SET like.created_at = $current_time
        SET comment.updated_at = $current_time
        """
        tx.run(
            query,
            comment_id=str(comment_id),
            user_id=str(user_id),
            current_time=datetime.now(UTC),
        ).consume()
        return self._get_likes(tx, comment_id)

    async def unlike_comment(
        self, comment_id: UUID4, requester: Identity
    ) -> list[UUID4]:
        """Remove a like from a comment.

        Args:
            comment_id: ID of the comment to unlike
            requester: The authenticated user removing the like

        Returns:
            IDs of users who still like the comment, most recent first

        Raises:
            CommentNotFoundError: If comment not found
            CommentNotLikedError: If the user does not like the comment
            CommentStoreError: If the unlike fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_write(
                    self._unlike_comment, comment_id, requester.user_id
                )
        except CommentError:
            raise
        except Exception as e:
            logger.exception("Failed to unlike comment %s", comment_id)
            raise CommentStoreError(f"Failed to unlike comment: {str(e)}") from e

    def _unlike_comment(
        self, tx: ManagedTransaction, comment_id: UUID4, user_id: UUID4
    ) -> list[UUID4]:
        if not self._is_liked(tx, comment_id, user_id):
            raise CommentNotLikedError("Comment has not yet been liked")

        query = """
        MATCH (:User {user_id: $user_id})-[like:LIKED]->
              (comment:Comment {comment_id: $comment_id})
        DELETE like
        SET comment.updated_at = $current_time
        """
        tx.run(
            query,
            comment_id=str(comment_id),
            user_id=str(user_id),
            current_time=datetime.now(UTC),
        ).consume()
        return self._get_likes(tx, comment_id)

    async def delete_comment(self, comment_id: UUID4, requester: Identity) -> int:
        """Delete a comment, and its replies when it is top-level.

        Replies are deleted before the comment itself, inside the same write
        transaction, so a failure while removing replies leaves the comment
        in place.

        Args:
            comment_id: ID of the comment to delete
            requester: The authenticated user asking for the deletion

        Returns:
            Number of comments deleted

        Raises:
            CommentNotFoundError: If comment not found
            CommentForbiddenError: If requester is neither author nor moderator
            CommentStoreError: If deletion fails
        """
        existing = await self.get_comment(comment_id)
        if not requester.owns_or_can(
            existing.author.user_id, Capability.MODERATE_COMMENTS
        ):
            raise CommentForbiddenError("Not authorized to delete this comment")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                deleted = session.execute_write(
                    self._delete_comment, comment_id, existing.is_reply
                )
        except CommentError:
            raise
        except Exception as e:
            logger.exception("Failed to delete comment %s", comment_id)
            raise CommentStoreError(f"Failed to delete comment: {str(e)}") from e

        logger.info(
            "User %s deleted comment %s (%d comments removed)",
            requester.user_id,
            comment_id,
            deleted,
        )
        return deleted

    def _delete_replies(self, tx: ManagedTransaction, comment_id: UUID4) -> int:
        query = """
        MATCH (reply:Comment {parent_id: $comment_id})
        DETACH DELETE reply
        """
        result = tx.run(query, comment_id=str(comment_id))
        return result.consume().counters.nodes_deleted

    def _delete_comment(
        self, tx: ManagedTransaction, comment_id: UUID4, is_reply: bool
    ) -> int:
        replies_deleted = 0 if is_reply else self._delete_replies(tx, comment_id)

        query = """
        MATCH (comment:Comment {comment_id: $comment_id})
        DETACH DELETE comment
        """
        result = tx.run(query, comment_id=str(comment_id))
        if not result.consume().counters.nodes_deleted:
            raise CommentNotFoundError("Comment not found")
        return replies_deleted + 1
