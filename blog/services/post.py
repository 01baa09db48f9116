import logging
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from neo4j import ManagedTransaction, Record
from pydantic import UUID4

from blog.db import DatabaseManager
from blog.models.category import CategorySummary
from blog.models.identity import Capability, Identity
from blog.models.post import (
    DEFAULT_COVER_IMAGE,
    Post,
    PostCreate,
    PostFilter,
    PostUpdate,
)
from blog.models.tag import TagSummary
from blog.models.user import AuthorSummary
from blog.schemas.responses import Page, Pagination
from blog.utils.records import node_to_dict
from blog.utils.text import read_time, timestamped_slug

logger = logging.getLogger(__name__)

# Expands a matched `post` into its author, categories and tags.
POST_PROJECTION = """
MATCH (author:User)-[:POSTED]->(post)
OPTIONAL MATCH (post)-[:IN_CATEGORY]->(category:Category)
WITH post, author, collect(DISTINCT category {.category_id, .name, .slug}) AS categories
OPTIONAL MATCH (post)-[:TAGGED]->(tag:Tag)
WITH post, author, categories, collect(DISTINCT tag {.tag_id, .name, .slug}) AS tags
RETURN post, author {.user_id, .name, .avatar} AS author, categories, tags
"""

POST_FILTER = """
WHERE ($status IS NULL OR post.status = $status)
  AND ($author_id IS NULL OR post.author_id = $author_id)
  AND ($search IS NULL
       OR toLower(post.title) CONTAINS $search
       OR toLower(post.excerpt) CONTAINS $search
       OR toLower(post.content) CONTAINS $search)
  AND ($category_id IS NULL
       OR EXISTS { (post)-[:IN_CATEGORY]->(:Category {category_id: $category_id}) })
  AND ($tag_id IS NULL
       OR EXISTS { (post)-[:TAGGED]->(:Tag {tag_id: $tag_id}) })
"""

LINK_TAXONOMY = """
MATCH (post:Post {post_id: $post_id})
OPTIONAL MATCH (post)-[old:IN_CATEGORY|TAGGED]->()
DELETE old
WITH DISTINCT post
OPTIONAL MATCH (category:Category) WHERE category.category_id IN $category_ids
WITH post, collect(category) AS categories
FOREACH (category IN categories | MERGE (post)-[:IN_CATEGORY]->(category))
WITH post
OPTIONAL MATCH (tag:Tag) WHERE tag.tag_id IN $tag_ids
WITH post, collect(tag) AS tags
FOREACH (tag IN tags | MERGE (post)-[:TAGGED]->(tag))
"""


class PostError(Exception):
    """Base exception for post-related errors."""

    pass


class PostNotFoundError(PostError):
    """Exception raised when a post is not found."""

    pass


class PostForbiddenError(PostError):
    """Exception raised when the requester may not modify a post."""

    pass


class PostStoreError(PostError):
    """Exception raised when the store fails unexpectedly."""

    pass


class PostService:
    """Service for managing blog posts.

    This service handles creating, updating, deleting, listing and
    retrieving posts together with their category and tag links.
    """

    def _post_from_record(self, record: Record | dict[str, Any]) -> Post:
        return Post(
            **node_to_dict(record["post"]),
            author=AuthorSummary(**node_to_dict(record["author"])),
            categories=[
                CategorySummary(**node_to_dict(category))
                for category in record["categories"]
            ],
            tags=[TagSummary(**node_to_dict(tag)) for tag in record["tags"]],
        )

    async def exists(self, post_id: UUID4) -> bool:
        """Check whether a post exists.

        Args:
            post_id: ID of the post

        Returns:
            True if the post exists
        """
        db_manager = DatabaseManager()
        with db_manager.driver.session(database=db_manager.database) as session:
            return session.execute_read(self._post_exists, post_id)

    def _post_exists(self, tx: ManagedTransaction, post_id: UUID4) -> bool:
        query = """
        OPTIONAL MATCH (post:Post {post_id: $post_id})
        RETURN post IS NOT NULL AS found
        """
        record = tx.run(query, post_id=str(post_id)).single()
        return bool(record and record["found"])

    async def create_post(self, post: PostCreate, requester: Identity) -> Post:
        """Create a new post authored by the requester.

        The slug is derived from the title and the read time from the content.

        Args:
            post: The post data
            requester: The authenticated author

        Returns:
            The created post

        Raises:
            PostStoreError: If post creation fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                created = session.execute_write(
                    self._create_post, post, requester.user_id
                )
        except PostError:
            raise
        except Exception as e:
            logger.exception("Failed to create post")
            raise PostStoreError(f"Failed to create post: {str(e)}") from e

        logger.info("User %s created post %s", requester.user_id, created.post_id)
        return created

    def _create_post(
        self, tx: ManagedTransaction, post: PostCreate, author_id: UUID4
    ) -> Post:
        query = """
        MATCH (author:User {user_id: $author_id})
        CREATE (post:Post {
            post_id: $post_id,
            title: $title,
            slug: $slug,
            content: $content,
            excerpt: $excerpt,
            cover_image: $cover_image,
            author_id: $author_id,
            status: $status,
            featured: $featured,
            view_count: 0,
            read_time: $read_time,
            scheduled_for: $scheduled_for,
            created_at: $current_time,
            updated_at: $current_time
        })
        CREATE (author)-[:POSTED {created_at: $current_time}]->(post)
        RETURN post.post_id AS post_id
        """
        post_id = uuid4()
        result = tx.run(
            query,
            post_id=str(post_id),
            title=post.title,
            slug=timestamped_slug(post.title),
            content=post.content,
            excerpt=post.excerpt,
            cover_image=post.cover_image or DEFAULT_COVER_IMAGE,
            author_id=str(author_id),
            status=post.status.value,
            featured=post.featured,
            read_time=read_time(post.content),
            scheduled_for=post.scheduled_for,
            current_time=datetime.now(UTC),
        )
        if result.single() is None:
            raise PostNotFoundError("Author not found")
        self._link_taxonomy(tx, post_id, post.category_ids, post.tag_ids)
        return self._get_post(tx, post_id)

    def _link_taxonomy(
        self,
        tx: ManagedTransaction,
        post_id: UUID4,
        category_ids: list[UUID4],
        tag_ids: list[UUID4],
    ) -> None:
        """Replace the category and tag links of a post. Unknown ids are skipped."""
        tx.run(
            LINK_TAXONOMY,
            post_id=str(post_id),
            category_ids=[str(category_id) for category_id in category_ids],
            tag_ids=[str(tag_id) for tag_id in tag_ids],
        ).consume()

    async def get_post(self, post_id: UUID4, count_view: bool = False) -> Post:
        """Get a post by ID.

        Args:
            post_id: ID of the post to get
            count_view: Increment the view count if the post is published

        Returns:
            The requested post

        Raises:
            PostNotFoundError: If post not found
            PostStoreError: If the lookup fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                if count_view:
                    return session.execute_write(
                        self._view_post, "post_id", str(post_id)
                    )
                return session.execute_read(self._get_post, post_id)
        except PostError:
            raise
        except Exception as e:
            logger.exception("Failed to get post %s", post_id)
            raise PostStoreError(f"Failed to get post: {str(e)}") from e

    async def get_post_by_slug(self, slug: str, count_view: bool = True) -> Post:
        """Get a post by its slug, counting the view by default.

        Raises:
            PostNotFoundError: If post not found
            PostStoreError: If the lookup fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                if count_view:
                    return session.execute_write(self._view_post, "slug", slug)
                return session.execute_read(self._get_post_by_key, "slug", slug)
        except PostError:
            raise
        except Exception as e:
            logger.exception("Failed to get post by slug %s", slug)
            raise PostStoreError(f"Failed to get post: {str(e)}") from e

    def _get_post(self, tx: ManagedTransaction, post_id: UUID4) -> Post:
        return self._get_post_by_key(tx, "post_id", str(post_id))

    def _get_post_by_key(self, tx: ManagedTransaction, key: str, value: str) -> Post:
        query = (
            f"""
        MATCH (post:Post {{{key}: $value}})
        """
            + POST_PROJECTION
        )
        result = tx.run(query, value=value)
        if record := result.single():
            return self._post_from_record(record)
        raise PostNotFoundError("Post not found")

    def _view_post(self, tx: ManagedTransaction, key: str, value: str) -> Post:
        query = f"""
        MATCH (post:Post {{{key}: $value}})
        FOREACH (_ IN CASE WHEN post.status = 'published' THEN [1] ELSE [] END |
            SET post.view_count = coalesce(post.view_count, 0) + 1
        )
        """
        tx.run(query, value=value).consume()
        return self._get_post_by_key(tx, key, value)

    async def list_posts(
        self, filters: PostFilter, page: int = 1, limit: int = 10
    ) -> Page[Post]:
        """List posts matching the filters, one page at a time.

        Args:
            filters: Search, taxonomy, author and status filters plus sorting
            page: 1-based page number
            limit: Maximum number of posts per page

        Returns:
            The requested page with pagination metadata

        Raises:
            PostStoreError: If the listing fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(self._list_posts, filters, page, limit)
        except Exception as e:
            logger.exception("Failed to list posts")
            raise PostStoreError(f"Failed to list posts: {str(e)}") from e

    def _list_posts(
        self, tx: ManagedTransaction, filters: PostFilter, page: int, limit: int
    ) -> Page[Post]:
        params = {
            "status": filters.status.value if filters.status else None,
            "author_id": str(filters.author_id) if filters.author_id else None,
            "search": filters.search.lower() if filters.search else None,
            "category_id": str(filters.category_id) if filters.category_id else None,
            "tag_id": str(filters.tag_id) if filters.tag_id else None,
        }
        count_query = "MATCH (post:Post)" + POST_FILTER + "RETURN count(post) AS total"
        total_record = tx.run(count_query, **params).single()
        total = total_record["total"] if total_record else 0

        order = f"post.{filters.sort_by.value} {filters.sort_order.value.upper()}"
        query = (
            "MATCH (post:Post)"
            + POST_FILTER
            + f"WITH post ORDER BY {order} SKIP $skip LIMIT $limit"
            + POST_PROJECTION
            + f"ORDER BY {order}"
        )
        result = tx.run(query, skip=(page - 1) * limit, limit=limit, **params)
        return Page[Post](
            items=[self._post_from_record(record) for record in result],
            pagination=Pagination.build(total, page, limit),
        )

    async def update_post(
        self, post_id: UUID4, update: PostUpdate, requester: Identity
    ) -> Post:
        """Update a post.

        The slug is re-derived only when the title changes and the read time
        only when the content changes.

        Args:
            post_id: ID of the post to update
            update: The updated post data
            requester: The authenticated user asking for the update

        Returns:
            The updated post

        Raises:
            PostNotFoundError: If post not found
            PostForbiddenError: If requester is neither author nor admin
            PostStoreError: If update fails
        """
        existing = await self.get_post(post_id)
        if not requester.owns_or_can(
            existing.author.user_id, Capability.MANAGE_ANY_POST
        ):
            raise PostForbiddenError("Not authorized to update this post")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_write(self._update_post, existing, update)
        except PostError:
            raise
        except Exception as e:
            logger.exception("Failed to update post %s", post_id)
            raise PostStoreError(f"Failed to update post: {str(e)}") from e

    def _update_post(
        self, tx: ManagedTransaction, existing: Post, update: PostUpdate
    ) -> Post:
        props: dict[str, Any] = {
            "title": update.title,
            "content": update.content,
            "excerpt": update.excerpt,
            "updated_at": datetime.now(UTC),
        }
        if update.title != existing.title:
            props["slug"] = timestamped_slug(update.title)
        if update.content != existing.content:
            props["read_time"] = read_time(update.content)
        if update.cover_image:
            props["cover_image"] = update.cover_image
        if update.status is not None:
            props["status"] = update.status.value
        if update.featured is not None:
            props["featured"] = update.featured
        if update.scheduled_for is not None:
            props["scheduled_for"] = update.scheduled_for

        query = """
        MATCH (post:Post {post_id: $post_id})
        SET post += $props
        RETURN post.post_id AS post_id
        """
        if tx.run(query, post_id=str(existing.post_id), props=props).single() is None:
            raise PostNotFoundError("Post not found")

        if update.category_ids is not None or update.tag_ids is not None:
            category_ids = (
                update.category_ids
                if update.category_ids is not None
                else [category.category_id for category in existing.categories]
            )
            tag_ids = (
                update.tag_ids
                if update.tag_ids is not None
                else [tag.tag_id for tag in existing.tags]
            )
            self._link_taxonomy(tx, existing.post_id, category_ids, tag_ids)
        return self._get_post(tx, existing.post_id)

    async def delete_post(self, post_id: UUID4, requester: Identity) -> None:
        """Delete a post together with all of its comments.

        Args:
            post_id: ID of the post to delete
            requester: The authenticated user asking for the deletion

        Raises:
            PostNotFoundError: If post not found
            PostForbiddenError: If requester is neither author nor admin
            PostStoreError: If deletion fails
        """
        existing = await self.get_post(post_id)
        if not requester.owns_or_can(
            existing.author.user_id, Capability.MANAGE_ANY_POST
        ):
            raise PostForbiddenError("Not authorized to delete this post")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                session.execute_write(self._delete_post, post_id)
        except PostError:
            raise
        except Exception as e:
            logger.exception("Failed to delete post %s", post_id)
            raise PostStoreError(f"Failed to delete post: {str(e)}") from e

        logger.info("User %s deleted post %s", requester.user_id, post_id)

    def _delete_post(self, tx: ManagedTransaction, post_id: UUID4) -> None:
        comments_query = """
        MATCH (comment:Comment {post_id: $post_id})
        DETACH DELETE comment
        """
        tx.run(comments_query, post_id=str(post_id)).consume()

        query = """
        MATCH (post:Post {post_id: $post_id})
        DETACH DELETE post
        """
        result = tx.run(query, post_id=str(post_id))
        if not result.consume().counters.nodes_deleted:
            raise PostNotFoundError("Post not found")
