import logging
from datetime import UTC, datetime
from uuid import uuid4

from neo4j import ManagedTransaction
from pydantic import UUID4

from blog.db import DatabaseManager
from blog.models.identity import Capability, Identity
from blog.models.tag import Tag, TagCreate, TagUpdate
from blog.utils.records import node_to_dict
from blog.utils.text import slugify

logger = logging.getLogger(__name__)

POPULAR_TAG_LIMIT = 10


class TagError(Exception):
    """Base exception for tag-related errors."""

    pass


class TagNotFoundError(TagError):
    """Exception raised when a tag is not found."""

    pass


class TagExistsError(TagError):
    """Exception raised when a tag name is already taken."""

    pass


class TagForbiddenError(TagError):
    """Exception raised when the requester may not manage tags."""

    pass


class TagStoreError(TagError):
    """Exception raised when the store fails unexpectedly."""

    pass


class TagService:
    """Service for managing post tags.

    Editors and admins may create and rename tags; only admins may delete
    them.
    """

    def _tag_from_record(self, record) -> Tag:
        return Tag(**node_to_dict(record["tag"]), post_count=record["post_count"])

    async def list_tags(self) -> list[Tag]:
        """Get all tags ordered by name.

        Raises:
            TagStoreError: If the listing fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(self._list_tags, None)
        except Exception as e:
            logger.exception("Failed to list tags")
            raise TagStoreError(f"Failed to list tags: {str(e)}") from e

    async def list_popular_tags(self, limit: int = POPULAR_TAG_LIMIT) -> list[Tag]:
        """Get the tags used by the most posts, ties broken by name.

        Raises:
            TagStoreError: If the listing fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(self._list_tags, limit)
        except Exception as e:
            logger.exception("Failed to list popular tags")
            raise TagStoreError(f"Failed to list popular tags: {str(e)}") from e

    def _list_tags(self, tx: ManagedTransaction, limit: int | None) -> list[Tag]:
        if limit is None:
            query = """
            MATCH (tag:Tag)
            RETURN tag, COUNT { (:Post)-[:TAGGED]->(tag) } AS post_count
            ORDER BY tag.name
            """
        else:
            query = """
            MATCH (tag:Tag)
            WITH tag, COUNT { (:Post)-[:TAGGED]->(tag) } AS post_count
            RETURN tag, post_count
            ORDER BY post_count DESC, tag.name
            LIMIT $limit
            """
        result = tx.run(query, limit=limit)
        return [self._tag_from_record(record) for record in result]

    async def get_tag(self, tag_id: UUID4) -> Tag:
        """Get a tag by ID.

        Raises:
            TagNotFoundError: If tag not found
        """
        return await self._get_by("tag_id", str(tag_id))

    async def get_tag_by_slug(self, slug: str) -> Tag:
        """Get a tag by slug.

        Raises:
            TagNotFoundError: If tag not found
        """
        return await self._get_by("slug", slug)

    async def _get_by(self, key: str, value: str) -> Tag:
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(self._get_tag, key, value)
        except TagError:
            raise
        except Exception as e:
            logger.exception("Failed to get tag by %s", key)
            raise TagStoreError(f"Failed to get tag: {str(e)}") from e

    def _get_tag(self, tx: ManagedTransaction, key: str, value: str) -> Tag:
        query = f"""
        MATCH (tag:Tag {{{key}: $value}})
        RETURN tag, COUNT {{ (:Post)-[:TAGGED]->(tag) }} AS post_count
        """
        if record := tx.run(query, value=value).single():
            return self._tag_from_record(record)
        raise TagNotFoundError("Tag not found")

    def _name_taken(
        self, tx: ManagedTransaction, name: str, exclude_id: UUID4 | None = None
    ) -> bool:
        query = """
        MATCH (tag:Tag {name: $name})
        WHERE $exclude_id IS NULL OR tag.tag_id <> $exclude_id
        RETURN count(tag) > 0 AS taken
        """
        record = tx.run(
            query, name=name, exclude_id=str(exclude_id) if exclude_id else None
        ).single()
        return bool(record and record["taken"])

    async def create_tag(self, tag: TagCreate, requester: Identity) -> Tag:
        """Create a tag. Editors and admins only.

        Raises:
            TagForbiddenError: If requester may not manage tags
            TagExistsError: If the name is already taken
            TagStoreError: If creation fails
        """
        if not requester.can(Capability.MANAGE_TAGS):
            raise TagForbiddenError("Not authorized to manage tags")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                created = session.execute_write(self._create_tag, tag)
        except TagError:
            raise
        except Exception as e:
            logger.exception("Failed to create tag")
            raise TagStoreError(f"Failed to create tag: {str(e)}") from e

        logger.info("Created tag %s", created.slug)
        return created

    def _create_tag(self, tx: ManagedTransaction, tag: TagCreate) -> Tag:
        if self._name_taken(tx, tag.name):
            raise TagExistsError("Tag already exists")

        query = """
        CREATE (tag:Tag {
            tag_id: $tag_id,
            name: $name,
            slug: $slug,
            description: $description,
            created_at: $current_time,
            updated_at: $current_time
        })
        RETURN tag, 0 AS post_count
        """
        result = tx.run(
            query,
            tag_id=str(uuid4()),
            name=tag.name,
            slug=slugify(tag.name),
            description=tag.description,
            current_time=datetime.now(UTC),
        )
        if record := result.single():
            return self._tag_from_record(record)
        raise TagStoreError("Failed to create tag")

    async def update_tag(
        self, tag_id: UUID4, update: TagUpdate, requester: Identity
    ) -> Tag:
        """Update a tag. Editors and admins only.

        Raises:
            TagForbiddenError: If requester may not manage tags
            TagNotFoundError: If tag not found
            TagExistsError: If the new name belongs to another tag
            TagStoreError: If the update fails
        """
        if not requester.can(Capability.MANAGE_TAGS):
            raise TagForbiddenError("Not authorized to manage tags")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_write(self._update_tag, tag_id, update)
        except TagError:
            raise
        except Exception as e:
            logger.exception("Failed to update tag %s", tag_id)
            raise TagStoreError(f"Failed to update tag: {str(e)}") from e

    def _update_tag(
        self, tx: ManagedTransaction, tag_id: UUID4, update: TagUpdate
    ) -> Tag:
        if self._name_taken(tx, update.name, exclude_id=tag_id):
            raise TagExistsError("Tag name already exists")

        query = """
        MATCH (tag:Tag {tag_id: $tag_id})
        SET tag.name = $name,
            tag.slug = $slug,
            tag.description = $description,
            tag.updated_at = $current_time
        RETURN tag, COUNT { (:Post)-[:TAGGED]->(tag) } AS post_count
        """
        result = tx.run(
            query,
            tag_id=str(tag_id),
            name=update.name,
            slug=slugify(update.name),
            description=update.description,
            current_time=datetime.now(UTC),
        )
        if record := result.single():
            return self._tag_from_record(record)
        raise TagNotFoundError("Tag not found")

    async def delete_tag(self, tag_id: UUID4, requester: Identity) -> None:
        """Delete a tag and unlink it from its posts. Admin only.

        Raises:
            TagForbiddenError: If requester may not delete tags
            TagNotFoundError: If tag not found
            TagStoreError: If deletion fails
        """
        if not requester.can(Capability.DELETE_TAGS):
            raise TagForbiddenError("Not authorized to delete tags")

        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                session.execute_write(self._delete_tag, tag_id)
        except TagError:
            raise
        except Exception as e:
            logger.exception("Failed to delete tag %s", tag_id)
            raise TagStoreError(f"Failed to delete tag: {str(e)}") from e

        logger.info("Deleted tag %s", tag_id)

    def _delete_tag(self, tx: ManagedTransaction, tag_id: UUID4) -> None:
        query = """
        MATCH (tag:Tag {tag_id: $tag_id})
        DETACH DELETE tag
        """
        result = tx.run(query, tag_id=str(tag_id))
        if not result.consume().counters.nodes_deleted:
            raise TagNotFoundError("Tag not found")
