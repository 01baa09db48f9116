import logging
from datetime import UTC, datetime
from uuid import uuid4

from neo4j import ManagedTransaction
from pydantic import UUID4

from blog.db import DatabaseManager
from blog.models.category import Category, CategoryCreate, CategoryUpdate
from blog.models.identity import Capability, Identity
from blog.utils.records import node_to_dict
from blog.utils.text import slugify

logger = logging.getLogger(__name__)


class CategoryError(Exception):
    """Base exception for category-related errors."""

    pass


class CategoryNotFoundError(CategoryError):
    """Exception raised when a category is not found."""

    pass


class CategoryExistsError(CategoryError):
    """Exception raised when a category name is already taken."""

    pass


class CategoryForbiddenError(CategoryError):
    """Exception raised when the requester may not manage categories."""

    pass


class CategoryStoreError(CategoryError):
    """Exception raised when the store fails unexpectedly."""

    pass


class CategoryService:
    """Service for managing post categories."""

    def _require_manager(self, requester: Identity) -> None:
        if not requester.can(Capability.MANAGE_CATEGORIES):
            raise CategoryForbiddenError("Not authorized to manage categories")

    async def list_categories(self) -> list[Category]:
        """Get all categories ordered by name.

        Raises:
            CategoryStoreError: If the listing fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(self._list_categories)
        except Exception as e:
            logger.exception("Failed to list categories")
            raise CategoryStoreError(f"Failed to list categories: {str(e)}") from e

    def _list_categories(self, tx: ManagedTransaction) -> list[Category]:
        query = """
        MATCH (category:Category)
        RETURN category
        ORDER BY category.name
        """
        result = tx.run(query)
        return [Category(**node_to_dict(record["category"])) for record in result]

    async def list_featured(self) -> list[Category]:
        """Get the featured categories ordered by name.

        Raises:
            CategoryStoreError: If the listing fails
        """
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(self._list_featured)
        except Exception as e:
            logger.exception("Failed to list featured categories")
            raise CategoryStoreError(
                f"Failed to list featured categories: {str(e)}"
            ) from e

    def _list_featured(self, tx: ManagedTransaction) -> list[Category]:
        query = """
        MATCH (category:Category {featured: true})
        RETURN category
        ORDER BY category.name
        """
        result = tx.run(query)
        return [Category(**node_to_dict(record["category"])) for record in result]

    async def get_category(self, category_id: UUID4) -> Category:
        """Get a category by ID.

        Raises:
            CategoryNotFoundError: If category not found
        """
        return await self._get_by("category_id", str(category_id))

    async def get_category_by_slug(self, slug: str) -> Category:
        """Get a category by slug.

        Raises:
            CategoryNotFoundError: If category not found
        """
        return await self._get_by("slug", slug)

    async def _get_by(self, key: str, value: str) -> Category:
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_read(self._get_category, key, value)
        except CategoryError:
            raise
        except Exception as e:
            logger.exception("Failed to get category by %s", key)
            raise CategoryStoreError(f"Failed to get category: {str(e)}") from e

    def _get_category(self, tx: ManagedTransaction, key: str, value: str) -> Category:
        query = f"""
        MATCH (category:Category {{{key}: $value}})
        RETURN category
        """
        if record := tx.run(query, value=value).single():
            return Category(**node_to_dict(record["category"]))
        raise CategoryNotFoundError("Category not found")

    def _name_taken(
        self, tx: ManagedTransaction, name: str, exclude_id: UUID4 | None = None
    ) -> bool:
        query = """
        MATCH (category:Category {name: $name})
        WHERE $exclude_id IS NULL OR category.category_id <> $exclude_id
        RETURN count(category) > 0 AS taken
        """
        record = tx.run(
            query, name=name, exclude_id=str(exclude_id) if exclude_id else None
        ).single()
        return bool(record and record["taken"])

    async def create_category(
        self, category: CategoryCreate, requester: Identity
    ) -> Category:
        """Create a category. Admin only.

        Args:
            category: The category data
            requester: The authenticated user

        Returns:
            The created category

        Raises:
            CategoryForbiddenError: If requester may not manage categories
            CategoryExistsError: If the name is already taken
            CategoryStoreError: If creation fails
        """
        self._require_manager(requester)
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                created = session.execute_write(self._create_category, category)
        except CategoryError:
            raise
        except Exception as e:
            logger.exception("Failed to create category")
            raise CategoryStoreError(f"Failed to create category: {str(e)}") from e

        logger.info("Created category %s", created.slug)
        return created

    def _create_category(
        self, tx: ManagedTransaction, category: CategoryCreate
    ) -> Category:
        if self._name_taken(tx, category.name):
            raise CategoryExistsError("Category already exists")

        query = """
        CREATE (category:Category {
            category_id: $category_id,
            name: $name,
            slug: $slug,
            description: $description,
            image: $image,
            color: $color,
            featured: $featured,
            created_at: $current_time,
            updated_at: $current_time
        })
        RETURN category
        """
        result = tx.run(
            query,
            category_id=str(uuid4()),
            slug=slugify(category.name),
            current_time=datetime.now(UTC),
            **category.model_dump(),
        )
        if record := result.single():
            return Category(**node_to_dict(record["category"]))
        raise CategoryStoreError("Failed to create category")

    async def update_category(
        self, category_id: UUID4, update: CategoryUpdate, requester: Identity
    ) -> Category:
        """Update a category. Admin only.

        Raises:
            CategoryForbiddenError: If requester may not manage categories
            CategoryNotFoundError: If category not found
            CategoryExistsError: If the new name belongs to another category
            CategoryStoreError: If the update fails
        """
        self._require_manager(requester)
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                return session.execute_write(
                    self._update_category, category_id, update
                )
        except CategoryError:
            raise
        except Exception as e:
            logger.exception("Failed to update category %s", category_id)
            raise CategoryStoreError(f"Failed to update category: {str(e)}") from e

    def _update_category(
        self, tx: ManagedTransaction, category_id: UUID4, update: CategoryUpdate
    ) -> Category:
        if self._name_taken(tx, update.name, exclude_id=category_id):
            raise CategoryExistsError("Category name already exists")

        query = """
        MATCH (category:Category {category_id: $category_id})
        SET category += $props,
            category.slug = $slug,
            category.updated_at = $current_time
        RETURN category
        """
        result = tx.run(
            query,
            category_id=str(category_id),
            props=update.model_dump(),
            slug=slugify(update.name),
            current_time=datetime.now(UTC),
        )
        if record := result.single():
            return Category(**node_to_dict(record["category"]))
        raise CategoryNotFoundError("Category not found")

    async def delete_category(self, category_id: UUID4, requester: Identity) -> None:
        """Delete a category and unlink it from its posts. Admin only.

        Raises:
            CategoryForbiddenError: If requester may not manage categories
            CategoryNotFoundError: If category not found
            CategoryStoreError: If deletion fails
        """
        self._require_manager(requester)
        try:
            db_manager = DatabaseManager()
            with db_manager.driver.session(database=db_manager.database) as session:
                session.execute_write(self._delete_category, category_id)
        except CategoryError:
            raise
        except Exception as e:
            logger.exception("Failed to delete category %s", category_id)
            raise CategoryStoreError(f"Failed to delete category: {str(e)}") from e

        logger.info("Deleted category %s", category_id)

    def _delete_category(self, tx: ManagedTransaction, category_id: UUID4) -> None:
        query = """
        MATCH (category:Category {category_id: $category_id})
        DETACH DELETE category
        """
        result = tx.run(query, category_id=str(category_id))
        if not result.consume().counters.nodes_deleted:
            raise CategoryNotFoundError("Category not found")
