from datetime import UTC, datetime
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from blog.models.category import Category, CategoryCreate, CategoryUpdate
from blog.models.identity import Identity
from blog.models.tag import TagCreate, TagUpdate
from blog.services.category import (
    CategoryExistsError,
    CategoryForbiddenError,
    CategoryNotFoundError,
    CategoryService,
)
from blog.services.tag import (
    POPULAR_TAG_LIMIT,
    TagExistsError,
    TagForbiddenError,
    TagNotFoundError,
    TagService,
)


@pytest.mark.unit
class TestCategoryService:
    @pytest.fixture
    def test_category(self) -> Category:
        current_time = datetime.now(UTC)
        return Category(
            category_id=uuid4(),
            name="Databases",
            slug="databases",
            created_at=current_time,
            updated_at=current_time,
        )

    @pytest.mark.asyncio
    async def test_create_requires_admin(
        self,
        category_service: CategoryService,
        test_identity: Identity,
        editor_identity: Identity,
        mock_db: MagicMock,
    ):
        for identity in (test_identity, editor_identity):
            with pytest.raises(CategoryForbiddenError):
                await category_service.create_category(
                    CategoryCreate(name="Databases"), identity
                )
        mock_db.execute_write.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_by_admin(
        self,
        category_service: CategoryService,
        admin_identity: Identity,
        test_category: Category,
        mock_tx: MagicMock,
    ):
        category = CategoryCreate(name="Databases")
        with patch.object(
            category_service, "_create_category", return_value=test_category
        ) as mock_create:
            result = await category_service.create_category(category, admin_identity)

        assert result == test_category
        mock_create.assert_called_once_with(mock_tx, category)

    def test_create_duplicate_name(
        self, category_service: CategoryService, mock_tx: MagicMock
    ):
        with patch.object(category_service, "_name_taken", return_value=True):
            with pytest.raises(CategoryExistsError, match="Category already exists"):
                category_service._create_category(
                    mock_tx, CategoryCreate(name="Databases")
                )
        mock_tx.run.assert_not_called()

    def test_create_derives_slug(
        self, category_service: CategoryService, mock_tx: MagicMock
    ):
        current_time = datetime.now(UTC)
        mock_tx.run.return_value.single.return_value = {
            "category": {
                "category_id": str(uuid4()),
                "name": "Graph Databases",
                "slug": "graph-databases",
                "created_at": current_time,
                "updated_at": current_time,
            }
        }
        with patch.object(category_service, "_name_taken", return_value=False):
            category = category_service._create_category(
                mock_tx, CategoryCreate(name="  Graph Databases ")
            )

        assert mock_tx.run.call_args.kwargs["slug"] == "graph-databases"
        assert mock_tx.run.call_args.kwargs["name"] == "Graph Databases"
        assert category.color == "#3498db"

    @pytest.mark.asyncio
    async def test_list_featured(
        self, category_service: CategoryService, mock_tx: MagicMock
    ):
        current_time = datetime.now(UTC)
        mock_tx.run.return_value = [
            {
                "category": {
                    "category_id": str(uuid4()),
                    "name": name,
                    "slug": name.lower(),
                    "featured": True,
                    "created_at": current_time,
                    "updated_at": current_time,
                }
            }
            for name in ("Databases", "Python")
        ]

        result = await category_service.list_featured()

        query = mock_tx.run.call_args.args[0]
        assert "{featured: true}" in query
        assert "ORDER BY category.name" in query
        assert [c.name for c in result] == ["Databases", "Python"]
        assert all(c.featured for c in result)

    def test_update_to_taken_name(
        self, category_service: CategoryService, mock_tx: MagicMock
    ):
        category_id = uuid4()
        with patch.object(
            category_service, "_name_taken", return_value=True
        ) as mock_taken:
            with pytest.raises(CategoryExistsError):
                category_service._update_category(
                    mock_tx, category_id, CategoryUpdate(name="Taken")
                )
        mock_taken.assert_called_once_with(mock_tx, "Taken", exclude_id=category_id)

    @pytest.mark.asyncio
    async def test_get_by_slug_not_found(
        self, category_service: CategoryService, mock_tx: MagicMock
    ):
        mock_tx.run.return_value.single.return_value = None

        with pytest.raises(CategoryNotFoundError):
            await category_service.get_category_by_slug("missing")

    def test_delete_missing(self, category_service: CategoryService, mock_tx: MagicMock):
        mock_tx.run.return_value.consume.return_value.counters.nodes_deleted = 0

        with pytest.raises(CategoryNotFoundError):
            category_service._delete_category(mock_tx, uuid4())


@pytest.mark.unit
class TestTagService:
    @pytest.mark.asyncio
    async def test_editor_may_create_and_update(
        self,
        tag_service: TagService,
        editor_identity: Identity,
    ):
        with (
            patch.object(tag_service, "_create_tag") as mock_create,
            patch.object(tag_service, "_update_tag") as mock_update,
        ):
            await tag_service.create_tag(TagCreate(name="python"), editor_identity)
            await tag_service.update_tag(
                uuid4(), TagUpdate(name="python3"), editor_identity
            )

        mock_create.assert_called_once()
        mock_update.assert_called_once()

    @pytest.mark.asyncio
    async def test_plain_user_may_not_create(
        self, tag_service: TagService, test_identity: Identity
    ):
        with pytest.raises(TagForbiddenError):
            await tag_service.create_tag(TagCreate(name="python"), test_identity)

    @pytest.mark.asyncio
    async def test_only_admin_may_delete(
        self,
        tag_service: TagService,
        editor_identity: Identity,
        admin_identity: Identity,
        mock_tx: MagicMock,
    ):
        tag_id = uuid4()
        with patch.object(tag_service, "_delete_tag") as mock_delete:
            with pytest.raises(TagForbiddenError):
                await tag_service.delete_tag(tag_id, editor_identity)
            await tag_service.delete_tag(tag_id, admin_identity)

        mock_delete.assert_called_once_with(mock_tx, tag_id)

    def test_create_duplicate_name(self, tag_service: TagService, mock_tx: MagicMock):
        with patch.object(tag_service, "_name_taken", return_value=True):
            with pytest.raises(TagExistsError):
                tag_service._create_tag(mock_tx, TagCreate(name="python"))

    @pytest.mark.asyncio
    async def test_popular_tags_limit(self, tag_service: TagService, mock_tx: MagicMock):
        current_time = datetime.now(UTC)
        mock_tx.run.return_value = [
            {
                "tag": {
                    "tag_id": str(uuid4()),
                    "name": "neo4j",
                    "slug": "neo4j",
                    "created_at": current_time,
                    "updated_at": current_time,
                },
                "post_count": 7,
            }
        ]

        tags = await tag_service.list_popular_tags()

        assert tags[0].post_count == 7
        assert mock_tx.run.call_args.kwargs["limit"] == POPULAR_TAG_LIMIT
        assert "post_count DESC" in mock_tx.run.call_args.args[0]

    @pytest.mark.asyncio
    async def test_get_tag_not_found(self, tag_service: TagService, mock_tx: MagicMock):
        mock_tx.run.return_value.single.return_value = None

        with pytest.raises(TagNotFoundError):
            await tag_service.get_tag(uuid4())
