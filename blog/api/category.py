from fastapi import APIRouter, HTTPException, status
from pydantic import UUID4

from blog.dependencies import CurrentIdentity
from blog.models.category import Category, CategoryCreate, CategoryUpdate
from blog.schemas.responses import DataResponse, ListResponse, MessageResponse
from blog.services.category import (
    CategoryError,
    CategoryExistsError,
    CategoryForbiddenError,
    CategoryNotFoundError,
    CategoryService,
)

router = APIRouter(prefix="/categories", tags=["categories"])
category_service = CategoryService()


def category_http_error(e: CategoryError) -> HTTPException:
    if isinstance(e, CategoryNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, CategoryForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, CategoryExistsError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error"
    )


@router.get("", response_model=ListResponse[Category])
async def list_categories() -> ListResponse[Category]:
    """Get all categories ordered by name."""
    try:
        categories = await category_service.list_categories()
    except CategoryError as e:
        raise category_http_error(e)
    return ListResponse[Category].of(categories)


@router.get("/featured/list", response_model=ListResponse[Category])
async def list_featured_categories() -> ListResponse[Category]:
    try:
        categories = await category_service.list_featured()
    except CategoryError as e:
        raise category_http_error(e)
    return ListResponse[Category].of(categories)


@router.get("/slug/{slug}", response_model=DataResponse[Category])
async def get_category_by_slug(slug: str) -> DataResponse[Category]:
    try:
        category = await category_service.get_category_by_slug(slug)
    except CategoryError as e:
        raise category_http_error(e)
    return DataResponse[Category](data=category)


@router.get("/{category_id}", response_model=DataResponse[Category])
async def get_category(category_id: UUID4) -> DataResponse[Category]:
    try:
        category = await category_service.get_category(category_id)
    except CategoryError as e:
        raise category_http_error(e)
    return DataResponse[Category](data=category)


@router.post(
    "", response_model=DataResponse[Category], status_code=status.HTTP_201_CREATED
)
async def create_category(
    category: CategoryCreate,
    identity: CurrentIdentity,
) -> DataResponse[Category]:
    """Create a category. Admin only.

    Raises:
        HTTPException: 403 for non-admins, 400 if the name is taken
    """
    try:
        created = await category_service.create_category(category, identity)
    except CategoryError as e:
        raise category_http_error(e)
    return DataResponse[Category](data=created)


@router.put("/{category_id}", response_model=DataResponse[Category])
async def update_category(
    category_id: UUID4,
    category: CategoryUpdate,
    identity: CurrentIdentity,
) -> DataResponse[Category]:
    """Update a category. Admin only.

    Raises:
        HTTPException: 403 for non-admins, 404 if missing, 400 if the name is taken
    """
    try:
        updated = await category_service.update_category(
            category_id, category, identity
        )
    except CategoryError as e:
        raise category_http_error(e)
    return DataResponse[Category](data=updated)


@router.delete("/{category_id}", response_model=MessageResponse)
async def delete_category(
    category_id: UUID4,
    identity: CurrentIdentity,
) -> MessageResponse:
    """Delete a category. Admin only."""
    try:
        await category_service.delete_category(category_id, identity)
    except CategoryError as e:
        raise category_http_error(e)
    return MessageResponse(success=True, message="Category removed")
