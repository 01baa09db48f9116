from fastapi import APIRouter, HTTPException, status
from pydantic import UUID4

from blog.dependencies import CurrentIdentity
from blog.models.tag import Tag, TagCreate, TagUpdate
from blog.schemas.responses import DataResponse, ListResponse, MessageResponse
from blog.services.tag import (
    TagError,
    TagExistsError,
    TagForbiddenError,
    TagNotFoundError,
    TagService,
)

router = APIRouter(prefix="/tags", tags=["tags"])
tag_service = TagService()


def tag_http_error(e: TagError) -> HTTPException:
    if isinstance(e, TagNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, TagForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, TagExistsError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error"
    )


@router.get("", response_model=ListResponse[Tag])
async def list_tags() -> ListResponse[Tag]:
    """Get all tags ordered by name."""
    try:
        tags = await tag_service.list_tags()
    except TagError as e:
        raise tag_http_error(e)
    return ListResponse[Tag].of(tags)


@router.get("/popular/list", response_model=ListResponse[Tag])
async def list_popular_tags() -> ListResponse[Tag]:
    """Get the ten tags attached to the most posts."""
    try:
        tags = await tag_service.list_popular_tags()
    except TagError as e:
        raise tag_http_error(e)
    return ListResponse[Tag].of(tags)


@router.get("/slug/{slug}", response_model=DataResponse[Tag])
async def get_tag_by_slug(slug: str) -> DataResponse[Tag]:
    try:
        tag = await tag_service.get_tag_by_slug(slug)
    except TagError as e:
        raise tag_http_error(e)
    return DataResponse[Tag](data=tag)


@router.get("/{tag_id}", response_model=DataResponse[Tag])
async def get_tag(tag_id: UUID4) -> DataResponse[Tag]:
    try:
        tag = await tag_service.get_tag(tag_id)
    except TagError as e:
        raise tag_http_error(e)
    return DataResponse[Tag](data=tag)


@router.post("", response_model=DataResponse[Tag], status_code=status.HTTP_201_CREATED)
async def create_tag(tag: TagCreate, identity: CurrentIdentity) -> DataResponse[Tag]:
    """Create a tag. Editors and admins only."""
    try:
        created = await tag_service.create_tag(tag, identity)
    except TagError as e:
        raise tag_http_error(e)
    return DataResponse[Tag](data=created)


@router.put("/{tag_id}", response_model=DataResponse[Tag])
async def update_tag(
    tag_id: UUID4,
    tag: TagUpdate,
    identity: CurrentIdentity,
) -> DataResponse[Tag]:
    """Update a tag. Editors and admins only."""
    try:
        updated = await tag_service.update_tag(tag_id, tag, identity)
    except TagError as e:
        raise tag_http_error(e)
    return DataResponse[Tag](data=updated)


@router.delete("/{tag_id}", response_model=MessageResponse)
async def delete_tag(tag_id: UUID4, identity: CurrentIdentity) -> MessageResponse:
    """Delete a tag. Admin only."""
    try:
        await tag_service.delete_tag(tag_id, identity)
    except TagError as e:
        raise tag_http_error(e)
    return MessageResponse(success=True, message="Tag removed")
