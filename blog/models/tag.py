from datetime import datetime

from pydantic import UUID4, BaseModel, ConfigDict, Field, field_validator


class TagBase(BaseModel):
    """Fields shared by tag payloads and records.

    Attributes:
        name: Unique tag name, source of the slug
        description: Optional description
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=30)
    description: str = Field(default="", max_length=300)

    @field_validator("name", mode="before")
    def strip_name(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v


class TagCreate(TagBase):
    pass


class TagUpdate(TagBase):
    pass


class Tag(TagBase):
    tag_id: UUID4
    slug: str
    created_at: datetime
    updated_at: datetime
    post_count: int = Field(default=0, ge=0)


class TagSummary(BaseModel):
    """Projection of a tag embedded in posts."""

    model_config = ConfigDict(frozen=True)

    tag_id: UUID4
    name: str
    slug: str
