from datetime import datetime

from pydantic import UUID4, BaseModel, ConfigDict, Field, field_validator


class CategoryBase(BaseModel):
    """Fields shared by category payloads and records.

    Attributes:
        name: Unique category name, source of the slug
        description: Optional description
        image: Optional image URL
        color: Display color
        featured: Whether the category is featured
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=50)
    description: str = Field(default="", max_length=500)
    image: str = ""
    color: str = "#3498db"
    featured: bool = False

    @field_validator("name", mode="before")
    def strip_name(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(CategoryBase):
    pass


class Category(CategoryBase):
    category_id: UUID4
    slug: str
    created_at: datetime
    updated_at: datetime


class CategorySummary(BaseModel):
    """Projection of a category embedded in posts."""

    model_config = ConfigDict(frozen=True)

    category_id: UUID4
    name: str
    slug: str
