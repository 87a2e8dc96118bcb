from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cafedesk.schemas.common import PaginationMeta

BlogStatus = Literal["draft", "published", "archived"]


class FeaturedImageIn(BaseModel):
    url: str = Field(min_length=1, max_length=500)
    alt: Optional[str] = Field(default=None, max_length=200)
    caption: Optional[str] = Field(default=None, max_length=300)


class SeoIn(BaseModel):
    meta_title: Optional[str] = Field(default=None, max_length=70)
    meta_description: Optional[str] = Field(default=None, max_length=160)
    keywords: list[str] = Field(default_factory=list)
    og_image: Optional[str] = Field(default=None, max_length=500)


def _clean_labels(values: list[str]) -> list[str]:
    cleaned: list[str] = []
    for value in values:
        label = value.strip()
        if label and label not in cleaned:
            cleaned.append(label)
    return cleaned


class BlogPostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    excerpt: Optional[str] = Field(default=None, max_length=500)
    featured_image: Optional[FeaturedImageIn] = None
    categories: list[str] = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)
    status: BlogStatus = "draft"
    seo: Optional[SeoIn] = None
    read_time: Optional[int] = Field(default=None, ge=1, le=600)

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("title is required")
        return cleaned

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, value: list[str]) -> list[str]:
        cleaned = _clean_labels(value)
        if not cleaned:
            raise ValueError("at least one category is required")
        return cleaned

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: list[str]) -> list[str]:
        return _clean_labels(value)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Five ways to brew a better flat white",
                "content": "Start with fresh beans...",
                "excerpt": "A short guide for home baristas.",
                "categories": ["coffee"],
                "tags": ["brewing", "milk"],
                "status": "published",
            }
        }
    )


class BlogPostUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1)
    excerpt: Optional[str] = Field(default=None, max_length=500)
    featured_image: Optional[FeaturedImageIn] = None
    categories: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    status: Optional[BlogStatus] = None
    seo: Optional[SeoIn] = None
    read_time: Optional[int] = Field(default=None, ge=1, le=600)

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return None
        cleaned = _clean_labels(value)
        if not cleaned:
            raise ValueError("at least one category is required")
        return cleaned

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return None
        return _clean_labels(value)

    @model_validator(mode="after")
    def validate_has_update(self) -> "BlogPostUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class BlogPostOut(BaseModel):
    id: str
    slug: str
    title: str
    content: str
    excerpt: Optional[str] = None
    author_id: str
    featured_image: Optional[dict] = None
    categories: list[str]
    tags: list[str]
    status: BlogStatus
    published_at: Optional[datetime] = None
    seo: Optional[dict] = None
    view_count: int
    read_time: int
    created_at: datetime
    updated_at: datetime


class BlogPostMutationOut(BaseModel):
    message: str
    post: BlogPostOut


class BlogPostListOut(BaseModel):
    pagination: PaginationMeta
    items: list[BlogPostOut]


class BlogViewOut(BaseModel):
    slug: str
    view_count: int
