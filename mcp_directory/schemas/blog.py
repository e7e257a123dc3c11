from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from mcp_directory.schemas.common import PageInfoOut, optional_url, tag_list

BlogStatus = Literal["draft", "published"]


class BlogPostOut(BaseModel):
    id: str
    created_at: datetime
    updated_at: datetime | None = None
    title: str
    content: str
    excerpt: str
    slug: str
    featured_image: str | None = None
    author_id: str | None = None
    status: BlogStatus = "draft"
    tags: list[str] = Field(default_factory=list)


class BlogPageOut(BaseModel):
    items: list[BlogPostOut] = Field(default_factory=list)
    pagination: PageInfoOut


class BlogPostCreateRequest(BaseModel):
    title: str = Field(min_length=5)
    content: str = Field(min_length=50)
    excerpt: str = Field(min_length=20, max_length=200)
    tags: list[str] = Field(default_factory=list)
    status: BlogStatus = "draft"
    featured_image: str | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> list[str]:
        return tag_list(value)

    @field_validator("featured_image", mode="before")
    @classmethod
    def _check_image_url(cls, value: Any) -> str | None:
        return optional_url(value)


class BlogPostUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=5)
    content: str | None = Field(default=None, min_length=50)
    excerpt: str | None = Field(default=None, min_length=20, max_length=200)
    tags: list[str] | None = None
    status: BlogStatus | None = None
    featured_image: str | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> list[str] | None:
        return None if value is None else tag_list(value)

    @field_validator("featured_image", mode="before")
    @classmethod
    def _check_image_url(cls, value: Any) -> str | None:
        return optional_url(value)

    def changed_fields(self) -> dict[str, Any]:
        # featured_image may be cleared; the other columns are not nullable.
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key == "featured_image"
        }
