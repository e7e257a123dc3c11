from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, EmailStr, Field, field_validator

from mcp_directory.schemas.common import (
    ListingStatus,
    PageInfoOut,
    line_list,
    optional_url,
    required_url,
    tag_list,
)


class ListingOut(BaseModel):
    id: int
    created_at: datetime
    name: str
    slug: str
    description: str
    tags: list[str] = Field(default_factory=list)
    logo_url: str | None = None
    github_url: str | None = None
    contact_email: str | None = None
    twitter_url: str | None = None
    reddit_url: str | None = None
    linkedin_url: str | None = None
    instagram_url: str | None = None
    status: ListingStatus = "pending"
    user_id: str | None = None


class ServerOut(ListingOut):
    endpoint_url: str
    features: list[str] = Field(default_factory=list)


class ClientOut(ListingOut):
    client_url: str
    capabilities: list[str] = Field(default_factory=list)
    compatibility: list[str] = Field(default_factory=list)


class ServerPageOut(BaseModel):
    items: list[ServerOut] = Field(default_factory=list)
    pagination: PageInfoOut


class ClientPageOut(BaseModel):
    items: list[ClientOut] = Field(default_factory=list)
    pagination: PageInfoOut


class ListingMetadataOut(BaseModel):
    title: str
    description: str
    keywords: list[str] = Field(default_factory=list)
    canonical_url: str
    open_graph: dict[str, Any] = Field(default_factory=dict)
    twitter: dict[str, Any] = Field(default_factory=dict)
    structured_data: dict[str, Any] = Field(default_factory=dict)


class ServerDetailOut(BaseModel):
    listing: ServerOut
    metadata: ListingMetadataOut
    recommended: list[ServerOut] = Field(default_factory=list)


class ClientDetailOut(BaseModel):
    listing: ClientOut
    metadata: ListingMetadataOut
    recommended: list[ClientOut] = Field(default_factory=list)


class _SubmissionBase(BaseModel):
    name: str = Field(min_length=2)
    description: str = Field(min_length=10)
    tags: list[str]
    contact_email: EmailStr
    logo_url: str | None = None
    github_url: str | None = None
    twitter_url: str | None = None
    reddit_url: str | None = None
    linkedin_url: str | None = None
    instagram_url: str | None = None

    @field_validator("name", "description", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> list[str]:
        tags = tag_list(value)
        if not tags:
            raise ValueError("At least one tag is required")
        return tags

    @field_validator(
        "logo_url",
        "github_url",
        "twitter_url",
        "reddit_url",
        "linkedin_url",
        "instagram_url",
        mode="before",
    )
    @classmethod
    def _check_optional_url(cls, value: Any) -> str | None:
        return optional_url(value)

    def listing_fields(self) -> dict[str, Any]:
        fields = self.model_dump(exclude={"type"})
        fields["contact_email"] = str(self.contact_email)
        return fields


class ServerSubmission(_SubmissionBase):
    type: Literal["server"]
    endpoint_url: str
    features: list[str] = Field(default_factory=list)

    @field_validator("endpoint_url", mode="before")
    @classmethod
    def _check_endpoint_url(cls, value: Any) -> str:
        return required_url(value)

    @field_validator("features", mode="before")
    @classmethod
    def _split_features(cls, value: Any) -> list[str]:
        return line_list(value)


class ClientSubmission(_SubmissionBase):
    type: Literal["client"]
    client_url: str
    capabilities: list[str] = Field(default_factory=list)
    compatibility: list[str] = Field(default_factory=list)

    @field_validator("client_url", mode="before")
    @classmethod
    def _check_client_url(cls, value: Any) -> str:
        return required_url(value)

    @field_validator("capabilities", "compatibility", mode="before")
    @classmethod
    def _split_lines(cls, value: Any) -> list[str]:
        return line_list(value)


SubmissionRequest = Annotated[Union[ServerSubmission, ClientSubmission], Field(discriminator="type")]


class SubmissionOut(BaseModel):
    id: int
    type: Literal["server", "client"]
    name: str
    slug: str
    status: ListingStatus
    created_at: datetime
