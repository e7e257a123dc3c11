from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

from mcp_directory.schemas.common import ListingStatus, line_list, optional_url, required_url, tag_list


class ListingStatusPatchRequest(BaseModel):
    status: ListingStatus
    reason: str | None = None


class ListingEditRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2)
    description: str | None = Field(default=None, min_length=10)
    tags: list[str] | None = None
    contact_email: EmailStr | None = None
    logo_url: str | None = None
    github_url: str | None = None
    twitter_url: str | None = None
    reddit_url: str | None = None
    linkedin_url: str | None = None
    instagram_url: str | None = None
    endpoint_url: str | None = None
    client_url: str | None = None
    features: list[str] | None = None
    capabilities: list[str] | None = None
    compatibility: list[str] | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> list[str] | None:
        if value is None:
            return None
        tags = tag_list(value)
        if not tags:
            raise ValueError("At least one tag is required")
        return tags

    @field_validator("features", "capabilities", "compatibility", mode="before")
    @classmethod
    def _split_lines(cls, value: Any) -> list[str] | None:
        return None if value is None else line_list(value)

    @field_validator("logo_url", "github_url", "twitter_url", "reddit_url", "linkedin_url", "instagram_url", mode="before")
    @classmethod
    def _check_optional_url(cls, value: Any) -> str | None:
        return optional_url(value)

    @field_validator("endpoint_url", "client_url", mode="before")
    @classmethod
    def _check_required_url(cls, value: Any) -> str | None:
        return None if value is None else required_url(value)

    def changed_fields(self) -> dict[str, Any]:
        fields = {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key in NULLABLE_LISTING_FIELDS
        }
        if fields.get("contact_email") is not None:
            fields["contact_email"] = str(fields["contact_email"])
        return fields


NULLABLE_LISTING_FIELDS = {
    "contact_email",
    "logo_url",
    "github_url",
    "twitter_url",
    "reddit_url",
    "linkedin_url",
    "instagram_url",
}


class ModerationBucketOut(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0


class ModerationStatsOut(BaseModel):
    servers: ModerationBucketOut
    clients: ModerationBucketOut
    totals: ModerationBucketOut
