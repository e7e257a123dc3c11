from typing import Any, Literal

from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, ValidationError

from mcp_directory.services.normalize import coerce_string_list, split_lines

ListingKind = Literal["server", "client"]
ListingStatus = Literal["pending", "approved", "rejected"]

_HTTP_URL_ADAPTER = TypeAdapter(HttpUrl)


class PageInfoOut(BaseModel):
    page: int
    page_size: int
    total_count: int
    total_pages: int
    pages: list[int | str] = Field(default_factory=list)
    has_previous: bool = False
    has_next: bool = False
    disabled: bool = True


def optional_url(value: Any) -> str | None:
    """Blank form inputs mean "not provided"; anything else must be an http(s) URL."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return required_url(text)


def required_url(value: Any) -> str:
    text = str(value or "").strip()
    try:
        _HTTP_URL_ADAPTER.validate_python(text)
    except ValidationError as exc:
        raise ValueError("Must be a valid URL") from exc
    return text


def tag_list(value: Any) -> list[str]:
    return [tag.strip() for tag in coerce_string_list(value) if tag.strip()]


def line_list(value: Any) -> list[str]:
    return split_lines(value)
