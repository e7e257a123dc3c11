from __future__ import annotations

import json
from typing import Any

LISTING_ARRAY_FIELDS: dict[str, tuple[str, ...]] = {
    "server": ("tags", "features"),
    "client": ("tags", "capabilities", "compatibility"),
}
BLOG_ARRAY_FIELDS: tuple[str, ...] = ("tags",)


def coerce_string_list(value: Any) -> list[str]:
    """Coerce a stored array-ish field into a list of strings.

    Older rows hold these fields as JSON-encoded text or as a
    comma-separated string instead of a real array.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [item if isinstance(item, str) else str(item) for item in value if item is not None]
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return []
        if stripped.startswith("["):
            try:
                decoded = json.loads(stripped)
            except json.JSONDecodeError:
                decoded = None
            if isinstance(decoded, list):
                return coerce_string_list(decoded)
        return split_commas(stripped)
    return [str(value)]


def split_commas(value: str) -> list[str]:
    return [chunk.strip() for chunk in value.split(",") if chunk.strip()]


def split_lines(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return [line.strip() for line in str(value).splitlines() if line.strip()]


def normalize_listing_record(kind: str, row: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(row)
    for field_name in LISTING_ARRAY_FIELDS.get(kind, ("tags",)):
        normalized[field_name] = coerce_string_list(row.get(field_name))
    return normalized


def normalize_blog_record(row: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(row)
    for field_name in BLOG_ARRAY_FIELDS:
        normalized[field_name] = coerce_string_list(row.get(field_name))
    return normalized
