import re

_NON_SLUG_CHARS_RE = re.compile(r"[^\w\s-]", re.ASCII)
_WHITESPACE_RE = re.compile(r"\s+", re.ASCII)
_HYPHEN_RUN_RE = re.compile(r"-+")
_NUMERIC_RE = re.compile(r"^[0-9]+$")


def generate_slug(name: str) -> str:
    """Derive the URL slug for a listing name or post title.

    Slugs are recomputed from the name on every read, so this must stay
    deterministic and idempotent on its own output.
    Surrounding whitespace is hyphenated like any other run, so " Foo "
    slugs to "-foo-".
    """
    slug = name.lower()
    slug = _NON_SLUG_CHARS_RE.sub("", slug)
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _HYPHEN_RUN_RE.sub("-", slug)
    return slug.strip()


def is_numeric_segment(segment: str) -> bool:
    return bool(_NUMERIC_RE.match(segment))


def slugs_are_close_variants(left: str, right: str) -> bool:
    left_lower = left.lower()
    right_lower = right.lower()
    return left_lower == right_lower or left_lower in right_lower or right_lower in left_lower
