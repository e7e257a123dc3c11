from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from mcp_directory.core.slugs import generate_slug, is_numeric_segment, slugs_are_close_variants
from mcp_directory.services.repository import RepositoryError, escape_like

logger = logging.getLogger(__name__)

MatchKind = Literal["id", "exact", "partial", "fuzzy", "global"]
MIN_TOKEN_LENGTH = 3
GLOBAL_MATCH_LIMIT = 5


class ListingLookup(Protocol):
    async def get_approved_listing(self, *, kind: str, listing_id: int) -> dict[str, Any] | None: ...

    async def list_all_approved_listings(self, *, kind: str) -> list[dict[str, Any]]: ...

    async def search_approved_listings_by_name(
        self,
        *,
        kind: str,
        pattern: str,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...


@dataclass(slots=True)
class ResolvedListing:
    listing: dict[str, Any]
    matched_by: MatchKind
    score: int | None = None

    @property
    def canonical_slug(self) -> str:
        return generate_slug(self.listing.get("name") or "")


async def resolve_listing(repository: ListingLookup, kind: str, segment: str) -> ResolvedListing | None:
    """Map a URL path segment to an approved listing.

    Tries, in order: numeric id, exact slug, partial slug, fuzzy name tokens
    and a last wildcard name query. Backend failures are logged and reported
    as not found.
    """
    try:
        return await _resolve(repository, kind, segment)
    except RepositoryError as exc:
        logger.error("listing lookup failed kind=%s segment=%s error=%s", kind, segment, exc)
        return None


async def _resolve(repository: ListingLookup, kind: str, segment: str) -> ResolvedListing | None:
    if is_numeric_segment(segment):
        listing = await repository.get_approved_listing(kind=kind, listing_id=int(segment))
        if listing is None:
            logger.info("no approved %s with id=%s", kind, segment)
            return None
        return ResolvedListing(listing=listing, matched_by="id")

    wanted = segment.lower()
    candidates = await repository.list_all_approved_listings(kind=kind)

    for listing in candidates:
        if generate_slug(listing.get("name") or "") == wanted:
            logger.info("exact slug match kind=%s slug=%s id=%s", kind, segment, listing.get("id"))
            return ResolvedListing(listing=listing, matched_by="exact")

    for listing in candidates:
        candidate_slug = generate_slug(listing.get("name") or "")
        if candidate_slug and slugs_are_close_variants(candidate_slug, wanted):
            logger.info("partial slug match kind=%s slug=%s id=%s", kind, segment, listing.get("id"))
            return ResolvedListing(listing=listing, matched_by="partial")

    tokens = slug_tokens(segment)
    if not tokens:
        logger.info("no usable slug tokens kind=%s slug=%s", kind, segment)
        return None

    try:
        fuzzy_matches = await repository.search_approved_listings_by_name(
            kind=kind,
            pattern=f"%{escape_like(tokens[0])}%",
        )
    except RepositoryError as exc:
        logger.warning("fuzzy name query failed kind=%s slug=%s error=%s", kind, segment, exc)
        fuzzy_matches = []
    best = best_token_match(fuzzy_matches, tokens)
    if best is not None:
        listing, score = best
        logger.info("fuzzy slug match kind=%s slug=%s id=%s score=%s", kind, segment, listing.get("id"), score)
        return ResolvedListing(listing=listing, matched_by="fuzzy", score=score)

    wildcard = "%".join(escape_like(part) for part in segment.split("-"))
    global_matches = await repository.search_approved_listings_by_name(
        kind=kind,
        pattern=f"%{wildcard}%",
        limit=GLOBAL_MATCH_LIMIT,
    )
    if global_matches:
        listing = global_matches[0]
        logger.info("global name match kind=%s slug=%s id=%s", kind, segment, listing.get("id"))
        return ResolvedListing(listing=listing, matched_by="global")

    logger.info("no listing matches kind=%s slug=%s", kind, segment)
    return None


def slug_tokens(segment: str) -> list[str]:
    return [part.lower() for part in segment.split("-") if len(part) >= MIN_TOKEN_LENGTH]


def best_token_match(
    listings: list[dict[str, Any]],
    tokens: list[str],
) -> tuple[dict[str, Any], int] | None:
    """Highest-scoring listing by number of tokens found in its name.

    Ties keep query order, so the earliest row wins.
    """
    best: tuple[dict[str, Any], int] | None = None
    for listing in listings:
        name = (listing.get("name") or "").lower()
        score = sum(1 for token in tokens if token in name)
        if score > 0 and (best is None or score > best[1]):
            best = (listing, score)
    return best


def canonical_redirect_target(segment: str, listing: dict[str, Any]) -> str | None:
    """Canonical slug to redirect to, or ``None`` when the segment is close enough."""
    canonical = generate_slug(listing.get("name") or "")
    if not canonical:
        return None
    if is_numeric_segment(segment):
        # A purely numeric name slugs to itself; redirecting would loop.
        return None if segment == canonical else canonical
    if slugs_are_close_variants(segment, canonical):
        return None
    return canonical
