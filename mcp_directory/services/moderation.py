from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

LISTING_KINDS: tuple[str, ...] = ("server", "client")
LISTING_STATUSES: tuple[str, ...] = ("pending", "approved", "rejected")
DELETABLE_STATUSES: frozenset[str] = frozenset({"approved", "rejected"})

# Moderation only moves forward: nothing returns to pending, and deletion is
# handled separately because it is irreversible.
ALLOWED_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"approved", "rejected"}),
    "approved": frozenset(),
    "rejected": frozenset(),
}

logger = logging.getLogger(__name__)


class ModerationTransitionError(ValueError):
    """Raised when a listing status change is not a legal moderation step."""


class ListingCounter(Protocol):
    async def count_listings(self, *, kind: str, status: str) -> int: ...


def validate_status_transition(*, from_status: str, to_status: str) -> None:
    if to_status == from_status:
        return
    allowed = ALLOWED_STATUS_TRANSITIONS.get(from_status)
    if not allowed or to_status not in allowed:
        raise ModerationTransitionError(f"invalid status transition: {from_status} -> {to_status}")


def source_statuses_for(to_status: str) -> list[str]:
    """Statuses a row may currently hold for a write to ``to_status`` to apply.

    A same-state write is accepted so that repeated admin clicks stay idempotent.
    """
    if to_status not in LISTING_STATUSES:
        raise ModerationTransitionError(f"unknown listing status: {to_status}")
    sources = [
        from_status
        for from_status, targets in ALLOWED_STATUS_TRANSITIONS.items()
        if to_status in targets
    ]
    if not sources:
        raise ModerationTransitionError(f"listings cannot move back to {to_status}")
    return sorted({*sources, to_status})


def ensure_deletable(status: str) -> None:
    if status not in DELETABLE_STATUSES:
        raise ModerationTransitionError(f"only approved or rejected listings can be deleted, not {status}")


async def collect_moderation_stats(repository: ListingCounter) -> dict[str, dict[str, int]]:
    pairs = [(kind, status) for kind in LISTING_KINDS for status in LISTING_STATUSES]
    counts = await asyncio.gather(
        *(repository.count_listings(kind=kind, status=status) for kind, status in pairs)
    )

    stats: dict[str, dict[str, int]] = {f"{kind}s": {} for kind in LISTING_KINDS}
    for (kind, status), count in zip(pairs, counts):
        stats[f"{kind}s"][status] = int(count)
    logger.debug("moderation stats refreshed: %s", stats)
    return stats


def summarize_stats(stats: dict[str, Any]) -> dict[str, int]:
    totals = {status: 0 for status in LISTING_STATUSES}
    for bucket in stats.values():
        for status in LISTING_STATUSES:
            totals[status] += int(bucket.get(status, 0))
    return totals
