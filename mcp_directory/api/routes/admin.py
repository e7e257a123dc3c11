import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from mcp_directory.core.security import get_human_principal
from mcp_directory.schemas.admin import (
    ListingEditRequest,
    ListingStatusPatchRequest,
    ModerationBucketOut,
    ModerationStatsOut,
)
from mcp_directory.schemas.common import ListingKind, ListingStatus
from mcp_directory.schemas.listings import ClientOut, ServerOut
from mcp_directory.services.moderation import collect_moderation_stats, summarize_stats
from mcp_directory.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()
logger = logging.getLogger(__name__)

_ITEM_MODELS = {"server": ServerOut, "client": ClientOut}


@router.get("/listings", response_model=list[ServerOut] | list[ClientOut])
async def list_moderation_bucket(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    kind: ListingKind = Query(default="server"),
    listing_status: ListingStatus = Query(default="pending", alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_listings_by_status(
            kind=kind,
            status=listing_status,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"failed to load {listing_status} {kind}s, try again",
        ) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    item_model = _ITEM_MODELS[kind]
    return [item_model(**row) for row in rows]


@router.patch("/listings/{kind}/{listing_id}/status", response_model=ServerOut | ClientOut)
async def patch_listing_status(
    kind: ListingKind,
    listing_id: int,
    payload: ListingStatusPatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
):
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.update_listing_status(kind=kind, listing_id=listing_id, status=payload.status)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except (RepositoryNotFoundError, RepositoryValidationError) as exc:
        # Ids outside the bigint range cannot name a listing.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind} not found") from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    logger.info(
        "listing moderated kind=%s id=%s status=%s actor=%s reason=%s",
        kind,
        listing_id,
        payload.status,
        principal.actor_id,
        payload.reason,
    )
    return _ITEM_MODELS[kind](**row)


@router.patch("/listings/{kind}/{listing_id}", response_model=ServerOut | ClientOut)
async def patch_listing_fields(
    kind: ListingKind,
    listing_id: int,
    payload: ListingEditRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
):
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.update_listing_fields(
            kind=kind,
            listing_id=listing_id,
            fields=payload.changed_fields(),
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return _ITEM_MODELS[kind](**row)


@router.delete("/listings/{kind}/{listing_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_listing(
    kind: ListingKind,
    listing_id: int,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> Response:
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        await repository.delete_listing(kind=kind, listing_id=listing_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except (RepositoryNotFoundError, RepositoryValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind} not found") from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    logger.info("listing deleted kind=%s id=%s actor=%s", kind, listing_id, principal.actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/stats", response_model=ModerationStatsOut)
async def get_moderation_stats(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ModerationStatsOut:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        stats = await collect_moderation_stats(repository)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return ModerationStatsOut(
        servers=ModerationBucketOut(**stats["servers"]),
        clients=ModerationBucketOut(**stats["clients"]),
        totals=ModerationBucketOut(**summarize_stats(stats)),
    )
