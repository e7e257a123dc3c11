import logging

from fastapi import APIRouter, Body, Depends, HTTPException, status

from mcp_directory.core.security import get_human_principal
from mcp_directory.schemas.listings import SubmissionOut, SubmissionRequest
from mcp_directory.services.repository import (
    RepositoryConflictError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=SubmissionOut, status_code=status.HTTP_201_CREATED)
async def create_submission(
    payload: SubmissionRequest = Body(...),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> SubmissionOut:
    try:
        principal.require_scopes({"submission:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.create_listing(
            kind=payload.type,
            fields=payload.listing_fields(),
            owner_id=principal.actor_id,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("submission created type=%s id=%s owner=%s", payload.type, row["id"], principal.actor_id)
    return SubmissionOut(**{**row, "type": payload.type})


@router.get("/mine", response_model=list[SubmissionOut])
async def list_my_submissions(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> list[SubmissionOut]:
    try:
        rows = await repository.list_listings_by_owner(owner_id=principal.actor_id)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [SubmissionOut(**row) for row in rows]
