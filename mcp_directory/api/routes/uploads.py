from typing import Literal

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from mcp_directory.core.config import Settings, get_settings
from mcp_directory.core.security import get_human_principal
from mcp_directory.schemas.auth import UploadOut
from mcp_directory.services.storage import (
    IMAGE_EXTENSIONS,
    StorageBucketNotFoundError,
    StoragePermissionError,
    StorageUnavailableError,
    build_object_path,
    get_storage,
)

router = APIRouter()

UploadBucket = Literal["blog-images", "logos"]
BUCKET_SCOPES: dict[str, set[str]] = {
    "blog-images": {"blog:write"},
    "logos": {"submission:write"},
}


@router.post("/{bucket}", response_model=UploadOut, status_code=status.HTTP_201_CREATED)
async def upload_image(
    bucket: UploadBucket,
    file: UploadFile = File(...),
    principal=Depends(get_human_principal),
    settings: Settings = Depends(get_settings),
    storage=Depends(get_storage),
) -> UploadOut:
    try:
        principal.require_scopes(BUCKET_SCOPES[bucket])
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    content_type = (file.content_type or "").lower()
    if content_type not in IMAGE_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"unsupported image type: {content_type or 'unknown'}",
        )

    # Never buffer more than one byte past the limit.
    content = await file.read(settings.storage_max_upload_bytes + 1)
    if not content:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="empty upload")
    if len(content) > settings.storage_max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"image exceeds {settings.storage_max_upload_bytes} bytes",
        )

    try:
        stored = await storage.upload(
            bucket=bucket,
            path=build_object_path(principal.actor_id, content_type),
            content=content,
            content_type=content_type,
            access_token=principal.access_token,
        )
    except StorageBucketNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except StoragePermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except StorageUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return UploadOut(bucket=stored.bucket, path=stored.path, public_url=stored.public_url)
