import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from mcp_directory.core.auth import Principal
from mcp_directory.core.config import Settings, get_settings
from mcp_directory.core.security import get_human_principal, get_optional_principal
from mcp_directory.core.slugs import generate_slug
from mcp_directory.schemas.blog import BlogPageOut, BlogPostCreateRequest, BlogPostOut, BlogPostUpdateRequest
from mcp_directory.schemas.common import PageInfoOut
from mcp_directory.services.pagination import (
    DEFAULT_PAGE,
    MAX_PAGE,
    build_page_info,
    parse_page_size,
    parse_positive_int,
    record_range,
)
from mcp_directory.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=BlogPageOut)
async def list_posts(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    page: str | None = Query(default=None),
    page_size: str | None = Query(default=None, alias="pageSize"),
    tag: str | None = Query(default=None),
) -> BlogPageOut:
    current_page = parse_positive_int(page, DEFAULT_PAGE, maximum=MAX_PAGE)
    size = parse_page_size(page_size, settings.blog_page_size)
    start, end = record_range(current_page, size)

    try:
        rows, total_count = await repository.list_published_posts(limit=end - start + 1, offset=start, tag=tag)
    except RepositoryUnavailableError as exc:
        logger.error("failed to load blog posts page=%s: %s", current_page, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="failed to load blog posts, try again",
        ) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    page_info = build_page_info(page=current_page, page_size=size, total_count=total_count)
    return BlogPageOut(
        items=[BlogPostOut(**row) for row in rows],
        pagination=PageInfoOut(**page_info.as_dict()),
    )


@router.get("/{slug}", response_model=BlogPostOut)
async def get_post(
    slug: str,
    principal: Principal | None = Depends(get_optional_principal),
    repository=Depends(get_repository),
) -> BlogPostOut:
    include_drafts = principal is not None and principal.is_admin
    try:
        row = await repository.get_post_by_slug(slug=slug, include_drafts=include_drafts)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="blog post not found")
    return BlogPostOut(**row)


@router.post("", response_model=BlogPostOut, status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: BlogPostCreateRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> BlogPostOut:
    try:
        principal.require_scopes({"blog:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    slug = generate_slug(payload.title)
    if not slug.strip("-"):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="title must contain letters or digits",
        )

    try:
        row = await repository.create_post(
            fields=payload.model_dump(),
            slug=slug,
            author_id=principal.actor_id,
        )
    except RepositoryConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"a blog post with slug '{slug}' already exists",
        ) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("blog post created id=%s slug=%s status=%s", row["id"], slug, payload.status)
    return BlogPostOut(**row)


@router.patch("/{post_id}", response_model=BlogPostOut)
async def update_post(
    post_id: UUID,
    payload: BlogPostUpdateRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> BlogPostOut:
    try:
        principal.require_scopes({"blog:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.update_post(post_id=str(post_id), fields=payload.changed_fields())
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return BlogPostOut(**row)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: UUID,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> Response:
    try:
        principal.require_scopes({"blog:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        await repository.delete_post(post_id=str(post_id))
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("blog post deleted id=%s actor=%s", post_id, principal.actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
