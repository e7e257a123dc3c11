import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from mcp_directory.core.config import Settings, get_settings
from mcp_directory.schemas.common import PageInfoOut
from mcp_directory.schemas.listings import (
    ClientDetailOut,
    ClientOut,
    ClientPageOut,
    ListingMetadataOut,
    ServerDetailOut,
    ServerOut,
    ServerPageOut,
)
from mcp_directory.services.pagination import (
    DEFAULT_PAGE,
    MAX_PAGE,
    build_page_info,
    parse_page_size,
    parse_positive_int,
    record_range,
)
from mcp_directory.services.repository import (
    RepositoryError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from mcp_directory.services.resolver import canonical_redirect_target, resolve_listing
from mcp_directory.services.seo import LISTING_PATHS, build_listing_metadata

logger = logging.getLogger(__name__)

_MODELS = {
    "server": (ServerOut, ServerPageOut, ServerDetailOut),
    "client": (ClientOut, ClientPageOut, ClientDetailOut),
}


def _default_page_size(kind: str, settings: Settings) -> int:
    return settings.servers_page_size if kind == "server" else settings.clients_page_size


def build_listing_router(kind: str) -> APIRouter:
    """Public browse and detail routes for one listing kind."""
    item_model, page_model, detail_model = _MODELS[kind]
    path = LISTING_PATHS[kind]
    router = APIRouter()

    @router.get("", response_model=page_model, name=f"list_{path}")
    async def list_listings(
        settings: Settings = Depends(get_settings),
        repository=Depends(get_repository),
        page: str | None = Query(default=None),
        page_size: str | None = Query(default=None, alias="pageSize"),
        search: str | None = Query(default=None),
        sort: str | None = Query(default=None),
    ):
        current_page = parse_positive_int(page, DEFAULT_PAGE, maximum=MAX_PAGE)
        size = parse_page_size(page_size, _default_page_size(kind, settings))
        start, end = record_range(current_page, size)

        try:
            rows, total_count = await repository.list_approved_listings(
                kind=kind,
                limit=end - start + 1,
                offset=start,
                search=search,
                sort=sort or "latest",
            )
        except RepositoryUnavailableError as exc:
            logger.error("failed to load %s page=%s: %s", path, current_page, exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"failed to load {path}, try again",
            ) from exc
        except RepositoryValidationError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

        page_info = build_page_info(page=current_page, page_size=size, total_count=total_count)
        return page_model(
            items=[item_model(**row) for row in rows],
            pagination=PageInfoOut(**page_info.as_dict()),
        )

    @router.get("/{segment}", response_model=detail_model, name=f"get_{kind}")
    async def get_listing(
        segment: str,
        settings: Settings = Depends(get_settings),
        repository=Depends(get_repository),
    ):
        resolved = await resolve_listing(repository, kind, segment)
        if resolved is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind} not found")

        redirect_slug = canonical_redirect_target(segment, resolved.listing)
        if redirect_slug is not None:
            return RedirectResponse(
                url=f"/{path}/{redirect_slug}",
                status_code=status.HTTP_308_PERMANENT_REDIRECT,
            )

        try:
            recommended = await repository.list_recommended_listings(
                kind=kind,
                exclude_id=resolved.listing["id"],
                limit=settings.recommended_listings_limit,
            )
        except RepositoryError as exc:
            logger.warning("recommendations unavailable for %s id=%s: %s", kind, resolved.listing["id"], exc)
            recommended = []

        metadata = build_listing_metadata(
            site_url=settings.site_url,
            site_name=settings.site_name,
            kind=kind,
            listing=resolved.listing,
        )
        return detail_model(
            listing=item_model(**resolved.listing),
            metadata=ListingMetadataOut(**metadata),
            recommended=[item_model(**row) for row in recommended],
        )

    return router


servers_router = build_listing_router("server")
clients_router = build_listing_router("client")
