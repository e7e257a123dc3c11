from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, Response

from mcp_directory.core.config import Settings, get_settings
from mcp_directory.services.repository import get_repository
from mcp_directory.services.seo import collect_sitemap_entries, render_robots_txt, render_sitemap_xml

router = APIRouter()

SITEMAP_CACHE_CONTROL = "public, max-age=3600"


@router.get("/sitemap.xml", response_class=Response)
async def sitemap(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
) -> Response:
    entries = await collect_sitemap_entries(repository, settings.site_url)
    return Response(
        content=render_sitemap_xml(entries),
        media_type="application/xml",
        headers={"Cache-Control": SITEMAP_CACHE_CONTROL},
    )


@router.get("/robots.txt", response_class=PlainTextResponse)
async def robots(settings: Settings = Depends(get_settings)) -> PlainTextResponse:
    return PlainTextResponse(render_robots_txt(settings.site_url))
