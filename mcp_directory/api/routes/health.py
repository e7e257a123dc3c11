from fastapi import APIRouter, Depends

from mcp_directory.core.config import Settings, get_settings

router = APIRouter()


@router.get("/")
async def root(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    return {"status": "ok", "service": settings.app_name, "site": settings.site_name}


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}
