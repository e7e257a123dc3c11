from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from mcp_directory.core.auth import Principal
from mcp_directory.core.config import Settings, get_settings
from mcp_directory.core.security import get_human_principal
from mcp_directory.schemas.auth import MeOut, OAuthProvider

router = APIRouter()


@router.get("/me", response_model=MeOut)
async def get_me(principal: Principal = Depends(get_human_principal)) -> MeOut:
    return MeOut(
        id=principal.subject,
        email=principal.email,
        role=principal.role,
        scopes=sorted(principal.scopes),
    )


@router.get("/auth/login")
async def start_oauth_login(
    provider: OAuthProvider = Query(default="github"),
    redirect_to: str | None = Query(default=None),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    if not settings.supabase_url:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth is not configured",
        )

    callback_url = f"{settings.site_url.rstrip('/')}/auth/callback?{urlencode({'redirectTo': safe_redirect_path(redirect_to)})}"
    query = urlencode({"provider": provider, "redirect_to": callback_url})
    return RedirectResponse(
        url=f"{settings.supabase_url.rstrip('/')}/auth/v1/authorize?{query}",
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


def safe_redirect_path(raw: str | None) -> str:
    """Only same-site absolute paths survive the login round trip."""
    if not raw or not raw.startswith("/") or raw.startswith("//") or "\\" in raw:
        return "/"
    return raw
