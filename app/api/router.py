"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from ..core.dependencies import get_user

router = APIRouter()


# ── Banner / health (no auth) ────────────────────────────────────────

@router.get("/", response_class=PlainTextResponse)
async def root():
    return "Progress API is running!"


@router.get("/health")
async def health():
    return {"status": "ok", "service": "progress-api"}


# ── Auth config (no auth) ───────────────────────────────────────────

@router.get("/auth/config")
async def auth_config():
    from ..core.config import get_settings
    from ..core.flags import get_flags

    flags = get_flags()
    if not flags.use_auth:
        return {"auth_enabled": False, "message": "Dev mode — no auth required"}

    settings = get_settings()
    return {
        "auth_enabled": True,
        "issuer": settings.auth_issuer,
        "audience": settings.auth_audience,
    }


# ── Progress routes (auth required) ─────────────────────────────────

from .progress import progress_router

router.include_router(progress_router, dependencies=[Depends(get_user)])
