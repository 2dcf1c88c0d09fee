from fastapi import APIRouter, HTTPException

from models.routing import Provider
from models.schemas import UpstreamToggle
from services import providers
from settings import settings

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/providers")
async def get_providers():
    """Which upstream providers have credentials configured."""
    return [
        {"provider": p.value, "configured": providers.is_provider_configured(p)}
        for p in Provider
    ]


@router.get("/upstream")
async def get_upstream():
    """Returns the currently active upstream endpoint."""
    return {
        "url": settings.get_base_url(),
        "custom": settings.is_custom_upstream(),
    }


@router.put("/upstream")
async def set_upstream(toggle: UpstreamToggle):
    """Point the relay at a different OpenAI-compatible endpoint at runtime."""
    if toggle.reset:
        settings.set_base_url(settings.get_default_base_url())
    elif toggle.url and toggle.url.startswith(("http://", "https://")):
        settings.set_base_url(toggle.url)
    else:
        raise HTTPException(status_code=400, detail="Provide an http(s) url or reset=true.")

    return {
        "status": "success",
        "url": settings.get_base_url(),
        "custom": settings.is_custom_upstream(),
    }
