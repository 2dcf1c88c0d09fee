from fastapi import APIRouter

from models.schemas import ModelSelection, SelectRequest
from services import model_router, providers

router = APIRouter(prefix="/models", tags=["models"])


@router.get("")
async def list_models():
    """Every model in the capability table, with whether it can be served right now."""
    models = []
    for profile in model_router.MODEL_PROFILES.values():
        models.append({
            **profile.model_dump(mode="json"),
            "supported": model_router.is_model_supported(profile.id),
            "available": providers.is_model_available(profile.id),
        })
    return models


@router.post("/select")
async def select_model(request: SelectRequest) -> ModelSelection:
    """Run the router without calling upstream. An explicit task_category skips classification."""
    return model_router.select_model_for_text(
        request.text,
        task_category=request.task_category,
        **request.model_dump(exclude={"text", "task_category"}),
    )
