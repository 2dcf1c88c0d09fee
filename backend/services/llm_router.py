import logging
from typing import Optional

from models.schemas import ModelSelection, ResponseRequest
from services import model_router, providers
from services.task_classifier import classify_task, extract_user_text

logger = logging.getLogger(__name__)


def resolve_model(request: ResponseRequest) -> ModelSelection:
    """Use the client's model if given, otherwise pick one from the first user message."""
    text = extract_user_text(request.input_payload())

    if request.model:
        return ModelSelection(model=request.model, task_category=classify_task(text))

    selection = model_router.select_model_for_text(text, require_responses_api=True)
    if selection.fallback:
        logger.warning(
            f"[Router] No model fits {selection.task_category.value} with the Responses API; "
            f"using fallback {selection.model}"
        )
    else:
        logger.info(f"[Router] Routed {selection.task_category.value} -> {selection.model}")
    return selection


def check_model_usable(model: str) -> Optional[str]:
    """Returns an error message if the model cannot be served right now, else None."""
    if not providers.is_model_available(model):
        provider = model_router.get_model_provider(model)
        if model_router.get_model_profile(model) is None:
            provider = providers.infer_provider(model) or provider
        return f"Model {model} requires {provider.value} API key to be configured."

    if not model_router.is_model_supported(model):
        return f"Model {model} implementation is not yet available. Support coming soon."

    return None
