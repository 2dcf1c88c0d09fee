from typing import Optional

from models.routing import Provider
from settings import settings


def is_provider_configured(provider: Provider) -> bool:
    """A provider counts as configured once its API key is set in the environment."""
    return bool(settings.get_api_key(Provider(provider).value))


def get_available_providers() -> list[Provider]:
    return [p for p in Provider if is_provider_configured(p)]


def infer_provider(model: str) -> Optional[Provider]:
    """Guess the provider from a model name, for ids outside the capability table."""
    name = model.lower()
    if name.startswith("gpt-") or name in ("o1", "o3") or name.startswith(("o1-", "o3-")):
        return Provider.OPENAI
    if "claude" in name:
        return Provider.ANTHROPIC
    if "gemini" in name:
        return Provider.GOOGLE
    # Sonar models are Llama-based, so check them before the generic llama rule
    if "sonar" in name:
        return Provider.PERPLEXITY
    if "llama" in name:
        return Provider.META
    return None


def is_model_available(model: str) -> bool:
    """True if the model's provider has credentials configured."""
    provider = infer_provider(model)
    if provider is None:
        return False
    return is_provider_configured(provider)
