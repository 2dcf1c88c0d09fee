"""
Capability-based model router.

MODEL_PROFILES is the single source of truth for what each upstream model can
do, what it costs and who serves it. select_model() filters that table by the
caller's hard constraints and ranks the survivors for the task category.

Selection never fails: when nothing satisfies the constraints the router hands
back FALLBACK_MODEL. Callers that care must check `fallback` on the
ModelSelection returned by select_model_for_text() and surface the degradation.
"""
import logging
from typing import Mapping, Optional

from models.routing import (
    CostTier,
    LatencyClass,
    ModelProfile,
    Provider,
    RoutingRequest,
    TaskCategory,
)
from models.schemas import ModelSelection
from services.task_classifier import classify_task

logger = logging.getLogger(__name__)

# Returned whenever no model survives filtering
FALLBACK_MODEL = "gpt-4o"


def _profile(model_id: str, **fields) -> tuple[str, ModelProfile]:
    return model_id, ModelProfile(id=model_id, **fields)


MODEL_PROFILES: dict[str, ModelProfile] = dict([
    # ── OpenAI ────────────────────────────────────────────────────────────
    _profile("gpt-4o", provider=Provider.OPENAI, cost_tier=CostTier.MEDIUM,
             text_generation=9.2, reasoning=8.5, coding=8.5, context_size=128000,
             latency=LatencyClass.LOW, multimodal=True, tool_use=True),
    _profile("gpt-o3", provider=Provider.OPENAI, cost_tier=CostTier.HIGH,
             text_generation=9.5, reasoning=9.3, coding=9.0, context_size=200000,
             latency=LatencyClass.LOW, multimodal=True, tool_use=True),
    _profile("gpt-4-turbo", provider=Provider.OPENAI, cost_tier=CostTier.MEDIUM,
             text_generation=8.8, reasoning=8.0, coding=8.0, context_size=128000,
             latency=LatencyClass.MEDIUM, multimodal=True, tool_use=True),
    _profile("gpt-4.5-preview", provider=Provider.OPENAI, cost_tier=CostTier.MEDIUM,
             text_generation=9.4, reasoning=9.0, coding=8.8, context_size=128000,
             latency=LatencyClass.LOW, multimodal=True, tool_use=True, responses_api=True),
    _profile("o1", provider=Provider.OPENAI, cost_tier=CostTier.HIGH,
             text_generation=9.7, reasoning=9.6, coding=9.4, context_size=200000,
             latency=LatencyClass.LOW, multimodal=True, tool_use=True, computer_use=True),
    # ── Anthropic ─────────────────────────────────────────────────────────
    _profile("claude-3-7-sonnet-20250219", provider=Provider.ANTHROPIC, cost_tier=CostTier.HIGH,
             text_generation=9.3, reasoning=9.1, coding=8.9, context_size=200000,
             latency=LatencyClass.LOW, multimodal=True, tool_use=True, computer_use=True),
    _profile("claude-3-5-opus-20240620", provider=Provider.ANTHROPIC, cost_tier=CostTier.HIGH,
             text_generation=9.5, reasoning=9.4, coding=8.8, context_size=200000,
             latency=LatencyClass.MEDIUM, multimodal=True, tool_use=True),
    _profile("claude-3-5-haiku-20240307", provider=Provider.ANTHROPIC, cost_tier=CostTier.MEDIUM,
             text_generation=8.6, reasoning=8.3, coding=7.9, context_size=200000,
             latency=LatencyClass.VERY_LOW, multimodal=True, tool_use=True),
    # ── Google ────────────────────────────────────────────────────────────
    _profile("gemini-2.0-flash-thinking-exp", provider=Provider.GOOGLE, cost_tier=CostTier.HIGH,
             text_generation=9.1, reasoning=9.2, coding=8.7, context_size=1000000,
             latency=LatencyClass.LOW, multimodal=True, tool_use=True, streaming_thinking=True),
    _profile("gemini-2.0-pro-experimental", provider=Provider.GOOGLE, cost_tier=CostTier.HIGH,
             text_generation=9.3, reasoning=9.0, coding=9.1, context_size=2000000,
             latency=LatencyClass.MEDIUM, multimodal=True, tool_use=True, video_processing=True),
    _profile("gemini-2.0-flash-lite", provider=Provider.GOOGLE, cost_tier=CostTier.MEDIUM,
             text_generation=8.5, reasoning=8.0, coding=7.8, context_size=1000000,
             latency=LatencyClass.VERY_LOW, multimodal=True, tool_use=True),
    # ── Meta (via Groq) / Perplexity ──────────────────────────────────────
    _profile("llama-3.3-70b-versatile", provider=Provider.META, cost_tier=CostTier.MEDIUM,
             text_generation=8.7, reasoning=8.4, coding=8.2, context_size=128000,
             latency=LatencyClass.MEDIUM, multimodal=True, tool_use=True),
    _profile("llama-3.1-sonar-huge-128k-online", provider=Provider.PERPLEXITY, cost_tier=CostTier.MEDIUM,
             text_generation=8.8, reasoning=8.5, coding=8.3, context_size=127000,
             latency=LatencyClass.MEDIUM, multimodal=True, tool_use=True, web_search=True),
])

_COST_RANK = {CostTier.LOW: 1, CostTier.MEDIUM: 2, CostTier.HIGH: 3}
_LATENCY_SCORE = {
    LatencyClass.VERY_LOW: 10,
    LatencyClass.LOW: 8,
    LatencyClass.MEDIUM: 5,
    LatencyClass.HIGH: 2,
}

# Hard feature requirements: RoutingRequest field -> ModelProfile flag
_REQUIREMENTS = (
    ("require_responses_api", "responses_api"),
    ("require_computer_use", "computer_use"),
    ("require_streaming_thinking", "streaming_thinking"),
    ("require_web_search", "web_search"),
)


def cost_tier_rank(tier) -> int:
    """low=1, medium=2, high=3. Anything unrecognised ranks as high."""
    try:
        return _COST_RANK[CostTier(tier)]
    except ValueError:
        return 3


def latency_score(latency) -> int:
    try:
        return _LATENCY_SCORE[LatencyClass(latency)]
    except ValueError:
        return 5


def task_score(profile: ModelProfile, category: TaskCategory) -> float:
    """Score how well a model suits a task category. Weights are fixed."""
    if category in (TaskCategory.CODE_GENERATION, TaskCategory.CODE_EXPLANATION):
        return profile.coding * 1.5 + profile.reasoning * 0.5
    if category == TaskCategory.CREATIVE_WRITING:
        return profile.text_generation * 1.5 + profile.reasoning * 0.3
    if category == TaskCategory.COMPLEX_REASONING:
        return profile.reasoning * 1.5 + profile.text_generation * 0.3
    if category == TaskCategory.DATA_ANALYSIS:
        return profile.reasoning * 1.2 + profile.coding * 0.8
    if category == TaskCategory.TOOL_USE:
        return 10 if profile.tool_use else 0
    if category == TaskCategory.MULTIMODAL:
        return 10 if profile.multimodal else 0
    if category == TaskCategory.COMPUTER_USE:
        return 10 if profile.computer_use else 0
    if category == TaskCategory.SEARCH_AUGMENTED:
        return 10 if profile.web_search else 0
    if category == TaskCategory.REALTIME_STREAMING:
        return latency_score(profile.latency) * 1.5
    return profile.text_generation + profile.reasoning


def eligible_models(
    request: RoutingRequest,
    profiles: Mapping[str, ModelProfile] = MODEL_PROFILES,
) -> list[ModelProfile]:
    """Apply every hard constraint in the request, in table order."""
    candidates = [p for p in profiles.values() if p.context_size >= request.min_context_length]

    if request.preferred_provider:
        candidates = [p for p in candidates if p.provider == request.preferred_provider]

    max_rank = cost_tier_rank(request.max_cost_tier)
    candidates = [p for p in candidates if cost_tier_rank(p.cost_tier) <= max_rank]

    for requirement, flag in _REQUIREMENTS:
        if getattr(request, requirement):
            candidates = [p for p in candidates if getattr(p, flag)]

    return candidates


def rank_models(
    request: RoutingRequest,
    profiles: Mapping[str, ModelProfile] = MODEL_PROFILES,
) -> list[tuple[ModelProfile, float]]:
    """Eligible models with their scores, best first. Cheaper wins a tie."""
    scored = [(p, task_score(p, request.task_category)) for p in eligible_models(request, profiles)]
    # sorted() is stable, so remaining ties keep table order
    return sorted(scored, key=lambda item: (-item[1], cost_tier_rank(item[0].cost_tier)))


def select_model(
    request: RoutingRequest,
    profiles: Mapping[str, ModelProfile] = MODEL_PROFILES,
) -> str:
    """Pick the best model id for the request. Returns FALLBACK_MODEL rather than failing."""
    ranked = rank_models(request, profiles)
    if not ranked:
        logger.warning(
            f"[Router] No model satisfies {request.model_dump(exclude_defaults=True)}; "
            f"falling back to {FALLBACK_MODEL}"
        )
        return FALLBACK_MODEL

    best, score = ranked[0]
    logger.debug(f"[Router] {request.task_category.value} -> {best.id} (score {score:.2f})")
    return best.id


def select_model_for_text(
    text: str,
    profiles: Mapping[str, ModelProfile] = MODEL_PROFILES,
    task_category: Optional[TaskCategory] = None,
    **constraints,
) -> ModelSelection:
    """Classify the text (unless a category is given) and select a model under the given constraints."""
    category = task_category or classify_task(text)
    request = RoutingRequest(task_category=category, **constraints)
    fallback = not eligible_models(request, profiles)
    model = select_model(request, profiles)
    return ModelSelection(model=model, task_category=category, fallback=fallback)


def get_model_profile(model: str) -> Optional[ModelProfile]:
    return MODEL_PROFILES.get(model)


def get_model_provider(model: str) -> Provider:
    """Provider serving the model. Unknown models default to OpenAI."""
    profile = MODEL_PROFILES.get(model)
    return profile.provider if profile else Provider.OPENAI


def get_model_cost_tier(model: str) -> CostTier:
    """Cost tier of the model. Unknown models are treated as high cost."""
    profile = MODEL_PROFILES.get(model)
    return profile.cost_tier if profile else CostTier.HIGH


def is_model_supported(model: str) -> bool:
    """Only OpenAI-served models are wired to an upstream client today."""
    profile = MODEL_PROFILES.get(model)
    return profile is not None and profile.provider == Provider.OPENAI
