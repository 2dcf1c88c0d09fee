from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    META = "meta"
    PERPLEXITY = "perplexity"


class CostTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LatencyClass(str, Enum):
    VERY_LOW = "very-low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskCategory(str, Enum):
    GENERAL_CONVERSATION = "general_conversation"
    CREATIVE_WRITING = "creative_writing"
    CODE_GENERATION = "code_generation"
    CODE_EXPLANATION = "code_explanation"
    COMPLEX_REASONING = "complex_reasoning"
    DATA_ANALYSIS = "data_analysis"
    TOOL_USE = "tool_use"
    MULTIMODAL = "multimodal"
    SEARCH_AUGMENTED = "search_augmented"
    COMPUTER_USE = "computer_use"
    REALTIME_STREAMING = "realtime_streaming"


class ModelProfile(BaseModel):
    """Everything the router knows about one upstream model."""
    model_config = ConfigDict(frozen=True)

    id: str
    provider: Provider
    cost_tier: CostTier
    text_generation: float = Field(ge=0, le=10)
    reasoning: float = Field(ge=0, le=10)
    coding: float = Field(ge=0, le=10)
    context_size: int
    latency: LatencyClass = LatencyClass.MEDIUM
    multimodal: bool = False
    tool_use: bool = False
    computer_use: bool = False
    streaming_thinking: bool = False
    web_search: bool = False
    responses_api: bool = False
    video_processing: bool = False


class RoutingRequest(BaseModel):
    task_category: TaskCategory = TaskCategory.GENERAL_CONVERSATION
    min_context_length: int = 0
    preferred_provider: Optional[Provider] = None
    max_cost_tier: CostTier = CostTier.HIGH
    require_responses_api: bool = False
    require_computer_use: bool = False
    require_streaming_thinking: bool = False
    require_web_search: bool = False
