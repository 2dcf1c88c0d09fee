from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Literal, Union, Dict, Any

from models.routing import CostTier, Provider, TaskCategory


class InputMessage(BaseModel):
    """One Responses input item. Items other than messages (function_call_output, ...) pass through."""
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    role: Optional[Literal["system", "developer", "user", "assistant"]] = None
    content: Optional[Union[str, List[Dict[str, Any]]]] = None


class ResponseRequest(BaseModel):
    input: Union[str, List[InputMessage]]
    model: Optional[str] = None
    previous_response_id: Optional[str] = None
    store: bool = True
    stream: bool = True
    tools: List[Dict[str, Any]] = []

    @field_validator("input")
    @classmethod
    def input_not_empty(cls, v):
        if not v:
            raise ValueError("Input is required")
        return v

    def input_payload(self) -> Union[str, List[Dict[str, Any]]]:
        """The input as plain JSON for the upstream API."""
        if isinstance(self.input, str):
            return self.input
        return [m.model_dump(exclude_unset=True) for m in self.input]


class ToolFunction(BaseModel):
    name: Optional[str] = None
    arguments: Optional[str] = None


class ToolCall(BaseModel):
    id: Optional[str] = None
    type: Optional[str] = None
    function: Optional[ToolFunction] = None


class ToolCallRequest(BaseModel):
    response_id: Optional[str] = None
    tool_calls: List[ToolCall] = []
    model: Optional[str] = None
    input: Optional[Union[str, List[Dict[str, Any]]]] = None
    stream: bool = True


class ToolOutput(BaseModel):
    tool_call_id: str
    output: str


class InterruptRequest(BaseModel):
    stream_id: Optional[str] = None
    interrupt_all: bool = False


class ModelSelection(BaseModel):
    model: str
    task_category: TaskCategory
    # True when no model met the constraints and the fallback was substituted
    fallback: bool = False


class SelectRequest(BaseModel):
    text: str = ""
    task_category: Optional[TaskCategory] = None
    min_context_length: int = Field(default=0, ge=0)
    preferred_provider: Optional[Provider] = None
    max_cost_tier: CostTier = CostTier.HIGH
    require_responses_api: bool = False
    require_computer_use: bool = False
    require_streaming_thinking: bool = False
    require_web_search: bool = False


class UpstreamToggle(BaseModel):
    url: Optional[str] = None
    reset: bool = False
