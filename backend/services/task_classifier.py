"""
Keyword-based task classifier.

Maps free text to a coarse TaskCategory using ordered substring rules. The
first matching rule wins, so rule order is the precedence between categories
whose vocabularies overlap ("explain this code's complex logic" is a code
explanation, not complex reasoning). This is an approximation, not a
guarantee that the categories are mutually exclusive.
"""
from typing import Any

from models.routing import TaskCategory

# (required keywords, any-of keywords, category)
# Every keyword in the first tuple must appear, plus at least one of the second.
_RULES: list[tuple[tuple[str, ...], tuple[str, ...], TaskCategory]] = [
    (("code",), ("write", "generate", "create"), TaskCategory.CODE_GENERATION),
    (("code",), ("explain", "understand"), TaskCategory.CODE_EXPLANATION),
    ((), ("search", "find information", "look up"), TaskCategory.SEARCH_AUGMENTED),
    (("analyze",), ("data", "results"), TaskCategory.DATA_ANALYSIS),
    ((), ("write", "story", "creative"), TaskCategory.CREATIVE_WRITING),
    ((), ("complex", "difficult", "challenging"), TaskCategory.COMPLEX_REASONING),
    ((), ("use computer", "control desktop", "run program"), TaskCategory.COMPUTER_USE),
    ((), ("streaming", "real-time", "live"), TaskCategory.REALTIME_STREAMING),
    ((), ("image", "picture", "photo"), TaskCategory.MULTIMODAL),
]


def classify_task(text: Any) -> TaskCategory:
    """Return the task category for a user message. Never raises."""
    if not isinstance(text, str) or not text:
        return TaskCategory.GENERAL_CONVERSATION

    lowered = text.lower()
    for required, any_of, category in _RULES:
        if all(k in lowered for k in required) and any(k in lowered for k in any_of):
            return category

    return TaskCategory.GENERAL_CONVERSATION


def extract_user_text(input_value: Any) -> str:
    """
    Pull the first user-authored text out of a Responses-style input.

    Accepts a plain string, or a list of {role, content} messages where content
    is either a string or a list of {type: 'input_text' | 'text', text} parts.
    """
    if isinstance(input_value, str):
        return input_value
    if not isinstance(input_value, list):
        return ""

    for msg in input_value:
        if not isinstance(msg, dict) or msg.get("role") != "user":
            continue
        content = msg.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            for part in content:
                if isinstance(part, dict) and part.get("type") in ("input_text", "text"):
                    return part.get("text", "")
        return ""
    return ""
