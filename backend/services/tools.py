import json
import logging
import datetime
from typing import Any, Iterable

from models.schemas import ToolCall, ToolOutput
from services.weather import get_weather

logger = logging.getLogger(__name__)

# ── tool definitions (Responses API format) ───────────────────────────────────

WEATHER_TOOL = {
    "type": "function",
    "name": "get_weather",
    "description": "Get the current weather in a given location",
    "parameters": {
        "type": "object",
        "properties": {
            "location": {
                "type": "string",
                "description": "The city and state, e.g. San Francisco, CA",
            },
            "unit": {
                "type": "string",
                "enum": ["celsius", "fahrenheit"],
                "description": "The unit of temperature to use. Infer this from the user's location.",
            },
        },
        "required": ["location", "unit"],
    },
}

WEB_SEARCH_TOOL = {"type": "web_search"}

CODE_INTERPRETER_TOOL = {"type": "code_interpreter"}

AVAILABLE_TOOLS = {
    "weather": WEATHER_TOOL,
    "web_search": WEB_SEARCH_TOOL,
    "code_interpreter": CODE_INTERPRETER_TOOL,
}

FUNCTION_TOOLS = {
    "get_weather": WEATHER_TOOL,
}


def _error_output(message: str) -> str:
    return json.dumps({
        "error": message,
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    })


# ── function handlers ─────────────────────────────────────────────────────────

def process_weather_tool_call(args: Any) -> str:
    """Run get_weather for a tool call. Always returns a JSON string, never raises."""
    try:
        if not args or not isinstance(args, dict):
            raise ValueError("Invalid arguments for weather tool")

        location = args.get("location")
        if not location:
            raise ValueError("Location is required for weather tool")

        unit = args.get("unit")
        valid_unit = unit if unit in ("celsius", "fahrenheit") else "fahrenheit"

        return json.dumps(get_weather(location, valid_unit))
    except Exception as e:
        logger.error(f"[Tools] Error getting weather data: {e}")
        return _error_output(str(e) or "Failed to get weather data")


FUNCTION_HANDLERS = {
    "get_weather": process_weather_tool_call,
}


# ── dispatcher ────────────────────────────────────────────────────────────────

def handle_tool_calls(tool_calls: Iterable[ToolCall]) -> list[ToolOutput]:
    """
    Execute client-declared function calls locally.

    Malformed calls are skipped, unknown functions and handler failures become
    error outputs, so one bad call never sinks the others.
    """
    outputs: list[ToolOutput] = []

    for call in tool_calls:
        if not call.type or not call.id:
            logger.warning(f"[Tools] Invalid tool call object, skipping: {call}")
            continue

        if call.type != "function":
            logger.warning(f"[Tools] Unhandled tool type: {call.type}")
            continue

        if not call.function or not call.function.name:
            logger.warning(f"[Tools] Invalid function call, missing name: {call}")
            continue

        try:
            name = call.function.name
            try:
                args = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError as e:
                logger.error(f"[Tools] Error parsing function arguments: {e}")
                args = {}

            handler = FUNCTION_HANDLERS.get(name)
            if handler is None:
                result = _error_output(f"Unknown function: {name}")
            else:
                result = handler(args)

            outputs.append(ToolOutput(tool_call_id=call.id, output=result))
        except Exception as e:
            logger.error(f"[Tools] Error processing tool call {call.id}: {e}")
            outputs.append(ToolOutput(
                tool_call_id=call.id,
                output=_error_output(f"Error processing tool call: {e}"),
            ))

    return outputs


def tool_outputs_as_input(outputs: Iterable[ToolOutput]) -> list[dict]:
    """Turn tool outputs into Responses API input items."""
    return [
        {"type": "function_call_output", "call_id": o.tool_call_id, "output": o.output}
        for o in outputs
    ]


def continuation_tools(tool_calls: Iterable[ToolCall]) -> list[dict]:
    """The tool definitions to resend when continuing after tool calls."""
    tools: list[dict] = []
    seen = set()
    for call in tool_calls:
        if call.type == "function":
            name = call.function.name if call.function else None
            definition = FUNCTION_TOOLS.get(name)
            if definition and name not in seen:
                seen.add(name)
                tools.append(definition)
        elif call.type and call.type not in seen:
            seen.add(call.type)
            tools.append({"type": call.type})
    return tools
