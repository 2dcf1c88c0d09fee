import json
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from models.schemas import InterruptRequest, ModelSelection, ResponseRequest, ToolCallRequest
from services import responses_api
from services.llm_router import check_model_usable, resolve_model
from services.model_router import FALLBACK_MODEL
from services.responses_api import ResponseStream, UpstreamError
from services.stream_registry import StreamRegistry
from services.tools import continuation_tools, handle_tool_calls, tool_outputs_as_input

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/responses", tags=["responses"])


def get_stream_registry(request: Request) -> StreamRegistry:
    return request.app.state.stream_registry


async def _relay(stream: ResponseStream, registry: StreamRegistry, model: str) -> StreamingResponse:
    """Wait for the upstream id, track the stream, and relay its events as SSE."""
    try:
        stream_id = await stream.wait_for_id()
    except UpstreamError as e:
        stream.cancel()
        raise HTTPException(status_code=502, detail=e.detail)
    except httpx.HTTPError as e:
        stream.cancel()
        raise HTTPException(status_code=502, detail=f"Failed to reach upstream API: {e}")

    registry.register(stream_id, stream)

    async def event_stream():
        try:
            async for event in stream.events():
                yield f"data: {json.dumps(event)}\n\n"
        except Exception as e:
            yield f"data: {json.dumps({'error': str(e)})}\n\n"
        finally:
            # Client went away or relay failed: stop the upstream call too
            if not stream.done:
                stream.cancel()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"x-stream-id": stream_id, "x-model": model},
    )


@router.post("")
async def create_response(request: ResponseRequest, registry: StreamRegistry = Depends(get_stream_registry)):
    selection: ModelSelection = resolve_model(request)

    error = check_model_usable(selection.model)
    if error:
        raise HTTPException(status_code=400, detail=error)

    input_payload = request.input_payload()
    tools = request.tools or None

    if not request.stream:
        try:
            response = await responses_api.create_response(
                input_payload,
                model=selection.model,
                previous_response_id=request.previous_response_id,
                store=request.store,
                tools=tools,
            )
        except UpstreamError as e:
            raise HTTPException(status_code=502, detail=e.detail)
        except httpx.HTTPError as e:
            raise HTTPException(status_code=502, detail=f"Failed to reach upstream API: {e}")
        return {"response": response, "model": selection.model, "fallback": selection.fallback}

    stream = responses_api.open_response_stream(
        input_payload,
        model=selection.model,
        previous_response_id=request.previous_response_id,
        store=request.store,
        tools=tools,
    )
    return await _relay(stream, registry, selection.model)


@router.post("/tools")
async def submit_tool_calls(request: ToolCallRequest, registry: StreamRegistry = Depends(get_stream_registry)):
    """Run the client's tool calls locally and continue the conversation with their outputs."""
    if not request.tool_calls:
        raise HTTPException(status_code=400, detail="Invalid or missing tool calls")
    if not request.response_id:
        raise HTTPException(status_code=400, detail="Missing response_id")

    outputs = handle_tool_calls(request.tool_calls)
    continuation = tool_outputs_as_input(outputs)
    if isinstance(request.input, str) and request.input:
        continuation.append({"role": "user", "content": request.input})
    elif isinstance(request.input, list):
        continuation.extend(request.input)

    model = request.model or FALLBACK_MODEL
    tools = continuation_tools(request.tool_calls) or None

    if not request.stream:
        try:
            response = await responses_api.create_response(
                continuation,
                model=model,
                previous_response_id=request.response_id,
                tools=tools,
            )
        except UpstreamError as e:
            raise HTTPException(status_code=502, detail=e.detail)
        except httpx.HTTPError as e:
            raise HTTPException(status_code=502, detail=f"Failed to reach upstream API: {e}")
        return {"response": response, "tool_outputs": [o.model_dump() for o in outputs]}

    stream = responses_api.open_response_stream(
        continuation,
        model=model,
        previous_response_id=request.response_id,
        tools=tools,
    )
    return await _relay(stream, registry, model)


@router.post("/interrupt")
async def interrupt_stream(request: InterruptRequest, registry: StreamRegistry = Depends(get_stream_registry)):
    if request.interrupt_all:
        count = registry.interrupt_all()
        return {"success": True, "message": f"Interrupted {count} active streams", "count": count}

    if not request.stream_id:
        return JSONResponse(status_code=400, content={"success": False, "error": "Missing stream_id parameter"})

    if registry.interrupt(request.stream_id):
        return {"success": True, "message": f"Stream {request.stream_id} interrupted successfully"}

    return JSONResponse(
        status_code=404,
        content={"success": False, "error": f"Stream {request.stream_id} not found or already completed"},
    )


@router.get("/interrupt/status")
async def interrupt_status(stream_id: Optional[str] = None, registry: StreamRegistry = Depends(get_stream_registry)):
    if stream_id:
        return {"stream_id": stream_id, "active": registry.is_active(stream_id)}
    return {"active_streams": registry.count()}
