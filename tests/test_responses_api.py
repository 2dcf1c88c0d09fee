import os
import sys
import json
import asyncio
import httpx
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../backend")))
from services.responses_api import (
    ResponseStream,
    UpstreamError,
    build_payload,
    create_response,
    open_response_stream,
    parse_sse_line,
)
from services.stream_registry import StreamRegistry


# ── helpers ───────────────────────────────────────────────────────────────────

def _sse(*events) -> bytes:
    return "".join(f"event: {e['type']}\ndata: {json.dumps(e)}\n\n" for e in events).encode()


CREATED = {"type": "response.created", "response": {"id": "resp_abc", "status": "in_progress"}}
DELTA = {"type": "response.output_text.delta", "delta": "Hello"}
COMPLETED = {"type": "response.completed", "response": {"id": "resp_abc", "status": "completed"}}


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class Observer:
    def __init__(self, stream):
        self.ended = 0
        self.errors = []
        stream.on_end(self._end)
        stream.on_error(self.errors.append)

    def _end(self):
        self.ended += 1


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


# ── SSE parsing ───────────────────────────────────────────────────────────────

def test_parse_sse_line():
    assert parse_sse_line('data: {"type": "x"}') == {"type": "x"}
    assert parse_sse_line('data:{"type": "x"}') == {"type": "x"}
    assert parse_sse_line("event: response.created") is None
    assert parse_sse_line("data: [DONE]") is None
    assert parse_sse_line("data: not json") is None
    assert parse_sse_line("data: [1, 2]") is None
    assert parse_sse_line("") is None


def test_build_payload_omits_empty_options():
    payload = build_payload("hi", "gpt-4o")
    assert payload == {"model": "gpt-4o", "input": "hi", "store": True}

    payload = build_payload("hi", "gpt-4o", previous_response_id="resp_1", store=False,
                            tools=[{"type": "web_search"}], stream=True)
    assert payload["previous_response_id"] == "resp_1"
    assert payload["tools"] == [{"type": "web_search"}]
    assert payload["store"] is False
    assert payload["stream"] is True


# ── streaming ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_stream_relays_events_and_ends():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        return httpx.Response(200, content=_sse(CREATED, DELTA, COMPLETED))

    async with _client(handler) as client:
        stream = open_response_stream("hi", "gpt-4o", previous_response_id="resp_prev", client=client)
        observer = Observer(stream)

        assert await stream.wait_for_id() == "resp_abc"
        events = [e async for e in stream.events()]

    assert [e["type"] for e in events] == ["response.created", "response.output_text.delta", "response.completed"]
    assert seen["body"]["stream"] is True
    assert seen["body"]["previous_response_id"] == "resp_prev"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["path"].endswith("/responses")
    assert observer.ended == 1
    assert observer.errors == []
    assert stream.done


@pytest.mark.asyncio
async def test_stream_http_error():
    def handler(request):
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    async with _client(handler) as client:
        stream = open_response_stream("hi", "gpt-4o", client=client)
        observer = Observer(stream)

        with pytest.raises(UpstreamError) as exc:
            await stream.wait_for_id()

    assert exc.value.status_code == 401
    assert "bad key" in exc.value.detail
    assert observer.ended == 0
    assert len(observer.errors) == 1


@pytest.mark.asyncio
async def test_stream_failed_event_is_an_error():
    failed = {"type": "response.failed", "response": {"id": "resp_abc", "error": {"message": "overloaded"}}}

    def handler(request):
        return httpx.Response(200, content=_sse(CREATED, failed))

    async with _client(handler) as client:
        stream = open_response_stream("hi", "gpt-4o", client=client)
        observer = Observer(stream)
        assert await stream.wait_for_id() == "resp_abc"

        received = []
        with pytest.raises(UpstreamError, match="overloaded"):
            async for event in stream.events():
                received.append(event)

    assert [e["type"] for e in received] == ["response.created"]
    assert len(observer.errors) == 1
    assert observer.ended == 0


@pytest.mark.asyncio
async def test_stream_without_id_fails_wait():
    def handler(request):
        return httpx.Response(200, content=_sse(DELTA))

    async with _client(handler) as client:
        stream = open_response_stream("hi", "gpt-4o", client=client)
        with pytest.raises(UpstreamError):
            await stream.wait_for_id()


@pytest.mark.asyncio
async def test_created_event_without_id_stops_the_stream():
    async def body():
        yield _sse({"type": "response.created", "response": {}})
        await asyncio.sleep(30)

    def handler(request):
        return httpx.Response(200, content=body())

    async with _client(handler) as client:
        stream = open_response_stream("hi", "gpt-4o", client=client)
        observer = Observer(stream)

        with pytest.raises(UpstreamError, match="no response id"):
            await asyncio.wait_for(stream.wait_for_id(), timeout=5)
        await asyncio.sleep(0.05)

        assert stream._pump.done()
        assert stream.done
        assert len(observer.errors) == 1


@pytest.mark.asyncio
async def test_cancel_before_the_stream_starts():
    def handler(request):
        return httpx.Response(200, content=_sse(CREATED, COMPLETED))

    async with _client(handler) as client:
        stream = open_response_stream("hi", "gpt-4o", client=client)
        observer = Observer(stream)
        # The pump has not run a single step yet
        stream._pump.cancel()

        with pytest.raises(UpstreamError):
            await asyncio.wait_for(stream.wait_for_id(), timeout=5)
        events = await asyncio.wait_for(_drain(stream), timeout=5)

    assert events == []
    assert stream.done
    assert observer.ended == 1
    assert observer.errors == []


@pytest.mark.asyncio
async def test_cancel_stops_a_hanging_stream():
    async def body():
        yield _sse(CREATED)
        await asyncio.sleep(30)
        yield _sse(COMPLETED)

    def handler(request):
        return httpx.Response(200, content=body())

    async with _client(handler) as client:
        stream = open_response_stream("hi", "gpt-4o", client=client)
        observer = Observer(stream)
        assert await stream.wait_for_id() == "resp_abc"

        outcome = stream.cancel()
        assert outcome.cancelled is True

        events = await asyncio.wait_for(_drain(stream), timeout=5)

    assert [e["type"] for e in events] == ["response.created"]
    assert stream.done
    assert observer.ended == 1
    assert observer.errors == []

    # Cancelling a finished stream is a no-op
    assert stream.cancel().cancelled is False


async def _drain(stream):
    return [e async for e in stream.events()]


@pytest.mark.asyncio
async def test_late_observer_fires_immediately():
    def handler(request):
        return httpx.Response(200, content=_sse(CREATED, COMPLETED))

    async with _client(handler) as client:
        stream = open_response_stream("hi", "gpt-4o", client=client)
        await _drain(stream)

    calls = []
    stream.on_end(lambda: calls.append("end"))
    stream.on_error(lambda err: calls.append("error"))
    assert calls == ["end"]


@pytest.mark.asyncio
async def test_registry_forgets_stream_when_it_finishes():
    def handler(request):
        return httpx.Response(200, content=_sse(CREATED, DELTA, COMPLETED))

    registry = StreamRegistry()
    async with _client(handler) as client:
        stream = open_response_stream("hi", "gpt-4o", client=client)
        stream_id = await stream.wait_for_id()
        registry.register(stream_id, stream)
        await _drain(stream)

    assert not registry.is_active(stream_id)


@pytest.mark.asyncio
async def test_registry_interrupt_cancels_stream():
    async def body():
        yield _sse(CREATED)
        await asyncio.sleep(30)

    def handler(request):
        return httpx.Response(200, content=body())

    registry = StreamRegistry()
    async with _client(handler) as client:
        stream = ResponseStream(build_payload("hi", "gpt-4o"), client=client).open()
        stream_id = await stream.wait_for_id()
        registry.register(stream_id, stream)

        assert registry.interrupt(stream_id) is True
        assert not registry.is_active(stream_id)
        await asyncio.wait_for(_drain(stream), timeout=5)

    assert stream.done


# ── non-streaming ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_response():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "resp_1", "output_text": "Hi!"})

    async with _client(handler) as client:
        result = await create_response("hello", "gpt-4o", tools=[{"type": "web_search"}], client=client)

    assert result["id"] == "resp_1"
    assert "stream" not in seen["body"]
    assert seen["body"]["tools"] == [{"type": "web_search"}]


@pytest.mark.asyncio
async def test_create_response_error():
    def handler(request):
        return httpx.Response(500, text="upstream exploded")

    async with _client(handler) as client:
        with pytest.raises(UpstreamError) as exc:
            await create_response("hello", "gpt-4o", client=client)

    assert exc.value.status_code == 500
    assert "exploded" in exc.value.detail


@pytest.mark.asyncio
async def test_create_response_non_json_body():
    def handler(request):
        return httpx.Response(200, text="<html>gateway page</html>")

    async with _client(handler) as client:
        with pytest.raises(UpstreamError) as exc:
            await create_response("hello", "gpt-4o", client=client)

    assert exc.value.status_code == 502
    assert "non-JSON" in exc.value.detail
