import json
import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Callable, Optional

import httpx

from services.stream_registry import CancelOutcome
from settings import settings

logger = logging.getLogger(__name__)

_DONE = object()


class UpstreamError(Exception):
    """The upstream API rejected a request or failed mid-stream."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"Upstream API Error ({status_code}): {detail}")
        self.status_code = status_code
        self.detail = detail


def _headers() -> dict:
    api_key = settings.get_api_key("openai")
    # Robust Authorization header
    auth_val = api_key if api_key.lower().startswith("bearer ") else f"Bearer {api_key}"
    return {
        "Authorization": auth_val,
        "Content-Type": "application/json",
    }


def build_payload(
    input: Any,
    model: str,
    previous_response_id: Optional[str] = None,
    store: bool = True,
    tools: Optional[list] = None,
    stream: bool = False,
) -> dict:
    payload = {"model": model, "input": input, "store": store}
    if previous_response_id:
        payload["previous_response_id"] = previous_response_id
    if tools:
        payload["tools"] = tools
    if stream:
        payload["stream"] = True
    return payload


def parse_sse_line(line: str) -> Optional[dict]:
    """Decode one `data: {...}` SSE line. Anything else (event names, comments, [DONE]) is None."""
    if not line or not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if not data or data == "[DONE]":
        return None
    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        logger.warning(f"[Responses] Skipping undecodable event: {data[:100]}")
        return None
    return event if isinstance(event, dict) else None


def _event_error_message(event: dict) -> str:
    if event.get("type") == "error":
        return event.get("message") or "Unknown upstream error"
    error = (event.get("response") or {}).get("error") or {}
    return error.get("message") or "Upstream response failed"


async def create_response(
    input: Any,
    model: str,
    previous_response_id: Optional[str] = None,
    store: bool = True,
    tools: Optional[list] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """Non-streaming call to POST /responses. Raises UpstreamError on a non-200 reply."""
    url = f"{settings.get_base_url()}/responses"
    payload = build_payload(input, model, previous_response_id, store, tools)

    async def _post(c: httpx.AsyncClient) -> dict:
        resp = await c.post(url, headers=_headers(), json=payload, timeout=settings.get_timeout())
        if resp.status_code != 200:
            raise UpstreamError(resp.status_code, resp.text[:500])
        try:
            return resp.json()
        except ValueError:
            raise UpstreamError(502, f"Upstream returned a non-JSON body: {resp.text[:200]}")

    if client is not None:
        return await _post(client)
    async with httpx.AsyncClient() as c:
        return await _post(c)


class ResponseStream:
    """
    One streaming call to POST /responses.

    A background pump task reads the upstream SSE body into a queue; events()
    drains it. The provider assigns the response id in its first
    `response.created` event, available through wait_for_id(). cancel() may be
    called from any thread. Exactly one terminal notification is delivered:
    on_end for a natural finish or a cancellation, on_error for a failure.
    """

    def __init__(self, payload: dict, client: Optional[httpx.AsyncClient] = None):
        self.id: Optional[str] = None
        self._payload = {**payload, "stream": True}
        self._client = client
        self._queue: asyncio.Queue = asyncio.Queue()
        self._id_ready = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pump: Optional[asyncio.Task] = None
        self._error: Optional[BaseException] = None
        self._settled = False
        self._end_callbacks: list[Callable[[], None]] = []
        self._error_callbacks: list[Callable[[BaseException], None]] = []
        self._callback_lock = threading.Lock()

    @property
    def model(self) -> Optional[str]:
        return self._payload.get("model")

    @property
    def done(self) -> bool:
        return self._settled

    def open(self) -> "ResponseStream":
        if self._pump is None:
            self._loop = asyncio.get_running_loop()
            self._pump = self._loop.create_task(self._run())
            # Runs even when the task is cancelled before its first step
            self._pump.add_done_callback(self._finish)
        return self

    async def wait_for_id(self) -> str:
        """Wait until the provider has assigned an id. Raises if the stream failed first."""
        await self._id_ready.wait()
        if self.id is None:
            if self._error is not None:
                raise self._error
            raise UpstreamError(502, "Stream ended before the upstream assigned a response id")
        return self.id

    async def events(self) -> AsyncIterator[dict]:
        """Relay upstream events in order. Raises the stream's error once drained."""
        while True:
            item = await self._queue.get()
            if item is _DONE:
                break
            yield item
        if self._error is not None:
            raise self._error

    def cancel(self) -> CancelOutcome:
        if self._pump is None or self._pump.done():
            return CancelOutcome(cancelled=False)
        try:
            self._loop.call_soon_threadsafe(self._pump.cancel)
        except RuntimeError as e:
            # Event loop already closed
            return CancelOutcome.failed(e)
        return CancelOutcome.ok()

    def on_end(self, callback: Callable[[], None]) -> None:
        with self._callback_lock:
            if not self._settled:
                self._end_callbacks.append(callback)
                return
            fire = self._error is None
        if fire:
            callback()

    def on_error(self, callback: Callable[[BaseException], None]) -> None:
        with self._callback_lock:
            if not self._settled:
                self._error_callbacks.append(callback)
                return
            error = self._error
        if error is not None:
            callback(error)

    async def _run(self):
        try:
            if self._client is not None:
                await self._consume(self._client)
            else:
                async with httpx.AsyncClient() as client:
                    await self._consume(client)
        except asyncio.CancelledError:
            logger.info(f"[Responses] Stream {self.id or '<pending>'} cancelled")
            raise
        except Exception as e:
            logger.error(f"[Responses] Stream {self.id or '<pending>'} failed: {e}")
            self._error = e

    def _finish(self, task: asyncio.Task):
        self._id_ready.set()
        self._queue.put_nowait(_DONE)
        self._settle(self._error)

    async def _consume(self, client: httpx.AsyncClient):
        url = f"{settings.get_base_url()}/responses"
        async with client.stream(
            "POST", url, headers=_headers(), json=self._payload, timeout=settings.get_timeout()
        ) as response:
            if response.status_code != 200:
                body = await response.aread()
                raise UpstreamError(response.status_code, body.decode(errors="replace")[:500])

            async for line in response.aiter_lines():
                event = parse_sse_line(line)
                if event is None:
                    continue

                event_type = event.get("type")
                if event_type in ("response.failed", "error"):
                    raise UpstreamError(502, _event_error_message(event))

                if self.id is None and event_type == "response.created":
                    response_id = (event.get("response") or {}).get("id")
                    if not response_id:
                        raise UpstreamError(502, "response.created event carried no response id")
                    self.id = response_id
                    self._id_ready.set()

                self._queue.put_nowait(event)

    def _settle(self, error: Optional[BaseException]):
        with self._callback_lock:
            if self._settled:
                return
            self._settled = True
            end_callbacks, self._end_callbacks = self._end_callbacks, []
            error_callbacks, self._error_callbacks = self._error_callbacks, []

        callbacks = error_callbacks if error is not None else end_callbacks
        for callback in callbacks:
            try:
                if error is not None:
                    callback(error)
                else:
                    callback()
            except Exception as e:
                logger.error(f"[Responses] Stream observer failed: {e}")


def open_response_stream(
    input: Any,
    model: str,
    previous_response_id: Optional[str] = None,
    store: bool = True,
    tools: Optional[list] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ResponseStream:
    """Start a streaming call and return its handle. Must be called inside a running event loop."""
    payload = build_payload(input, model, previous_response_id, store, tools, stream=True)
    return ResponseStream(payload, client=client).open()
