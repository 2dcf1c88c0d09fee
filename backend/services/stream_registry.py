"""
Active stream registry.

Tracks in-flight upstream streams by their provider-assigned id so a later
request can interrupt them. One instance is built by the application
(main.py stores it on app.state) and handed to routes through a dependency;
tests build their own.

Interruption is best-effort: the registry guarantees its own bookkeeping (once
interrupt() returns the id is no longer tracked) but not that the upstream
provider actually stopped. Cancellation outcomes are logged and otherwise
ignored.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CancelOutcome:
    """Result of asking a handle to cancel. The registry logs failures and moves on."""
    cancelled: bool
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls) -> "CancelOutcome":
        return cls(cancelled=True)

    @classmethod
    def failed(cls, error: BaseException) -> "CancelOutcome":
        return cls(cancelled=False, error=error)


class StreamHandle(Protocol):
    """What the registry needs from an in-flight stream."""

    def cancel(self) -> CancelOutcome: ...

    def on_end(self, callback: Callable[[], None]) -> None: ...

    def on_error(self, callback: Callable[[BaseException], None]) -> None: ...


class StreamRegistry:
    def __init__(self):
        self._streams: dict[str, StreamHandle] = {}
        self._lock = threading.Lock()

    def register(self, stream_id: str, handle: StreamHandle) -> None:
        """
        Track a stream under its id. A stream already registered under the same id
        is replaced and then cancelled (last write wins).
        """
        # Each register cancels exactly the handle it displaced
        with self._lock:
            previous = self._streams.get(stream_id)
            self._streams[stream_id] = handle

        if previous is not None and previous is not handle:
            logger.warning(f"[Stream Registry] Replacing existing stream {stream_id}")
            self._cancel(stream_id, previous)

        handle.on_end(lambda: self._discard(stream_id, handle))
        handle.on_error(lambda _err: self._discard(stream_id, handle))
        logger.info(f"[Stream Registry] Registered {stream_id} ({self.count()} active)")

    def interrupt(self, stream_id: str) -> bool:
        """
        Cancel and forget a stream. False if the id is not tracked. True otherwise,
        even if the upstream cancellation itself failed.
        """
        with self._lock:
            handle = self._streams.pop(stream_id, None)

        if handle is None:
            return False

        self._cancel(stream_id, handle)
        logger.info(f"[Stream Registry] Interrupted {stream_id}")
        return True

    def interrupt_all(self) -> int:
        """Cancel every tracked stream. Returns how many were tracked at the time of the call."""
        with self._lock:
            snapshot = list(self._streams.items())
            self._streams.clear()

        for stream_id, handle in snapshot:
            self._cancel(stream_id, handle)

        if snapshot:
            logger.info(f"[Stream Registry] Interrupted {len(snapshot)} active streams")
        return len(snapshot)

    def is_active(self, stream_id: str) -> bool:
        with self._lock:
            return stream_id in self._streams

    def count(self) -> int:
        with self._lock:
            return len(self._streams)

    def active_ids(self) -> list[str]:
        with self._lock:
            return list(self._streams)

    def _discard(self, stream_id: str, handle: StreamHandle) -> None:
        # Only remove the entry if it still belongs to this handle; a replaced
        # stream finishing late must not evict its successor.
        with self._lock:
            if self._streams.get(stream_id) is handle:
                del self._streams[stream_id]
                logger.debug(f"[Stream Registry] {stream_id} finished")

    @staticmethod
    def _cancel(stream_id: str, handle: StreamHandle) -> None:
        try:
            outcome = handle.cancel()
        except Exception as e:
            logger.error(f"[Stream Registry] Error cancelling stream {stream_id}: {e}")
            return

        if outcome is not None and not outcome.cancelled and outcome.error is not None:
            logger.error(f"[Stream Registry] Error cancelling stream {stream_id}: {outcome.error}")
