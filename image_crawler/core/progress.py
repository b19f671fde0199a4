"""
Progress events and sinks.

Events are immutable dataclasses; ``to_dict()`` gives the wire shape
``{"type": ..., **fields}`` consumed by the progress log UI, and
:func:`sse_line` frames one event as a server-sent-events ``data:`` line.
"""

import json
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, ClassVar

from image_crawler.utils.log import log


@dataclass(frozen=True)
class ProgressEvent:
    type: ClassVar[str] = "event"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **self._fields()}

    def _fields(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class PlanEvent(ProgressEvent):
    type: ClassVar[str] = "plan"
    page_count: int

    def _fields(self):
        return {"pages": self.page_count}


@dataclass(frozen=True)
class PageEvent(ProgressEvent):
    type: ClassVar[str] = "page"
    index: int
    total: int
    url: str

    def _fields(self):
        return {"index": self.index, "total": self.total, "url": self.url}


@dataclass(frozen=True)
class FallbackEvent(ProgressEvent):
    type: ClassVar[str] = "fallback"
    reason: str
    url: str

    def _fields(self):
        return {"reason": self.reason, "url": self.url}


@dataclass(frozen=True)
class ScrollEvent(ProgressEvent):
    type: ClassVar[str] = "scroll"
    step: int
    total: int

    def _fields(self):
        return {"step": self.step, "total": self.total}


@dataclass(frozen=True)
class PageDoneEvent(ProgressEvent):
    type: ClassVar[str] = "page_done"
    index: int
    total: int
    added: int

    def _fields(self):
        return {"index": self.index, "total": self.total, "added": self.added}


@dataclass(frozen=True)
class DiscoverEvent(ProgressEvent):
    type: ClassVar[str] = "discover"
    count: int

    def _fields(self):
        return {"count": self.count}


@dataclass(frozen=True)
class CompleteEvent(ProgressEvent):
    type: ClassVar[str] = "complete"
    saved_count: int
    output_directory: str

    def _fields(self):
        return {"saved": self.saved_count, "outDir": self.output_directory}


@dataclass(frozen=True)
class ErrorEvent(ProgressEvent):
    type: ClassVar[str] = "error"
    message: str

    def _fields(self):
        return {"error": self.message}


def sse_line(payload: ProgressEvent | dict) -> str:
    """Frame *payload* as one server-sent-events message."""
    if isinstance(payload, ProgressEvent):
        payload = payload.to_dict()
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def result_line(result: dict) -> str:
    """Final ``result`` message closing a successful stream."""
    return sse_line({"type": "result", "result": result})


ProgressSink = Callable[[ProgressEvent], None]


class ProgressEmitter:
    """Push events to an optional sink.

    Sink errors are logged and swallowed; a broken observer never stops
    the job.
    """

    def __init__(self, sink: ProgressSink | None = None) -> None:
        self._sink = sink
        self.emitted: int = 0

    def emit(self, event: ProgressEvent) -> None:
        self.emitted += 1
        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception as exc:
            log.debug("Progress sink raised on %s: %s", event.type, exc)


class QueueSink:
    """Bounded buffer between the crawler and a slow consumer.

    When full, the oldest buffered event is dropped to make room; the
    crawler never blocks on the consumer.  ``dropped`` counts losses.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self.dropped = 0

    def __call__(self, event: ProgressEvent) -> None:
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(event)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                        self.dropped += 1
                    except queue.Empty:
                        pass

    def get(self, timeout: float | None = None) -> ProgressEvent:
        """Next event; raises ``queue.Empty`` after *timeout*."""
        return self._queue.get(timeout=timeout)

    def drain(self) -> list[ProgressEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events
