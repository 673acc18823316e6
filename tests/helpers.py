"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Sequence

from marginalia.annotations.models import Annotation, AnnotationType


@dataclass
class ManualHandle:
    """Timer handle returned by :class:`ManualScheduler`."""

    due: float
    callback: Callable[[], Any]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """``call_later`` provider driven by :meth:`advance` instead of wall time.

    Example:
        scheduler = ManualScheduler()
        lifecycle = AnnotationLifecycle(editor, store, bus, scheduler=scheduler)
        editor.insert_text("x", 3)
        scheduler.advance(1.2)
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ManualHandle:
        handle = ManualHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[ManualHandle]:
        return [handle for handle in self.handles if not handle.cancelled]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due callbacks in due order."""

        target = self.now + seconds
        while True:
            due = [handle for handle in self.pending if handle.due <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda item: item.due)
            self.now = max(self.now, handle.due)
            handle.cancelled = True
            handle.callback()
        self.now = target


@dataclass
class FakeStreamingClient:
    """Streams canned fragments; optionally raises after ``fail_after`` of them.

    ``gate`` lets a test hold the stream open after ``pause_after`` fragments
    until the event is set.
    """

    fragments: Sequence[str] = ()
    error: Exception | None = None
    fail_after: int | None = None
    pause_after: int | None = None
    gate: asyncio.Event | None = None
    calls: list[list[dict[str, Any]]] = field(default_factory=list)
    closed: bool = False

    async def stream_text(self, messages: Sequence[dict[str, Any]], **_: Any) -> AsyncIterator[str]:
        self.calls.append([dict(message) for message in messages])
        for index, fragment in enumerate(self.fragments):
            if self.fail_after is not None and index == self.fail_after:
                raise self.error or RuntimeError("stream failed")
            if self.pause_after is not None and index == self.pause_after and self.gate is not None:
                await self.gate.wait()
            yield fragment
            await asyncio.sleep(0)
        if self.error is not None and self.fail_after is None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


def make_annotation(
    start: int,
    end: int,
    *,
    annotation_id: str | None = None,
    type: AnnotationType | str = AnnotationType.STYLE,
    matched_text: str = "",
    message: str = "note",
    suggestion: str | None = None,
) -> Annotation:
    return Annotation(
        id=annotation_id or f"ai-{start}-{end}",
        type=type,
        start=start,
        end=end,
        matched_text=matched_text,
        message=message,
        suggestion=suggestion,
    )
