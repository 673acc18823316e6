"""Event bus and the events exchanged between annotation components.

Domain managers publish events instead of calling each other, so the editor
view, the chat panel and persistence can react to annotation changes without
depending on the lifecycle engine directly.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar
from weakref import WeakMethod

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for every event published on the :class:`EventBus`."""


# Streaming events fire per chunk and are not logged on publish.
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Document & annotation events
# =============================================================================


@dataclass(slots=True)
class DocumentLoaded(Event):
    """Emitted after a file (or the unsaved buffer) replaces the editor content.

    Attributes:
        file_key: Store key of the loaded document (``__root__`` when unsaved).
        length: Length of the loaded text.
        annotation_count: Number of active annotations restored for it.
    """

    file_key: str
    length: int
    annotation_count: int = 0


@dataclass(slots=True)
class AnnotationsChanged(Event):
    """Emitted whenever the visible annotation set changes.

    Attributes:
        file_key: Store key of the document the annotations belong to.
        annotation_ids: Ids of the active annotations, in tracked order.
        reason: What caused the change (``edit``, ``analysis``, ``undo`` ...).
    """

    file_key: str
    annotation_ids: tuple[str, ...]
    reason: str = ""


@dataclass(slots=True)
class AnnotationDismissed(Event):
    """Emitted when an annotation is archived as dismissed.

    Attributes:
        file_key: Store key of the document.
        annotation_id: The dismissed annotation.
        automatic: ``True`` for edit-triggered expiry, ``False`` for user dismiss.
    """

    file_key: str
    annotation_id: str
    automatic: bool = False


@dataclass(slots=True)
class AnnotationApplied(Event):
    """Emitted when an annotation's suggestion replaced its text.

    Attributes:
        file_key: Store key of the document.
        annotation_id: The applied annotation.
        replacement: The suggestion text that was inserted.
    """

    file_key: str
    annotation_id: str
    replacement: str


@dataclass(slots=True)
class AnnotationRestored(Event):
    """Emitted when undo/redo brings an archived annotation back to active."""

    file_key: str
    annotation_id: str


# =============================================================================
# AI request events
# =============================================================================


@dataclass(slots=True)
class AIRequestStarted(Event):
    """Emitted when a streamed AI request begins.

    Attributes:
        request_id: Identifier of the request.
        mode: ``chat`` or the analysis mode being run.
    """

    request_id: str
    mode: str


@dataclass(slots=True)
class AIStreamChunk(Event):
    """Emitted for each streamed fragment of an AI response."""

    request_id: str
    content: str


_QUIET_EVENT_TYPES.add(AIStreamChunk)


@dataclass(slots=True)
class AIRequestCompleted(Event):
    """Emitted when a response finished streaming and was turned into annotations.

    Attributes:
        request_id: Identifier of the request.
        response_text: Full accumulated response.
        annotation_ids: Ids of the annotations created from it.
    """

    request_id: str
    response_text: str
    annotation_ids: tuple[str, ...] = field(default_factory=tuple)


@dataclass(slots=True)
class AIRequestFailed(Event):
    """Emitted when the AI provider or transport raised during a request."""

    request_id: str
    error: str


@dataclass(slots=True)
class AIRequestCanceled(Event):
    """Emitted when a request was aborted before it completed."""

    request_id: str


# =============================================================================
# Persistence events
# =============================================================================


@dataclass(slots=True)
class SessionSaved(Event):
    """Emitted after the session file has been written.

    Attributes:
        path: Location of the session file.
    """

    path: str


class EventBus(Generic[E]):
    """Typed publish/subscribe bus.

    Bound-method handlers are held through :class:`weakref.WeakMethod`, so a
    manager that goes away stops receiving events without unsubscribing.
    Plain functions are held strongly. Handlers run synchronously in
    subscription order; one raising does not stop the others.

    Not thread-safe: publish from the event loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                logger.debug("Unsubscribed %s from %s", _handler_name(handler), event_type.__name__)
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        quiet = event_type in _QUIET_EVENT_TYPES
        if not handlers:
            return
        if not quiet:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        dead: list[int] = []
        for index, handler_ref in enumerate(list(handlers)):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(index)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised while handling %s", _handler_name(handler), event_type.__name__
                )
        for index in reversed(dead):
            handlers.pop(index)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: Any, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref
        return self._ref()

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "DocumentLoaded",
    "AnnotationsChanged",
    "AnnotationDismissed",
    "AnnotationApplied",
    "AnnotationRestored",
    "AIRequestStarted",
    "AIStreamChunk",
    "AIRequestCompleted",
    "AIRequestFailed",
    "AIRequestCanceled",
    "SessionSaved",
]
