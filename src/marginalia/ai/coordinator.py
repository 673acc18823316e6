"""Drive streamed AI requests into chat history and annotations.

One request is in flight at a time. Starting a new request or calling
:meth:`AnalysisCoordinator.abort` bumps a generation counter; fragments that
arrive for an older generation are dropped so they never land in the wrong
message.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Iterable, Literal, Protocol, Sequence

from ..annotations.builder import parse_annotations
from ..annotations.models import AnalysisMode, Annotation, AnnotationType
from ..chat.message_model import Attachment, ChatMessage
from ..errors import AnnotationNotFoundError
from ..ui.events import (
    AIRequestCanceled,
    AIRequestCompleted,
    AIRequestFailed,
    AIRequestStarted,
    AIStreamChunk,
    EventBus,
)
from . import prompts

if TYPE_CHECKING:  # pragma: no cover
    from ..annotations.lifecycle import AnnotationLifecycle
    from ..editor.editor_widget import EditorWidget
    from ..ui.domain.chat_store import ChatStore

LOGGER = logging.getLogger(__name__)

EXPLAIN_MODE = "explain"
RequestStatus = Literal["completed", "failed", "canceled"]


class StreamingClient(Protocol):
    def stream_text(self, messages: Sequence[dict[str, Any]], **kwargs: Any) -> AsyncIterator[str]:
        ...


ClientFactory = Callable[[], StreamingClient]


@dataclass(slots=True)
class RequestOutcome:
    """Result of one streamed request."""

    request_id: str
    status: RequestStatus
    response_text: str = ""
    annotations: list[Annotation] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "completed"


@dataclass(slots=True)
class _ActiveRequest:
    request_id: str
    generation: int
    file_key: str
    mode: str


def _new_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:12]}"


class AnalysisCoordinator:
    """Streams chat and analysis requests and turns responses into annotations.

    Events Emitted:
        - AIRequestStarted / AIStreamChunk while a request runs
        - AIRequestCompleted: with the ids of annotations created from it
        - AIRequestFailed: the provider raised; partial text is kept
        - AIRequestCanceled: the request was aborted or superseded
    """

    def __init__(
        self,
        editor: EditorWidget,
        lifecycle: AnnotationLifecycle,
        chat_store: ChatStore,
        event_bus: EventBus,
        client_factory: ClientFactory,
        *,
        history_window: int = prompts.HISTORY_WINDOW,
    ) -> None:
        self._editor = editor
        self._lifecycle = lifecycle
        self._chat = chat_store
        self._bus = event_bus
        self._client_factory = client_factory
        self._history_window = history_window
        self._generation = 0
        self._active: _ActiveRequest | None = None
        self._error: str | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self._active is not None

    @property
    def active_request_id(self) -> str | None:
        return self._active.request_id if self._active else None

    @property
    def error(self) -> str | None:
        """Message of the last failed request, until dismissed or a new request starts."""
        return self._error

    def dismiss_error(self) -> None:
        self._error = None

    def abort(self) -> bool:
        """Abandon the in-flight request; its late fragments are discarded."""

        active = self._active
        self._generation += 1
        if active is None:
            return False
        self._active = None
        LOGGER.debug("AnalysisCoordinator.abort: %s (%s)", active.request_id, active.mode)
        self._bus.publish(AIRequestCanceled(request_id=active.request_id))
        return True

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def run_analysis(self, mode: AnalysisMode | str) -> RequestOutcome:
        """Run an AI analysis and replace tracked annotations of the same type."""

        analysis_mode = AnalysisMode.coerce(mode)
        if analysis_mode is AnalysisMode.NONE:
            raise ValueError("An analysis mode is required")
        mode_name = analysis_mode.value
        return await self._run(
            mode_name,
            prompts.analysis_request(mode_name),
            attachments=(),
            replace_types=(AnnotationType(mode_name),),
            analysis_mode=analysis_mode,
        )

    async def send_message(self, text: str, attachments: Iterable[Attachment] = ()) -> RequestOutcome:
        """Send a chat message under the file's current analysis mode.

        Any attachment marks the extracted annotations as ``custom``.
        """

        items = tuple(attachments)
        current = self._chat_mode()
        return await self._run(
            current,
            text,
            attachments=items,
            override_type=AnnotationType.CUSTOM if items else None,
        )

    async def explain_annotation(self, annotation_id: str) -> str:
        """Return an explanation of one annotation, asking the model on a cache miss.

        The answer is cached per annotation id until the annotation changes or
        the file is switched. A failed or aborted request returns whatever
        text arrived and caches nothing.
        """

        cache = self._lifecycle.analysis_cache
        cached = cache.get(annotation_id)
        if cached is not None:
            return cached
        annotation = self._lifecycle.get(annotation_id)
        if annotation is None:
            raise AnnotationNotFoundError(annotation_id)

        messages = prompts.build_messages(
            mode=prompts.CHAT_MODE,
            document_text=self._editor.text,
            document_path=self._document_path(),
            history=(),
            user_message=prompts.explain_request(annotation),
        )
        request = self._begin(EXPLAIN_MODE)
        text, error = await self._stream(request, messages)
        if error is not None or request.generation != self._generation:
            return text
        self._active = None
        if self._lifecycle.get(annotation_id) is not None:
            cache.set(annotation_id, text)
        self._bus.publish(
            AIRequestCompleted(request_id=request.request_id, response_text=text, annotation_ids=(annotation_id,))
        )
        return text

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        mode: str,
        text: str,
        *,
        attachments: Sequence[Attachment],
        override_type: AnnotationType | None = None,
        replace_types: Sequence[AnnotationType] | None = None,
        analysis_mode: AnalysisMode | None = None,
    ) -> RequestOutcome:
        request = self._begin(mode)
        key = request.file_key
        history = self._chat.history(key)
        self._chat.add_user_message(key, text, [attachment.meta() for attachment in attachments])
        assistant = self._chat.start_assistant_message(key)
        messages = prompts.build_messages(
            mode=mode,
            document_text=self._editor.text,
            document_path=self._document_path(),
            history=history,
            user_message=text,
            attachments=attachments,
            history_window=self._history_window,
        )

        response, error = await self._stream(request, messages, assistant)
        self._chat.touch(key)
        if error is not None:
            return RequestOutcome(request.request_id, "failed", response, error=str(error))
        if request.generation != self._generation:
            return RequestOutcome(request.request_id, "canceled", response)
        self._active = None

        created: list[Annotation] = []
        if key != self._lifecycle.file_key:
            LOGGER.debug("AnalysisCoordinator: file changed during %s; skipping extraction", request.request_id)
        else:
            created = parse_annotations(response, self._editor.text, override_type)
            if created:
                types = replace_types or {annotation.type for annotation in created}
                self._lifecycle.add_annotations(created, replace_types=types, mode=analysis_mode)
                self._chat.link_annotations(key, assistant.id, [annotation.id for annotation in created])
            elif analysis_mode is not None:
                self._lifecycle.add_annotations((), mode=analysis_mode)
        LOGGER.debug(
            "AnalysisCoordinator: %s completed with %d annotation(s)", request.request_id, len(created)
        )
        self._bus.publish(
            AIRequestCompleted(
                request_id=request.request_id,
                response_text=response,
                annotation_ids=tuple(annotation.id for annotation in created),
            )
        )
        return RequestOutcome(request.request_id, "completed", response, created)

    def _begin(self, mode: str) -> _ActiveRequest:
        if self._active is not None:
            self.abort()
        self._generation += 1
        self._error = None
        request = _ActiveRequest(
            request_id=_new_request_id(),
            generation=self._generation,
            file_key=self._lifecycle.file_key,
            mode=mode,
        )
        self._active = request
        LOGGER.debug("AnalysisCoordinator: starting %s (%s)", request.request_id, mode)
        self._bus.publish(AIRequestStarted(request_id=request.request_id, mode=mode))
        return request

    async def _stream(
        self,
        request: _ActiveRequest,
        messages: Sequence[dict[str, Any]],
        assistant: ChatMessage | None = None,
    ) -> tuple[str, Exception | None]:
        parts: list[str] = []
        try:
            client = self._client_factory()
            async with aclosing(client.stream_text(messages)) as stream:
                async for fragment in stream:
                    if request.generation != self._generation:
                        LOGGER.debug("AnalysisCoordinator: dropping late fragment for %s", request.request_id)
                        break
                    parts.append(fragment)
                    if assistant is not None:
                        self._chat.append_to_message(request.file_key, assistant.id, fragment)
                    self._bus.publish(AIStreamChunk(request_id=request.request_id, content=fragment))
        except Exception as exc:
            if request.generation != self._generation:
                LOGGER.debug("AnalysisCoordinator: ignoring error from abandoned %s: %s", request.request_id, exc)
                return "".join(parts), None
            self._fail(request, exc)
            return "".join(parts), exc
        return "".join(parts), None

    def _fail(self, request: _ActiveRequest, exc: Exception) -> None:
        self._active = None
        self._error = str(exc) or exc.__class__.__name__
        LOGGER.warning("AI request %s failed: %s", request.request_id, self._error)
        self._bus.publish(AIRequestFailed(request_id=request.request_id, error=self._error))

    def _chat_mode(self) -> str:
        mode = self._lifecycle.current_mode
        return prompts.CHAT_MODE if mode is AnalysisMode.NONE else mode.value

    def _document_path(self) -> str | None:
        return self._editor.to_document().path


__all__ = ["AnalysisCoordinator", "ClientFactory", "RequestOutcome", "StreamingClient"]
