"""Application facade wiring the editor, stores, lifecycle and AI coordinator.

The workbench is what the desktop shell and the CLI talk to. It owns one
editor, the per-file annotation and chat stores, the lifecycle engine that
keeps annotations in step with edits, the debounced session store, and the
coordinator that turns AI responses into annotations.
"""

from __future__ import annotations

import inspect
import logging
from pathlib import Path
from typing import Iterable

from ...ai.client import AIClient, ClientSettings
from ...ai.coordinator import AnalysisCoordinator, ClientFactory, RequestOutcome, StreamingClient
from ...annotations.builder import parse_annotations
from ...annotations.decorations import DecorationSpan
from ...annotations.lifecycle import AnnotationLifecycle
from ...annotations.models import AnalysisMode, Annotation, AnnotationType
from ...annotations.passive_voice import detect_passive_voice
from ...annotations.timers import Scheduler
from ...chat.message_model import Attachment, ChatMessage
from ...editor.editor_widget import EditorWidget
from ...services.session_cache import SessionCacheStore, SessionSnapshot
from ...services.settings import Settings
from ..domain.annotation_store import ROOT_KEY, AnnotationStore, file_key
from ..domain.chat_store import ChatStore
from ..domain.session_store import SessionStore
from ..events import EventBus

LOGGER = logging.getLogger(__name__)


class Workbench:
    """Facade over one editing session.

    Example:
        workbench = Workbench(settings=settings, session_cache=SessionCacheStore())
        workbench.restore_session()
        workbench.open_file(Path("chapter-01.md"))
        workbench.run_passive_voice()
        await workbench.run_analysis("consistency")
        workbench.apply_suggestion(workbench.annotations[0].id)
        workbench.undo()
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        editor: EditorWidget | None = None,
        event_bus: EventBus | None = None,
        session_cache: SessionCacheStore | None = None,
        client_factory: ClientFactory | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._bus = event_bus or EventBus()
        self._editor = editor or EditorWidget()
        self._annotation_store = AnnotationStore()
        self._chat_store = ChatStore()
        self._lifecycle = AnnotationLifecycle(
            self._editor,
            self._annotation_store,
            self._bus,
            scheduler=scheduler,
            auto_dismiss_delay=self._settings.auto_dismiss_delay,
        )
        self._session = SessionStore(
            session_cache,
            self._annotation_store,
            self._chat_store,
            self._bus,
            scheduler=scheduler,
            save_delay=self._settings.session_save_delay,
        )
        self._client: StreamingClient | None = None
        self._coordinator = AnalysisCoordinator(
            self._editor,
            self._lifecycle,
            self._chat_store,
            self._bus,
            client_factory or self._default_client,
            history_window=self._settings.history_window,
        )

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def editor(self) -> EditorWidget:
        return self._editor

    @property
    def annotation_store(self) -> AnnotationStore:
        return self._annotation_store

    @property
    def chat_store(self) -> ChatStore:
        return self._chat_store

    @property
    def lifecycle(self) -> AnnotationLifecycle:
        return self._lifecycle

    @property
    def session(self) -> SessionStore:
        return self._session

    @property
    def coordinator(self) -> AnalysisCoordinator:
        return self._coordinator

    # ------------------------------------------------------------------
    # View state
    # ------------------------------------------------------------------

    @property
    def file_key(self) -> str:
        return self._lifecycle.file_key

    @property
    def annotations(self) -> tuple[Annotation, ...]:
        return self._lifecycle.annotations

    @property
    def archived(self) -> list[Annotation]:
        return self._annotation_store.archived(self.file_key)

    @property
    def analysis_mode(self) -> AnalysisMode:
        return self._lifecycle.current_mode

    @property
    def chat_history(self) -> list[ChatMessage]:
        return self._chat_store.history(self.file_key)

    @property
    def ai_busy(self) -> bool:
        return self._coordinator.is_busy

    @property
    def ai_error(self) -> str | None:
        return self._coordinator.error

    def dismiss_error(self) -> None:
        self._coordinator.dismiss_error()

    def decorations(self) -> list[DecorationSpan]:
        return self._lifecycle.decorations()

    # ------------------------------------------------------------------
    # Files & session
    # ------------------------------------------------------------------

    def restore_session(self) -> SessionSnapshot:
        """Hydrate the stores from the session file and reopen the last file."""

        snapshot = self._session.restore()
        active = snapshot.active_file_path
        if active and Path(active).is_file():
            self.open_file(Path(active))
        elif active:
            LOGGER.debug("Workbench.restore_session: last file %s is gone", active)
        return snapshot

    def open_file(self, path: Path) -> str:
        """Load ``path`` into the editor together with its stored annotations."""

        text = path.read_text(encoding="utf-8")
        self.load_text(text, key=file_key(path), path=str(path))
        self._session.set_active_file_path(path)
        return self.file_key

    def load_text(self, text: str, *, key: str = ROOT_KEY, path: str | None = None) -> None:
        """Load ``text`` without touching disk; navigating away aborts any AI request."""

        self.process_timers()
        self._coordinator.abort()
        self._lifecycle.unload()
        self._lifecycle.load_file(key, text, path)

    def save_file(self, path: Path | None = None) -> Path:
        self.process_timers()
        document = self._editor.to_document()
        target = path or (Path(document.path) if document.path else None)
        if target is None:
            raise ValueError("No path to save the document to")
        target.write_text(self._editor.text, encoding="utf-8")
        new_key = file_key(target)
        if new_key != self.file_key:
            self._annotation_store.rename_file(self.file_key, new_key)
            self.load_text(self._editor.text, key=new_key, path=str(target))
            self._session.set_active_file_path(target)
        document = self._editor.to_document()
        document.dirty = False
        LOGGER.debug("Workbench.save_file: wrote %s", target)
        return target

    def flush_session(self) -> Path | None:
        self.process_timers()
        return self._session.flush()

    # ------------------------------------------------------------------
    # Annotation producers
    # ------------------------------------------------------------------

    def run_passive_voice(self) -> list[Annotation]:
        """Replace passive-voice annotations with a fresh local scan."""

        self.process_timers()
        found = detect_passive_voice(self._editor.text)
        self._lifecycle.add_annotations(
            found, replace_types=(AnnotationType.PASSIVE_VOICE,), mode=AnalysisMode.PASSIVE_VOICE
        )
        return found

    def annotate_response(self, response: str, override_type: AnnotationType | str | None = None) -> list[Annotation]:
        """Turn an already complete AI response into annotations on the current document."""

        self.process_timers()
        created = parse_annotations(
            response,
            self._editor.text,
            AnnotationType.coerce(override_type) if override_type is not None else None,
        )
        if created:
            self._lifecycle.add_annotations(created, replace_types={annotation.type for annotation in created})
        return created

    async def run_analysis(self, mode: AnalysisMode | str) -> RequestOutcome:
        self.process_timers()
        return await self._coordinator.run_analysis(mode)

    async def send_message(self, text: str, attachments: Iterable[Attachment] = ()) -> RequestOutcome:
        self.process_timers()
        return await self._coordinator.send_message(text, attachments)

    async def explain_annotation(self, annotation_id: str) -> str:
        return await self._coordinator.explain_annotation(annotation_id)

    def abort_request(self) -> bool:
        return self._coordinator.abort()

    def new_chat_session(self) -> None:
        self._chat_store.new_session(self.file_key)

    # ------------------------------------------------------------------
    # User transitions
    # ------------------------------------------------------------------

    def apply_suggestion(self, annotation_id: str) -> Annotation:
        self.process_timers()
        return self._lifecycle.apply_suggestion(annotation_id)

    def dismiss(self, annotation_id: str) -> Annotation:
        self.process_timers()
        return self._lifecycle.dismiss(annotation_id)

    def clear_annotations(self) -> list[Annotation]:
        self.process_timers()
        return self._lifecycle.clear_all()

    def clear_archive(self) -> int:
        return self._annotation_store.clear_archive(self.file_key)

    def undo(self) -> bool:
        self.process_timers()
        return self._editor.undo()

    def redo(self) -> bool:
        self.process_timers()
        return self._editor.redo()

    def process_timers(self) -> int:
        """Run auto-dismiss and session-save timers that fell due while no event loop was running."""

        return self._lifecycle.process_timers() + self._session.process_timers()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Abort AI work, write any pending session changes and close the client."""

        self._coordinator.abort()
        self._lifecycle.unload()
        self._session.flush()
        client, self._client = self._client, None
        close = getattr(client, "aclose", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    def _default_client(self) -> StreamingClient:
        if self._client is None:
            self._client = AIClient(ClientSettings.from_settings(self._settings))
        return self._client


__all__ = ["Workbench"]
