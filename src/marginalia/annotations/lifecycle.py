"""Annotation lifecycle engine.

Annotations start *active* and end in one of three terminal states:
auto-dismissed (the text under them was edited and left alone for the
debounce window), user-dismissed, or applied (their suggestion replaced the
text). Every transition that the user can undo travels through the editor as
a transaction carrying an :class:`AnnotationEffect`, so the editor's history
reverts text and annotation state together.

The engine listens to every editor transaction and, in order:

1. remaps tracked positions through the text changes,
2. applies the transaction's annotation effects,
3. writes the tracked set back to the per-file store and refreshes the
   editor decorations,
4. arms auto-dismiss timers for annotations the edit overlapped (skipped for
   loads and for undo/redo, which cancel the timers they cross instead).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from ..editor.document_model import DocumentState
from ..editor.transactions import USER_EVENT_APPLY, Transaction
from ..errors import AnnotationNotFoundError, NoSuggestionError
from ..ui.domain.annotation_store import ROOT_KEY, AnnotationStore
from ..ui.events import (
    AnnotationApplied,
    AnnotationDismissed,
    AnnotationRestored,
    AnnotationsChanged,
    DocumentLoaded,
    EventBus,
)
from .analysis_cache import AnalysisCache
from .decorations import DecorationSpan, project_decorations
from .models import AnalysisMode, Annotation, AnnotationType
from .timers import DebouncedTimers, Scheduler
from .tracker import PositionTracker

if TYPE_CHECKING:  # pragma: no cover
    from ..editor.editor_widget import EditorWidget

LOGGER = logging.getLogger(__name__)

AUTO_DISMISS_DELAY = 1.2

ARCHIVE_DISMISSED = "dismissed"
ARCHIVE_APPLIED = "applied"


@dataclass(slots=True, frozen=True)
class AnnotationEffect:
    """Invertible change to the live annotation set.

    ``removed`` entries are recorded with the index and position they had
    before the transaction, ``added`` entries with the index and position
    they take after it. ``archive_as`` says how removed annotations are
    archived.
    """

    added: tuple[tuple[int, Annotation], ...] = ()
    removed: tuple[tuple[int, Annotation], ...] = ()
    archive_as: str = ARCHIVE_DISMISSED
    automatic: bool = False

    def invert(self) -> AnnotationEffect:
        return AnnotationEffect(
            added=self.removed,
            removed=self.added,
            archive_as=self.archive_as,
            automatic=self.automatic,
        )

    def ids(self) -> set[str]:
        return {annotation.id for _, annotation in self.added + self.removed}


class AnnotationLifecycle:
    """Owns the tracked annotations of the document open in ``editor``.

    Events Emitted:
        - DocumentLoaded: after :meth:`load_file`
        - AnnotationsChanged: whenever the tracked set or its positions change
        - AnnotationDismissed / AnnotationApplied / AnnotationRestored: per transition
    """

    def __init__(
        self,
        editor: EditorWidget,
        store: AnnotationStore,
        event_bus: EventBus,
        *,
        scheduler: Scheduler | None = None,
        auto_dismiss_delay: float = AUTO_DISMISS_DELAY,
    ) -> None:
        self._editor = editor
        self._store = store
        self._bus = event_bus
        self._tracker = PositionTracker()
        self._timers = DebouncedTimers(auto_dismiss_delay, scheduler)
        self._analysis_cache = AnalysisCache()
        self._file_key = ROOT_KEY
        editor.add_transaction_listener(self._on_transaction)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def file_key(self) -> str:
        return self._file_key

    @property
    def current_mode(self) -> AnalysisMode:
        """Mode of the last analysis run on the loaded file."""
        return self._store.mode(self._file_key)

    @property
    def annotations(self) -> tuple[Annotation, ...]:
        """Active annotations at their current tracked positions."""
        return self._tracker.annotations

    @property
    def tracker(self) -> PositionTracker:
        return self._tracker

    @property
    def analysis_cache(self) -> AnalysisCache:
        return self._analysis_cache

    def get(self, annotation_id: str) -> Annotation | None:
        return self._tracker.get(annotation_id)

    def pending_dismissals(self) -> set[str]:
        return self._timers.pending()

    def decorations(self) -> list[DecorationSpan]:
        return project_decorations(self._tracker.annotations, self._editor.length)

    def detach(self) -> None:
        self._timers.cancel_all()
        self._editor.remove_transaction_listener(self._on_transaction)

    # ------------------------------------------------------------------
    # File switching
    # ------------------------------------------------------------------

    def load_file(self, key: str, text: str, path: str | None = None) -> None:
        """Swap the editor to ``text`` and restore the active annotations stored for ``key``.

        Loads bypass undo history and never arm auto-dismiss timers.
        """

        self._timers.cancel_all()
        self._analysis_cache.clear()
        self._file_key = key
        self._tracker.reset()
        self._editor.load_document(DocumentState(text=text, path=path))
        self._tracker.reset(self._store.active(key), len(text))
        self._refresh_decorations()
        LOGGER.debug("AnnotationLifecycle.load_file: %s, %d annotation(s)", key, len(self._tracker))
        self._bus.publish(DocumentLoaded(file_key=key, length=len(text), annotation_count=len(self._tracker)))
        self._publish_changed("load")

    def unload(self) -> None:
        """Cancel every pending timer; called when the document goes away."""

        self._timers.cancel_all()
        self._analysis_cache.clear()

    # ------------------------------------------------------------------
    # External (untracked) updates
    # ------------------------------------------------------------------

    def set_annotations(
        self,
        annotations: Iterable[Annotation],
        mode: AnalysisMode | str | None = None,
    ) -> list[Annotation]:
        """Adopt ``annotations`` as the active set without touching undo history.

        Ids already tracked keep their live positions.
        """

        previous = set(self._tracker.ids())
        merged = self._tracker.sync(annotations, self._editor.length)
        kept = {annotation.id for annotation in merged}
        for gone in previous - kept:
            self._timers.cancel(gone)
            self._analysis_cache.invalidate(gone)
        self._store.replace_active(self._file_key, merged, mode)
        self._refresh_decorations()
        self._publish_changed("analysis")
        return merged

    def add_annotations(
        self,
        annotations: Iterable[Annotation],
        *,
        replace_types: Iterable[AnnotationType | str] | None = None,
        mode: AnalysisMode | str | None = None,
    ) -> list[Annotation]:
        """Append ``annotations``, first dropping tracked ones of ``replace_types``."""

        doomed = {AnnotationType.coerce(item) for item in replace_types or ()}
        kept = [annotation for annotation in self._tracker.annotations if annotation.type not in doomed]
        return self.set_annotations([*kept, *annotations], mode)

    def resync(self) -> None:
        """Push the tracked set to the store, trusting tracked positions."""

        self._store.replace_active(self._file_key, self._tracker.annotations)
        self._refresh_decorations()

    # ------------------------------------------------------------------
    # User transitions
    # ------------------------------------------------------------------

    def dismiss(self, annotation_id: str) -> Annotation:
        """Archive ``annotation_id`` as dismissed right away, as one undoable step."""

        self._timers.cancel(annotation_id)
        entry = self._require(annotation_id)
        self._editor.dispatch(effects=AnnotationEffect(removed=(entry,)))
        return entry[1]

    def apply_suggestion(self, annotation_id: str) -> Annotation:
        """Replace the annotated text with its suggestion and archive it as applied.

        Text change and removal form one transaction, so a single undo reverts both.
        """

        index, annotation = self._require(annotation_id)
        if annotation.suggestion is None:
            raise NoSuggestionError(annotation_id)
        self._timers.cancel(annotation_id)
        effect = AnnotationEffect(removed=((index, annotation),), archive_as=ARCHIVE_APPLIED)
        self._editor.dispatch(
            [(annotation.start, annotation.end, annotation.suggestion)],
            effect,
            user_event=USER_EVENT_APPLY,
        )
        return annotation

    def clear_all(self) -> list[Annotation]:
        """Dismiss every active annotation and reset the file's analysis mode to ``none``.

        The dismissals form one undo step; undo brings the annotations back but
        leaves the mode at ``none``.
        """

        entries = tuple(enumerate(self._tracker.annotations))
        self._timers.cancel_all()
        self._analysis_cache.clear()
        if entries:
            self._editor.dispatch(effects=AnnotationEffect(removed=entries))
        self._store.replace_active(self._file_key, self._tracker.annotations, AnalysisMode.NONE)
        return [annotation for _, annotation in entries]

    def process_timers(self) -> int:
        """Run auto-dismissals that fell due while no event loop was driving time."""

        return self._timers.run_due()

    def _auto_dismiss(self, annotation_id: str) -> None:
        index = self._tracker.index_of(annotation_id)
        if index == -1:
            return
        annotation = self._tracker.annotations[index]
        LOGGER.debug("AnnotationLifecycle: auto-dismissing %s", annotation_id)
        self._editor.dispatch(effects=AnnotationEffect(removed=((index, annotation),), automatic=True))

    def _require(self, annotation_id: str) -> tuple[int, Annotation]:
        index = self._tracker.index_of(annotation_id)
        if index == -1:
            raise AnnotationNotFoundError(annotation_id)
        return index, self._tracker.annotations[index]

    # ------------------------------------------------------------------
    # Transaction handling
    # ------------------------------------------------------------------

    def _on_transaction(self, transaction: Transaction) -> None:
        if transaction.is_load:
            return
        effects = [effect for effect in transaction.effects if isinstance(effect, AnnotationEffect)]
        if not transaction.doc_changed and not effects:
            return

        before = {annotation.id: annotation for annotation in self._tracker.annotations}
        if transaction.doc_changed:
            self._tracker.map_changes(transaction.changes, transaction.start_text)
        for effect in effects:
            self._apply_effect(effect)

        touched = {item for effect in effects for item in effect.ids()}
        overlapped = self._overlapping(before.values(), transaction) if transaction.doc_changed else set()

        self._store.replace_active(self._file_key, self._tracker.annotations)
        for effect in effects:
            for _, annotation in effect.removed:
                self._store.archive(
                    self._file_key,
                    annotation,
                    applied=effect.archive_as == ARCHIVE_APPLIED,
                    dismissed=effect.archive_as == ARCHIVE_DISMISSED,
                )
        self._refresh_decorations()

        # Timers are armed only once the store and the view agree with the tracker.
        if transaction.is_undo_redo:
            for annotation_id in touched | overlapped:
                self._timers.cancel(annotation_id)
        elif transaction.doc_changed:
            skip = touched if transaction.is_user_event(USER_EVENT_APPLY) else set()
            for annotation_id in overlapped - skip:
                if annotation_id in self._tracker:
                    self._timers.schedule(annotation_id, self._auto_dismiss)
            self._cancel_reexpanded(before)

        self._publish_transitions(effects, transaction)
        self._publish_changed(transaction.user_event)

    def _apply_effect(self, effect: AnnotationEffect) -> None:
        for _, annotation in effect.removed:
            self._tracker.remove(annotation.id)
            self._analysis_cache.invalidate(annotation.id)
        for index, annotation in sorted(effect.added, key=lambda entry: entry[0]):
            self._tracker.insert(index, annotation.reactivated())

    def _overlapping(self, annotations: Iterable[Annotation], transaction: Transaction) -> set[str]:
        ranges = list(transaction.changes.iter_changed_ranges())
        hits: set[str] = set()
        for annotation in annotations:
            span = annotation.range
            if any(span.overlaps(changed.from_a, changed.to_a) for changed in ranges):
                hits.add(annotation.id)
        return hits

    def _cancel_reexpanded(self, before: dict[str, Annotation]) -> None:
        for annotation in self._tracker.annotations:
            previous = before.get(annotation.id)
            if previous is not None and previous.width == 0 and annotation.width > 0:
                self._timers.cancel(annotation.id)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _refresh_decorations(self) -> None:
        self._editor.set_decorations(self.decorations())

    def _publish_changed(self, reason: str) -> None:
        self._bus.publish(
            AnnotationsChanged(file_key=self._file_key, annotation_ids=tuple(self._tracker.ids()), reason=reason)
        )

    def _publish_transitions(self, effects: list[AnnotationEffect], transaction: Transaction) -> None:
        for effect in effects:
            for _, annotation in effect.removed:
                if effect.archive_as == ARCHIVE_APPLIED:
                    self._bus.publish(
                        AnnotationApplied(
                            file_key=self._file_key,
                            annotation_id=annotation.id,
                            replacement=annotation.suggestion or "",
                        )
                    )
                else:
                    self._bus.publish(
                        AnnotationDismissed(
                            file_key=self._file_key,
                            annotation_id=annotation.id,
                            automatic=effect.automatic,
                        )
                    )
            for _, annotation in effect.added:
                self._bus.publish(AnnotationRestored(file_key=self._file_key, annotation_id=annotation.id))
        if effects:
            LOGGER.debug(
                "AnnotationLifecycle: %s transaction with %d effect(s), %d active",
                transaction.user_event,
                len(effects),
                len(self._tracker),
            )


__all__ = ["AnnotationEffect", "AnnotationLifecycle", "AUTO_DISMISS_DELAY"]
