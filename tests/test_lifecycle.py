"""Tests for :mod:`marginalia.annotations.lifecycle`."""

from __future__ import annotations

import pytest

from marginalia.annotations.lifecycle import AnnotationLifecycle
from marginalia.annotations.models import AnalysisMode
from marginalia.editor.editor_widget import EditorWidget
from marginalia.errors import AnnotationNotFoundError, NoSuggestionError
from marginalia.ui.domain.annotation_store import AnnotationStore
from marginalia.ui.events import (
    AnnotationApplied,
    AnnotationDismissed,
    AnnotationRestored,
    DocumentLoaded,
    Event,
)
from tests.helpers import ManualScheduler, make_annotation

KEY = "/novel/chapter-01.md"
TEXT = "The letter was written by Maria. She sealed it at dawn. Nobody saw her leave."
#       0123456789...
LETTER = (4, 10)  # "letter"
WRITTEN = (11, 31)  # "was written by Maria"
SEALED = (37, 43)  # "sealed"


@pytest.fixture
def loaded(lifecycle: AnnotationLifecycle) -> AnnotationLifecycle:
    lifecycle.load_file(KEY, TEXT, KEY)
    lifecycle.set_annotations(
        [
            make_annotation(*LETTER, annotation_id="letter", matched_text="letter"),
            make_annotation(
                *WRITTEN,
                annotation_id="written",
                matched_text="was written by Maria",
                suggestion="Maria wrote",
            ),
            make_annotation(*SEALED, annotation_id="sealed", matched_text="sealed"),
        ],
        AnalysisMode.STYLE,
    )
    return lifecycle


def _span(lifecycle: AnnotationLifecycle, annotation_id: str) -> tuple[int, int]:
    annotation = lifecycle.get(annotation_id)
    assert annotation is not None, annotation_id
    return annotation.start, annotation.end


def test_fixture_ranges_match_text() -> None:
    assert TEXT[slice(*LETTER)] == "letter"
    assert TEXT[slice(*WRITTEN)] == "was written by Maria"
    assert TEXT[slice(*SEALED)] == "sealed"


class TestLoading:
    def test_load_restores_store_annotations_without_history(
        self, lifecycle: AnnotationLifecycle, editor: EditorWidget, store: AnnotationStore, published: list[Event]
    ) -> None:
        store.set_file_state(KEY, [make_annotation(*LETTER, annotation_id="letter")], AnalysisMode.STYLE)
        lifecycle.load_file(KEY, TEXT, KEY)

        assert [annotation.id for annotation in lifecycle.annotations] == ["letter"]
        assert not editor.can_undo
        assert lifecycle.pending_dismissals() == set()
        assert isinstance(published[0], DocumentLoaded)
        assert published[0].annotation_count == 1

    def test_switching_files_cancels_timers(
        self, loaded: AnnotationLifecycle, editor: EditorWidget, scheduler: ManualScheduler
    ) -> None:
        editor.insert_text("X", 6)
        assert loaded.pending_dismissals() == {"letter"}

        loaded.load_file("/novel/chapter-02.md", "Another chapter entirely.")
        scheduler.advance(5)

        assert loaded.pending_dismissals() == set()
        assert loaded.annotations == ()
        assert loaded.file_key == "/novel/chapter-02.md"

    def test_external_updates_are_not_undoable(self, loaded: AnnotationLifecycle, editor: EditorWidget) -> None:
        assert not editor.can_undo
        assert loaded.current_mode is AnalysisMode.STYLE


class TestEditTracking:
    def test_store_follows_tracked_positions(
        self, loaded: AnnotationLifecycle, editor: EditorWidget, store: AnnotationStore
    ) -> None:
        editor.insert_text("Oh. ", 0)

        assert _span(loaded, "letter") == (8, 14)
        stored = {annotation.id: (annotation.start, annotation.end) for annotation in store.active(KEY)}
        assert stored["letter"] == (8, 14)
        assert loaded.pending_dismissals() == set()

    def test_decorations_are_refreshed(self, loaded: AnnotationLifecycle, editor: EditorWidget) -> None:
        editor.insert_text("Oh. ", 0)
        assert [(span.start, span.end) for span in editor.decorations][0] == (8, 14)


class TestAutoDismiss:
    def test_overlapping_edit_dismisses_after_delay(
        self,
        loaded: AnnotationLifecycle,
        editor: EditorWidget,
        scheduler: ManualScheduler,
        store: AnnotationStore,
        published: list[Event],
    ) -> None:
        editor.insert_text("t", 7)
        assert loaded.get("letter") is not None

        scheduler.advance(1.2)

        assert loaded.get("letter") is None
        archived = store.find(KEY, "letter")
        assert archived is not None and archived.dismissed
        dismissals = [event for event in published if isinstance(event, AnnotationDismissed)]
        assert [(event.annotation_id, event.automatic) for event in dismissals] == [("letter", True)]

    def test_second_edit_restarts_the_countdown(
        self, loaded: AnnotationLifecycle, editor: EditorWidget, scheduler: ManualScheduler
    ) -> None:
        editor.insert_text("t", 7)
        scheduler.advance(0.6)
        editor.insert_text("t", 8)
        scheduler.advance(0.6)
        assert loaded.get("letter") is not None

        scheduler.advance(0.59)
        assert loaded.get("letter") is not None

        scheduler.advance(0.02)
        assert loaded.get("letter") is None

    def test_edit_next_to_annotation_does_not_arm_timer(
        self, loaded: AnnotationLifecycle, editor: EditorWidget
    ) -> None:
        editor.insert_text("s", LETTER[1])
        editor.insert_text("A ", LETTER[0])
        assert loaded.pending_dismissals() == set()

    def test_undo_restores_auto_dismissed_annotation(
        self, loaded: AnnotationLifecycle, editor: EditorWidget, scheduler: ManualScheduler, published: list[Event]
    ) -> None:
        editor.insert_text("t", 7)
        scheduler.advance(1.2)
        expected = (4, 11)

        assert editor.undo()

        assert _span(loaded, "letter") == expected
        assert any(isinstance(event, AnnotationRestored) for event in published)

    def test_undo_of_edit_cancels_pending_timer(
        self, loaded: AnnotationLifecycle, editor: EditorWidget, scheduler: ManualScheduler
    ) -> None:
        editor.insert_text("t", 7)
        editor.undo()
        assert loaded.pending_dismissals() == set()

        scheduler.advance(2)
        assert _span(loaded, "letter") == LETTER

    def test_cut_and_paste_back_keeps_annotation(
        self, loaded: AnnotationLifecycle, editor: EditorWidget, scheduler: ManualScheduler
    ) -> None:
        editor.delete_range(*LETTER)
        assert _span(loaded, "letter") == (4, 4)
        assert "letter" in loaded.pending_dismissals()
        assert all(span.annotation_id != "letter" for span in editor.decorations)

        editor.insert_text("letter", 4)
        scheduler.advance(2)

        assert _span(loaded, "letter") == LETTER

    def test_load_never_arms_timers(self, loaded: AnnotationLifecycle, scheduler: ManualScheduler) -> None:
        loaded.load_file(KEY, TEXT.replace("letter", "parcel"), KEY)
        assert loaded.pending_dismissals() == set()
        scheduler.advance(2)
        assert len(loaded.annotations) == 3


class TestDismiss:
    def test_dismiss_and_undo_redo(
        self,
        loaded: AnnotationLifecycle,
        editor: EditorWidget,
        store: AnnotationStore,
        published: list[Event],
    ) -> None:
        loaded.dismiss("sealed")
        assert loaded.get("sealed") is None
        assert store.find(KEY, "sealed").dismissed

        editor.undo()
        assert _span(loaded, "sealed") == SEALED
        assert store.find(KEY, "sealed").is_active
        assert [annotation.id for annotation in loaded.annotations] == ["letter", "written", "sealed"]

        editor.redo()
        assert loaded.get("sealed") is None
        assert store.find(KEY, "sealed").dismissed

        kinds = [type(event) for event in published if isinstance(event, (AnnotationDismissed, AnnotationRestored))]
        assert kinds == [AnnotationDismissed, AnnotationRestored, AnnotationDismissed]

    def test_dismiss_cancels_pending_timer(
        self, loaded: AnnotationLifecycle, editor: EditorWidget, scheduler: ManualScheduler, published: list[Event]
    ) -> None:
        editor.insert_text("t", 7)
        loaded.dismiss("letter")
        assert loaded.pending_dismissals() == set()
        scheduler.advance(2)
        dismissals = [event for event in published if isinstance(event, AnnotationDismissed)]
        assert [(event.annotation_id, event.automatic) for event in dismissals] == [("letter", False)]

    def test_dismiss_drops_cached_analysis(self, loaded: AnnotationLifecycle) -> None:
        loaded.analysis_cache.set("letter", "Because of reasons.")
        loaded.dismiss("letter")
        assert loaded.analysis_cache.get("letter") is None

    def test_unknown_id_raises(self, loaded: AnnotationLifecycle) -> None:
        with pytest.raises(AnnotationNotFoundError):
            loaded.dismiss("nope")

    def test_clear_all_then_undo(self, loaded: AnnotationLifecycle, editor: EditorWidget, store: AnnotationStore) -> None:
        cleared = loaded.clear_all()
        assert [annotation.id for annotation in cleared] == ["letter", "written", "sealed"]
        assert loaded.annotations == ()
        assert len(store.archived(KEY)) == 3
        assert loaded.current_mode is AnalysisMode.NONE

        editor.undo()
        assert [annotation.id for annotation in loaded.annotations] == ["letter", "written", "sealed"]
        assert store.archived(KEY) == []
        assert loaded.current_mode is AnalysisMode.NONE


class TestApply:
    def test_apply_replaces_text_and_archives(
        self,
        loaded: AnnotationLifecycle,
        editor: EditorWidget,
        store: AnnotationStore,
        published: list[Event],
    ) -> None:
        loaded.apply_suggestion("written")

        assert editor.text.startswith("The letter Maria wrote. She sealed")
        assert loaded.get("written") is None
        archived = store.find(KEY, "written")
        assert archived is not None and archived.applied
        delta = len("Maria wrote") - (WRITTEN[1] - WRITTEN[0])
        assert _span(loaded, "sealed") == (SEALED[0] + delta, SEALED[1] + delta)
        applied = [event for event in published if isinstance(event, AnnotationApplied)]
        assert applied[0].replacement == "Maria wrote"

    def test_single_undo_restores_text_and_annotation(
        self, loaded: AnnotationLifecycle, editor: EditorWidget, store: AnnotationStore
    ) -> None:
        loaded.apply_suggestion("written")
        assert editor.undo()

        assert editor.text == TEXT
        assert _span(loaded, "written") == WRITTEN
        assert _span(loaded, "sealed") == SEALED
        assert store.find(KEY, "written").is_active
        assert not editor.can_undo

    def test_apply_does_not_arm_its_own_timer(
        self, loaded: AnnotationLifecycle, editor: EditorWidget, scheduler: ManualScheduler
    ) -> None:
        loaded.apply_suggestion("written")
        assert "written" not in loaded.pending_dismissals()
        editor.undo()
        scheduler.advance(2)
        assert loaded.get("written") is not None

    def test_apply_without_suggestion_raises(self, loaded: AnnotationLifecycle, editor: EditorWidget) -> None:
        with pytest.raises(NoSuggestionError):
            loaded.apply_suggestion("letter")
        assert editor.text == TEXT

    def test_apply_invalidates_cache(self, loaded: AnnotationLifecycle) -> None:
        loaded.analysis_cache.set("written", "cached")
        loaded.apply_suggestion("written")
        assert "written" not in loaded.analysis_cache


class TestExternalUpdates:
    def test_resupplied_annotation_keeps_live_position(
        self, loaded: AnnotationLifecycle, editor: EditorWidget
    ) -> None:
        editor.insert_text("Oh. ", 0)
        loaded.set_annotations([make_annotation(*LETTER, annotation_id="letter")])
        assert _span(loaded, "letter") == (8, 14)
        assert [annotation.id for annotation in loaded.annotations] == ["letter"]

    def test_add_annotations_replaces_given_types(self, loaded: AnnotationLifecycle) -> None:
        loaded.add_annotations(
            [make_annotation(44, 46, annotation_id="it", type="passive_voice")],
            replace_types=["style"],
            mode=AnalysisMode.PASSIVE_VOICE,
        )
        assert [annotation.id for annotation in loaded.annotations] == ["it"]
        assert loaded.current_mode is AnalysisMode.PASSIVE_VOICE

    def test_dropped_annotations_lose_pending_timers(
        self, loaded: AnnotationLifecycle, editor: EditorWidget
    ) -> None:
        editor.insert_text("t", 7)
        loaded.set_annotations([])
        assert loaded.pending_dismissals() == set()
