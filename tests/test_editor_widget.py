"""Editor widget tests covering logical behaviors in headless mode."""

from __future__ import annotations

import pytest

from marginalia.annotations.decorations import DecorationSpan
from marginalia.editor.document_model import DocumentState
from marginalia.editor.editor_widget import EditorWidget
from marginalia.editor.transactions import Transaction
from marginalia.errors import InvalidChangeError


@pytest.fixture
def widget() -> EditorWidget:
    editor = EditorWidget()
    editor.load_document(DocumentState(text="hello world"))
    return editor


def _record(editor: EditorWidget) -> list[Transaction]:
    seen: list[Transaction] = []
    editor.add_transaction_listener(seen.append)
    return seen


def test_load_replaces_buffer_without_history() -> None:
    editor = EditorWidget()
    seen = _record(editor)
    editor.load_document(DocumentState(text="first", path="/tmp/a.md"))
    assert editor.text == "first"
    assert not editor.can_undo
    assert seen[0].is_load
    assert not seen[0].add_to_history
    assert editor.to_document().path is not None
    assert not editor.to_document().dirty


def test_edits_mark_document_dirty(widget: EditorWidget) -> None:
    widget.insert_text("!", widget.length)
    assert widget.text == "hello world!"
    assert widget.to_document().dirty
    assert widget.last_change_source == "input"


def test_version_counts_committed_changes(widget: EditorWidget) -> None:
    before = widget.to_document().version
    widget.insert_text("!", widget.length)
    widget.undo()
    assert widget.to_document().version == before + 2


def test_insert_position_is_clamped(widget: EditorWidget) -> None:
    widget.insert_text(">", -5)
    widget.insert_text("<", 500)
    assert widget.text == ">hello world<"


def test_replace_and_delete_ranges(widget: EditorWidget) -> None:
    widget.replace_range(0, 5, "goodbye")
    assert widget.text == "goodbye world"
    widget.delete_range(13, 7)
    assert widget.text == "goodbye"


def test_undo_redo_round_trip(widget: EditorWidget) -> None:
    seen = _record(widget)
    widget.replace_range(6, 11, "there")
    widget.insert_text("Oh, ", 0)

    assert widget.undo()
    assert widget.text == "hello there"
    assert widget.undo()
    assert widget.text == "hello world"
    assert not widget.undo()
    assert widget.can_redo

    assert widget.redo()
    assert widget.text == "hello there"
    assert [transaction.user_event for transaction in seen] == ["input", "input", "undo", "undo", "redo"]


def test_new_edit_clears_redo(widget: EditorWidget) -> None:
    widget.insert_text("!", 11)
    widget.undo()
    widget.insert_text("?", 11)
    assert not widget.can_redo
    assert not widget.redo()


def test_set_text_is_undoable(widget: EditorWidget) -> None:
    widget.set_text("fresh")
    assert widget.text == "fresh"
    widget.undo()
    assert widget.text == "hello world"


def test_empty_transaction_stays_out_of_history(widget: EditorWidget) -> None:
    widget.dispatch(effects=())
    assert not widget.can_undo


def test_stale_change_set_is_rejected(widget: EditorWidget) -> None:
    with pytest.raises(InvalidChangeError):
        widget.dispatch([(0, 20, "x")])


def test_removed_listener_stops_receiving(widget: EditorWidget) -> None:
    seen = _record(widget)
    widget.remove_transaction_listener(seen.append)
    widget.remove_transaction_listener(seen.append)
    widget.insert_text("x", 0)
    assert seen == []


def test_decorations_are_stored_headless(widget: EditorWidget) -> None:
    spans = [DecorationSpan(0, 5, "style", "ai-1")]
    widget.set_decorations(spans)
    assert widget.decorations == tuple(spans)


def test_history_is_capped(widget: EditorWidget) -> None:
    for _ in range(EditorWidget.MAX_HISTORY + 5):
        widget.insert_text("x", 0)
    undone = 0
    while widget.undo():
        undone += 1
    assert undone == EditorWidget.MAX_HISTORY
