"""Editor widget implementation with Qt + headless fallbacks.

The widget keeps the logical buffer, the transaction pipeline and the undo
history independent from the Qt presentation layer so tests can run in
headless environments. When PySide6 is available and a ``QApplication`` has
been instantiated, a ``QPlainTextEdit`` mirrors the buffer and renders
annotation decorations as extra selections; otherwise only the in-memory
buffer is used.

Every mutation, typed or programmatic, flows through :meth:`EditorWidget.dispatch`
as a :class:`~marginalia.editor.transactions.Transaction`. Listeners receive
the transaction after the buffer has been updated.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, Sequence

from ..errors import InvalidChangeError
from .changes import ChangeSet
from .document_model import DocumentState
from .transactions import (
    USER_EVENT_INPUT,
    USER_EVENT_LOAD,
    USER_EVENT_REDO,
    USER_EVENT_UNDO,
    HistoryEntry,
    StateEffect,
    Transaction,
    effects_tuple,
)

if TYPE_CHECKING:  # pragma: no cover
    from ..annotations.decorations import DecorationSpan

Qt: Any = None
QTextCursor: Any = None
QApplication: Any = None
QPlainTextEdit: Any = None
QTextEdit: Any = None
QVBoxLayout: Any = None
QWidgetBase: Any = None
QColor: Any = None

try:  # pragma: no cover - PySide6 optional in CI
    from PySide6.QtCore import Qt as _QtCoreQt  # noqa: F401
    from PySide6.QtGui import QColor as _QtColor
    from PySide6.QtGui import QTextCursor as _QtTextCursor  # type: ignore[import-not-found]
    from PySide6.QtWidgets import (
        QApplication as _QtApplication,
        QPlainTextEdit as _QtPlainTextEdit,
        QTextEdit as _QtTextEdit,
        QVBoxLayout as _QtVBoxLayout,
        QWidget as _QtWidget,
    )

    Qt = _QtCoreQt
    QTextCursor = _QtTextCursor
    QApplication = _QtApplication
    QPlainTextEdit = _QtPlainTextEdit
    QTextEdit = _QtTextEdit
    QVBoxLayout = _QtVBoxLayout
    QWidgetBase = _QtWidget
    QColor = _QtColor
except ImportError:  # pragma: no cover - runtime fallback

    class _StubQWidget:  # type: ignore[too-many-ancestors]
        """Runtime fallback avoiding PySide6 dependency during tests."""

        def __init__(self, *args: Any, **kwargs: Any) -> None:  # noqa: D401 - shim
            del args, kwargs

    QWidgetBase = _StubQWidget


LOGGER = logging.getLogger(__name__)

# Background colours for annotation types, matching the review palette.
DECORATION_COLORS: dict[str, tuple[int, int, int]] = {
    "passive_voice": (255, 236, 179),
    "consistency": (255, 205, 210),
    "style": (187, 222, 251),
    "critique": (225, 190, 231),
    "custom": (200, 230, 201),
}


class TransactionListener(Protocol):
    """Callback invoked after a transaction has been applied to the buffer."""

    def __call__(self, transaction: Transaction) -> None:
        ...


class EditorWidget(QWidgetBase):
    """Text buffer that reports edits as transactions and owns undo history."""

    MAX_HISTORY = 200

    def __init__(self, parent: Any | None = None) -> None:
        super().__init__(parent)
        self._state = DocumentState()
        self._text_buffer: str = ""
        self._qt_editor: Any = None
        self._applying_to_view = False
        self._listeners: list[TransactionListener] = []
        self._undo_stack: list[HistoryEntry] = []
        self._redo_stack: list[HistoryEntry] = []
        self._decorations: tuple[DecorationSpan, ...] = ()
        self._brushes: dict[str, Any] = {}
        self._last_change_source: str = "init"

        self._build_ui()

    # ------------------------------------------------------------------
    # UI construction
    # ------------------------------------------------------------------
    def _build_ui(self) -> None:
        """Instantiate Qt widgets when a QApplication is available."""

        if QApplication is None or QPlainTextEdit is None or QVBoxLayout is None:
            return
        if QApplication.instance() is None:
            # Headless mode – the logical buffer keeps working.
            return

        self._qt_editor = QPlainTextEdit(self)
        # History lives in this widget, not in QTextDocument.
        self._qt_editor.setUndoRedoEnabled(False)
        self._qt_editor.document().contentsChange.connect(  # type: ignore[attr-defined]
            self._handle_qt_contents_change
        )
        layout = QVBoxLayout(self)
        layout.addWidget(self._qt_editor)

    # ------------------------------------------------------------------
    # Document accessors
    # ------------------------------------------------------------------
    @property
    def text(self) -> str:
        return self._text_buffer

    @property
    def length(self) -> int:
        return len(self._text_buffer)

    @property
    def last_change_source(self) -> str:
        return self._last_change_source

    def to_document(self) -> DocumentState:
        """Return the current document representation."""

        self._state.text = self._text_buffer
        return self._state

    def load_document(self, document: DocumentState) -> Transaction:
        """Replace the buffer wholesale without recording undo history.

        Loads are tagged ``load`` so listeners can tell them apart from edits.
        """

        self._undo_stack.clear()
        self._redo_stack.clear()
        previous = self._text_buffer
        self._state = document
        transaction = Transaction(
            start_text=previous,
            changes=ChangeSet.replace_all(previous, document.text) if previous != document.text else ChangeSet.empty(len(previous)),
            add_to_history=False,
            user_event=USER_EVENT_LOAD,
        )
        self._commit(transaction, sync_view=True)
        LOGGER.debug("EditorWidget.load_document: path=%s, length=%d", document.path, len(document.text))
        return transaction

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def dispatch(
        self,
        changes: ChangeSet | Sequence[tuple[int, int, str]] | None = None,
        effects: StateEffect | Sequence[StateEffect] | None = None,
        *,
        user_event: str = USER_EVENT_INPUT,
        add_to_history: bool = True,
    ) -> Transaction:
        """Apply ``changes`` and ``effects`` as one atomic transaction."""

        length = len(self._text_buffer)
        if changes is None:
            change_set = ChangeSet.empty(length)
        elif isinstance(changes, ChangeSet):
            change_set = changes
        else:
            change_set = ChangeSet.of(changes, length)
        transaction = Transaction(
            start_text=self._text_buffer,
            changes=change_set,
            effects=effects_tuple(effects),
            add_to_history=add_to_history,
            user_event=user_event,
        )
        self._commit(transaction, sync_view=True)
        return transaction

    def replace_range(
        self,
        start: int,
        end: int,
        replacement: str,
        *,
        effects: StateEffect | Sequence[StateEffect] | None = None,
        user_event: str = USER_EVENT_INPUT,
    ) -> Transaction:
        """Replace the slice ``[start:end]`` with ``replacement``."""

        begin, finish = self._clamp_range(start, end)
        return self.dispatch([(begin, finish, replacement)], effects, user_event=user_event)

    def insert_text(self, text: str, position: int) -> Transaction:
        position = max(0, min(int(position), len(self._text_buffer)))
        return self.dispatch([(position, position, text)])

    def delete_range(self, start: int, end: int) -> Transaction:
        return self.replace_range(start, end, "")

    def set_text(self, text: str) -> Transaction:
        """Replace the entire document content as an undoable edit."""

        return self.dispatch(ChangeSet.replace_all(self._text_buffer, text))

    def add_transaction_listener(self, listener: TransactionListener) -> None:
        self._listeners.append(listener)

    def remove_transaction_listener(self, listener: TransactionListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # ------------------------------------------------------------------
    # Undo/redo support (headless-friendly)
    # ------------------------------------------------------------------
    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    def undo(self) -> bool:
        """Revert the latest history entry, text and effects together."""

        if not self._undo_stack:
            return False
        entry = self._undo_stack.pop()
        self._redo_stack.append(entry.flipped())
        self._commit(self._replay(entry, USER_EVENT_UNDO), sync_view=True)
        return True

    def redo(self) -> bool:
        """Re-apply the latest undone entry."""

        if not self._redo_stack:
            return False
        entry = self._redo_stack.pop()
        self._undo_stack.append(entry.flipped())
        self._commit(self._replay(entry, USER_EVENT_REDO), sync_view=True)
        return True

    def _replay(self, entry: HistoryEntry, user_event: str) -> Transaction:
        return Transaction(
            start_text=self._text_buffer,
            changes=entry.inverse,
            effects=entry.inverted_effects(),
            add_to_history=False,
            user_event=user_event,
        )

    # ------------------------------------------------------------------
    # Decorations
    # ------------------------------------------------------------------
    @property
    def decorations(self) -> tuple[DecorationSpan, ...]:
        return self._decorations

    def set_decorations(self, spans: Sequence[DecorationSpan]) -> None:
        """Render ``spans`` as highlighted regions of the buffer."""

        self._decorations = tuple(spans)
        self._apply_decorations()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _commit(self, transaction: Transaction, *, sync_view: bool) -> None:
        if transaction.changes.length != len(self._text_buffer):
            raise InvalidChangeError(
                f"Transaction built for length {transaction.changes.length}, buffer has {len(self._text_buffer)}"
            )
        if transaction.doc_changed:
            new_text = transaction.new_text
            if sync_view:
                self._apply_to_view(transaction.changes, new_text)
            self._text_buffer = new_text
            self._state.update_text(new_text, mark_dirty=not transaction.is_load)
        if transaction.add_to_history and (transaction.doc_changed or transaction.effects):
            self._push_history(HistoryEntry.from_transaction(transaction))
        self._last_change_source = transaction.user_event
        for listener in list(self._listeners):
            listener(transaction)

    def _push_history(self, entry: HistoryEntry) -> None:
        self._undo_stack.append(entry)
        if len(self._undo_stack) > self.MAX_HISTORY:
            self._undo_stack.pop(0)
        self._redo_stack.clear()

    def _clamp_range(self, start: int, end: int) -> tuple[int, int]:
        length = len(self._text_buffer)
        start = max(0, min(int(start), length))
        end = max(0, min(int(end), length))
        if end < start:
            start, end = end, start
        return start, end

    def _apply_to_view(self, changes: ChangeSet, new_text: str) -> None:
        if self._qt_editor is None or QTextCursor is None:
            return
        self._applying_to_view = True
        try:
            spans = changes.spans
            if len(spans) == 1 and spans[0].start == 0 and spans[0].end == changes.length:
                self._qt_editor.setPlainText(new_text)
                return
            cursor = self._qt_editor.textCursor()
            # Apply back to front so earlier offsets stay valid.
            for span in reversed(changes.spans):
                cursor.setPosition(span.start)
                cursor.setPosition(span.end, QTextCursor.KeepAnchor)  # type: ignore[attr-defined]
                cursor.insertText(span.insert)
        finally:
            self._applying_to_view = False

    def _apply_decorations(self) -> None:
        if self._qt_editor is None or QTextCursor is None or QTextEdit is None:
            return
        selection_cls = getattr(QTextEdit, "ExtraSelection", None)
        if selection_cls is None:
            return
        selections: list[Any] = []
        length = len(self._text_buffer)
        for span in self._decorations:
            start, end = self._clamp_range(span.start, span.end)
            if start == end or end > length:
                continue
            cursor = self._qt_editor.textCursor()
            cursor.setPosition(start)
            cursor.setPosition(end, QTextCursor.KeepAnchor)
            selection = selection_cls()
            selection.cursor = cursor
            color = self._decoration_color(span.type)
            if color is not None:
                selection.format.setBackground(color)
            selections.append(selection)
        self._qt_editor.setExtraSelections(selections)

    def _decoration_color(self, annotation_type: str) -> Any | None:
        if QColor is None:
            return None
        brush = self._brushes.get(annotation_type)
        if brush is None:
            rgb = DECORATION_COLORS.get(annotation_type, DECORATION_COLORS["style"])
            brush = QColor(*rgb)
            self._brushes[annotation_type] = brush
        return brush

    # Qt callbacks -----------------------------------------------------
    def _handle_qt_contents_change(self, position: int, removed: int, added: int) -> None:
        if self._qt_editor is None or self._applying_to_view:
            return
        current = self._qt_editor.toPlainText()
        previous = self._text_buffer
        position = max(0, min(int(position), len(previous)))
        end = min(len(previous), position + int(removed))
        inserted = current[position : position + int(added)]
        changes = ChangeSet.of([(position, end, inserted)], len(previous))
        if changes.apply(previous) != current:
            # QTextDocument can report a span larger than the real edit.
            changes = ChangeSet.replace_all(previous, current)
        transaction = Transaction(start_text=previous, changes=changes, user_event=USER_EVENT_INPUT)
        self._commit(transaction, sync_view=False)


__all__ = ["EditorWidget", "TransactionListener", "DECORATION_COLORS"]
