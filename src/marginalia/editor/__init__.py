"""Editor collaborator: change sets, transactions and the editor widget."""

from .changes import ChangedRange, ChangedSpan, ChangeSet
from .document_model import DocumentState
from .editor_widget import EditorWidget
from .transactions import HistoryEntry, StateEffect, Transaction

__all__ = [
    "ChangeSet",
    "ChangedRange",
    "ChangedSpan",
    "DocumentState",
    "EditorWidget",
    "HistoryEntry",
    "StateEffect",
    "Transaction",
]
