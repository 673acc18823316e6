"""Edit transactions and undo history entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence, runtime_checkable

from .changes import ChangeSet

USER_EVENT_INPUT = "input"
USER_EVENT_APPLY = "input.apply"
USER_EVENT_UNDO = "undo"
USER_EVENT_REDO = "redo"
USER_EVENT_LOAD = "load"


@runtime_checkable
class StateEffect(Protocol):
    """Side effect carried by a transaction that knows how to undo itself.

    Effect payloads are expressed in the coordinates of the document *after*
    the transaction's changes have been applied.
    """

    def invert(self) -> "StateEffect":
        ...


@dataclass(slots=True)
class Transaction:
    """One atomic update of the editor: text changes plus effects."""

    start_text: str
    changes: ChangeSet
    effects: tuple[StateEffect, ...] = ()
    add_to_history: bool = True
    user_event: str = USER_EVENT_INPUT
    _new_text: str | None = field(default=None, repr=False)

    @property
    def doc_changed(self) -> bool:
        return bool(self.changes)

    @property
    def new_text(self) -> str:
        if self._new_text is None:
            self._new_text = self.changes.apply(self.start_text)
        return self._new_text

    @property
    def is_undo_redo(self) -> bool:
        return self.user_event in (USER_EVENT_UNDO, USER_EVENT_REDO)

    @property
    def is_load(self) -> bool:
        return self.user_event == USER_EVENT_LOAD

    def is_user_event(self, event: str) -> bool:
        """Match ``event`` or any of its dotted sub-events (``input`` matches ``input.apply``)."""

        return self.user_event == event or self.user_event.startswith(event + ".")


@dataclass(slots=True)
class HistoryEntry:
    """Undo stack record holding everything needed to reverse a transaction."""

    changes: ChangeSet
    inverse: ChangeSet
    effects: tuple[StateEffect, ...] = ()

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> HistoryEntry:
        return cls(
            changes=transaction.changes,
            inverse=transaction.changes.invert(transaction.start_text),
            effects=transaction.effects,
        )

    def inverted_effects(self) -> tuple[StateEffect, ...]:
        return tuple(effect.invert() for effect in reversed(self.effects))

    def flipped(self) -> HistoryEntry:
        """Return the entry that re-does what undoing this entry reverted."""

        return HistoryEntry(changes=self.inverse, inverse=self.changes, effects=self.inverted_effects())


def effects_tuple(effects: StateEffect | Sequence[StateEffect] | None) -> tuple[StateEffect, ...]:
    if effects is None:
        return ()
    if isinstance(effects, StateEffect):
        return (effects,)
    return tuple(effects)


__all__ = [
    "StateEffect",
    "Transaction",
    "HistoryEntry",
    "effects_tuple",
    "USER_EVENT_INPUT",
    "USER_EVENT_APPLY",
    "USER_EVENT_UNDO",
    "USER_EVENT_REDO",
    "USER_EVENT_LOAD",
]
