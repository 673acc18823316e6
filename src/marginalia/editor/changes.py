"""Change sets describing a single document edit.

A :class:`ChangeSet` is a list of non-overlapping replacements expressed in
*pre-edit* coordinates. Besides applying itself to text it can map any
pre-edit position into the post-edit document, which is what keeps annotation
ranges attached to the prose they describe while the user types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence

from ..errors import InvalidChangeError

__all__ = ["ChangedSpan", "ChangedRange", "ChangeSet"]


@dataclass(slots=True, frozen=True)
class ChangedSpan:
    """Replace ``[start, end)`` of the old document with ``insert``."""

    start: int
    end: int
    insert: str = ""

    @property
    def deleted_length(self) -> int:
        return self.end - self.start


@dataclass(slots=True, frozen=True)
class ChangedRange:
    """A touched region reported in both coordinate spaces."""

    from_a: int
    to_a: int
    from_b: int
    to_b: int


class ChangeSet:
    """Immutable, ordered collection of replacements against one document."""

    __slots__ = ("_spans", "_length", "_new_length")

    def __init__(self, spans: Iterable[ChangedSpan], length: int) -> None:
        ordered = sorted(
            (span for span in spans if span.start != span.end or span.insert),
            key=lambda span: (span.start, span.end),
        )
        length = int(length)
        cursor = 0
        for span in ordered:
            if span.start < 0 or span.end > length or span.end < span.start:
                raise InvalidChangeError(
                    f"Change [{span.start}, {span.end}) is outside a document of length {length}"
                )
            if span.start < cursor:
                raise InvalidChangeError("Changes in a change set must not overlap")
            cursor = span.end
        self._spans: tuple[ChangedSpan, ...] = tuple(ordered)
        self._length = length
        self._new_length = length + sum(len(span.insert) - span.deleted_length for span in ordered)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def of(cls, changes: Sequence[tuple[int, int, str]] | tuple[int, int, str], length: int) -> ChangeSet:
        """Build a change set from ``(start, end, insert)`` tuples."""

        if changes and isinstance(changes[0], int):
            changes = [changes]  # type: ignore[list-item]
        spans = [ChangedSpan(int(start), int(end), str(insert or "")) for start, end, insert in changes]  # type: ignore[misc]
        return cls(spans, length)

    @classmethod
    def empty(cls, length: int) -> ChangeSet:
        return cls((), length)

    @classmethod
    def replace_all(cls, old_text: str, new_text: str) -> ChangeSet:
        """Describe a wholesale replacement of ``old_text`` by ``new_text``."""

        return cls((ChangedSpan(0, len(old_text), new_text),), len(old_text))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def spans(self) -> tuple[ChangedSpan, ...]:
        return self._spans

    @property
    def length(self) -> int:
        """Length of the document the changes apply to."""

        return self._length

    @property
    def new_length(self) -> int:
        """Length of the document after the changes are applied."""

        return self._new_length

    @property
    def is_empty(self) -> bool:
        return not self._spans

    def __bool__(self) -> bool:
        return bool(self._spans)

    def __repr__(self) -> str:
        parts = ", ".join(f"[{s.start},{s.end})->{s.insert!r}" for s in self._spans)
        return f"ChangeSet({parts}; {self._length}->{self._new_length})"

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    def apply(self, text: str) -> str:
        if len(text) != self._length:
            raise InvalidChangeError(
                f"Change set expects a document of length {self._length}, got {len(text)}"
            )
        if not self._spans:
            return text
        pieces: list[str] = []
        cursor = 0
        for span in self._spans:
            pieces.append(text[cursor : span.start])
            pieces.append(span.insert)
            cursor = span.end
        pieces.append(text[cursor:])
        return "".join(pieces)

    def invert(self, original_text: str) -> ChangeSet:
        """Return the change set that turns the edited text back into ``original_text``."""

        if len(original_text) != self._length:
            raise InvalidChangeError("Inverting requires the pre-edit document text")
        inverted: list[ChangedSpan] = []
        delta = 0
        for span in self._spans:
            start_b = span.start + delta
            inverted.append(
                ChangedSpan(start_b, start_b + len(span.insert), original_text[span.start : span.end])
            )
            delta += len(span.insert) - span.deleted_length
        return ChangeSet(inverted, self._new_length)

    # ------------------------------------------------------------------
    # Position mapping
    # ------------------------------------------------------------------
    def map_pos(self, pos: int, assoc: int = -1) -> int:
        """Map a pre-edit position into post-edit coordinates.

        ``assoc`` decides what happens when text is inserted exactly at ``pos``:
        a negative value keeps the position before the insertion, a positive
        value moves it after. A position strictly inside a replaced range lands
        on the side of the replacement chosen by ``assoc``; the start of a
        replaced range always maps to the start of its replacement.
        """

        pos = max(0, min(int(pos), self._length))
        delta = 0
        for span in self._spans:
            if pos < span.start:
                break
            start_b = span.start + delta
            inserted = len(span.insert)
            if span.end > pos or (span.end == pos and assoc < 0 and not span.deleted_length):
                if pos == span.start and span.deleted_length:
                    return start_b
                return start_b if assoc < 0 else start_b + inserted
            delta += inserted - span.deleted_length
        return pos + delta

    def iter_changed_ranges(self) -> Iterator[ChangedRange]:
        """Yield each touched region in pre-edit and post-edit coordinates."""

        delta = 0
        for span in self._spans:
            from_b = span.start + delta
            yield ChangedRange(span.start, span.end, from_b, from_b + len(span.insert))
            delta += len(span.insert) - span.deleted_length

    def touches(self, start: int, end: int) -> bool:
        """Return ``True`` when any change overlaps the pre-edit span ``[start, end)``."""

        return any(span.start < end and span.end > start for span in self._spans)
