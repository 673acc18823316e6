"""Keep annotation ranges attached to their text while the document changes.

The tracker owns the authoritative, position-accurate copy of every live
annotation. Edits are folded in through :meth:`PositionTracker.map_changes`
in the order the editor emits them; external updates go through
:meth:`PositionTracker.sync`, which never lets a stale incoming position
overwrite a tracked one.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

from ..core.ranges import clamp_span
from ..editor.changes import ChangeSet
from .models import Annotation

LOGGER = logging.getLogger(__name__)

# Insertions at ``from`` push the start forward; insertions at ``to`` stay outside.
START_ASSOC = 1
END_ASSOC = -1


class PositionTracker:
    """Ordered set of live annotations with edit-accurate positions."""

    def __init__(self, annotations: Iterable[Annotation] = ()) -> None:
        self._annotations: list[Annotation] = list(annotations)
        # id -> (collapsed position, text removed when the range collapsed)
        self._collapsed: dict[str, tuple[int, str]] = {}

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def annotations(self) -> tuple[Annotation, ...]:
        return tuple(self._annotations)

    def ids(self) -> list[str]:
        return [annotation.id for annotation in self._annotations]

    def get(self, annotation_id: str) -> Annotation | None:
        for annotation in self._annotations:
            if annotation.id == annotation_id:
                return annotation
        return None

    def index_of(self, annotation_id: str) -> int:
        for index, annotation in enumerate(self._annotations):
            if annotation.id == annotation_id:
                return index
        return -1

    def __len__(self) -> int:
        return len(self._annotations)

    def __iter__(self) -> Iterator[Annotation]:
        return iter(list(self._annotations))

    def __contains__(self, annotation_id: object) -> bool:
        return any(annotation.id == annotation_id for annotation in self._annotations)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def reset(self, annotations: Iterable[Annotation] = (), document_length: int | None = None) -> None:
        """Replace the tracked set wholesale, e.g. after loading another file."""

        items = list(annotations)
        if document_length is not None:
            items = [annotation.clamped(document_length) for annotation in items]
        self._annotations = items
        self._collapsed.clear()

    def insert(self, index: int, annotation: Annotation) -> None:
        self.remove(annotation.id)
        index = max(0, min(int(index), len(self._annotations)))
        self._annotations.insert(index, annotation)

    def remove(self, annotation_id: str) -> tuple[int, Annotation] | None:
        index = self.index_of(annotation_id)
        if index == -1:
            return None
        self._collapsed.pop(annotation_id, None)
        return index, self._annotations.pop(index)

    def map_changes(self, changes: ChangeSet, old_text: str | None = None) -> list[Annotation]:
        """Remap every tracked annotation through ``changes``.

        ``old_text`` is the pre-edit document; when given, the text removed by an
        edit that collapses an annotation is remembered so that re-inserting it
        at the same place re-expands the range.
        """

        if not changes:
            return list(self._annotations)
        length = changes.new_length
        mapped: list[Annotation] = []
        for annotation in self._annotations:
            restored = self._reexpanded(annotation, changes)
            if restored is not None:
                mapped.append(restored)
                continue
            start = changes.map_pos(annotation.start, START_ASSOC)
            end = changes.map_pos(annotation.end, END_ASSOC)
            start, end = clamp_span(start, max(start, end), length)
            if start == end:
                self._remember_collapse(annotation, start, old_text)
            else:
                self._collapsed.pop(annotation.id, None)
            mapped.append(annotation.moved(start, end))
        self._annotations = mapped
        return list(mapped)

    def clamp(self, document_length: int) -> None:
        self._annotations = [annotation.clamped(document_length) for annotation in self._annotations]

    def sync(self, incoming: Iterable[Annotation], document_length: int) -> list[Annotation]:
        """Adopt the incoming id set while keeping tracked positions for known ids."""

        tracked = {annotation.id: annotation for annotation in self._annotations}
        merged: list[Annotation] = []
        for annotation in incoming:
            if not annotation.is_active:
                continue
            current = tracked.get(annotation.id)
            if current is None:
                merged.append(annotation.clamped(document_length))
            else:
                merged.append(current)
        keep = {annotation.id for annotation in merged}
        for annotation_id in list(self._collapsed):
            if annotation_id not in keep:
                del self._collapsed[annotation_id]
        self._annotations = merged
        return list(merged)

    # ------------------------------------------------------------------
    # Zero-width bookkeeping
    # ------------------------------------------------------------------
    def _remember_collapse(self, annotation: Annotation, position: int, old_text: str | None) -> None:
        previous = self._collapsed.get(annotation.id)
        if annotation.width > 0:
            removed = old_text[annotation.start : annotation.end] if old_text is not None else annotation.matched_text
        elif previous is not None:
            removed = previous[1]
        else:
            removed = annotation.matched_text
        if removed:
            self._collapsed[annotation.id] = (position, removed)

    def _reexpanded(self, annotation: Annotation, changes: ChangeSet) -> Annotation | None:
        if annotation.width:
            return None
        record = self._collapsed.get(annotation.id)
        removed = record[1] if record is not None else annotation.matched_text
        if not removed:
            return None
        for span in changes.spans:
            if span.start == span.end == annotation.start and span.insert == removed:
                start = changes.map_pos(annotation.start, -1)
                self._collapsed.pop(annotation.id, None)
                LOGGER.debug("PositionTracker: re-expanded %s at %d", annotation.id, start)
                return annotation.moved(start, start + len(removed))
        return None


__all__ = ["PositionTracker", "START_ASSOC", "END_ASSOC"]
