"""Project live annotations onto renderable highlight spans."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..core.ranges import clamp_span
from .models import Annotation


@dataclass(slots=True, frozen=True)
class DecorationSpan:
    start: int
    end: int
    type: str
    annotation_id: str
    message: str = ""


def project_decorations(annotations: Iterable[Annotation], document_length: int) -> list[DecorationSpan]:
    """Return clamped, non-empty spans ordered by start offset.

    Overlaps are kept as-is. Equal starts keep the order of ``annotations``
    (``sorted`` is stable). Annotations that clamp to zero width are left out
    of the result but stay tracked.
    """

    spans: list[DecorationSpan] = []
    for annotation in annotations:
        if not annotation.is_active:
            continue
        start, end = clamp_span(annotation.start, annotation.end, document_length)
        if start >= end:
            continue
        spans.append(DecorationSpan(start, end, annotation.type.value, annotation.id, annotation.message))
    return sorted(spans, key=lambda span: span.start)


__all__ = ["DecorationSpan", "project_decorations"]
