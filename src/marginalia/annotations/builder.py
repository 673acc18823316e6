"""Combine extracted quotes and their document positions into annotations."""

from __future__ import annotations

import logging
from typing import Iterable

from .extractor import ExtractedQuote, extract_quotes
from .locator import locate_span
from .models import Annotation, AnnotationType, new_annotation_id

LOGGER = logging.getLogger(__name__)


def fallback_message(annotation_type: AnnotationType) -> str:
    return f"{annotation_type.label} — hover for details"


def build_annotations(
    quotes: Iterable[ExtractedQuote],
    document: str,
    *,
    override_type: AnnotationType | str | None = None,
) -> list[Annotation]:
    """Create one annotation per quote that can be located in ``document``.

    Quotes that cannot be placed are dropped, and a quote resolving to a range
    already taken by an earlier quote is skipped.
    """

    forced = AnnotationType.coerce(override_type) if override_type is not None else None
    annotations: list[Annotation] = []
    seen: set[tuple[int, int]] = set()
    dropped = 0
    for quote in quotes:
        span = locate_span(quote.quoted_text, document)
        if span is None:
            dropped += 1
            continue
        if span in seen:
            continue
        seen.add(span)
        annotation_type = forced or quote.annotation_type
        annotations.append(
            Annotation(
                id=new_annotation_id(),
                type=annotation_type,
                start=span[0],
                end=span[1],
                matched_text=quote.quoted_text,
                message=quote.message or fallback_message(annotation_type),
                suggestion=quote.suggestion,
            )
        )
    if dropped:
        LOGGER.debug("build_annotations: dropped %d unlocatable quote(s)", dropped)
    return annotations


def parse_annotations(
    response: str,
    document: str,
    override_type: AnnotationType | str | None = None,
) -> list[Annotation]:
    """Extract, locate and build annotations from a complete AI response."""

    return build_annotations(extract_quotes(response), document, override_type=override_type)


__all__ = ["build_annotations", "fallback_message", "parse_annotations"]
