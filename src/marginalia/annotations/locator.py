"""Resolve quoted text back to offsets in the current document."""

from __future__ import annotations

import logging
import re

LOGGER = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
MIN_NORMALIZED_WORDS = 3
ANCHOR_WORDS = 4
ANCHOR_SLACK = 20


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text)


def locate(quoted_text: str, document: str) -> int | None:
    """Return the offset of the first match of ``quoted_text`` in ``document``.

    Exact matches win. Otherwise whitespace differences are ignored for quotes
    of at least three words. ``None`` means the quote could not be placed.
    """

    span = locate_span(quoted_text, document)
    return span[0] if span is not None else None


def locate_span(quoted_text: str, document: str) -> tuple[int, int] | None:
    """Like :func:`locate` but also report where the match ends."""

    if not quoted_text:
        return None
    index = document.find(quoted_text)
    if index != -1:
        return index, index + len(quoted_text)
    normalized = normalize_whitespace(quoted_text)
    index = _find_normalized(document, normalized)
    if index is None:
        LOGGER.debug("locate_span: no match for %r", quoted_text[:60])
        return None
    end = _collapsed_match_end(document, index, normalized)
    if end is None:
        end = min(len(document), index + len(quoted_text))
    return index, end


def _find_normalized(document: str, normalized: str) -> int | None:
    words = normalized.split(" ")
    if len(words) < MIN_NORMALIZED_WORDS:
        return None
    anchor = " ".join(words[:ANCHOR_WORDS])
    first_word = words[0]
    search_from = 0
    while search_from < len(document):
        index = document.find(first_word, search_from)
        if index == -1:
            break
        window = normalize_whitespace(document[index : index + len(normalized) * 2])
        if window.startswith(normalized):
            return index
        anchor_window = normalize_whitespace(document[index : index + len(anchor) + ANCHOR_SLACK])
        if anchor_window.startswith(anchor):
            return index
        search_from = index + 1
    return None


def _collapsed_match_end(document: str, index: int, normalized: str) -> int | None:
    """Walk ``document`` from ``index`` treating each space in ``normalized`` as a whitespace run."""

    position = index
    length = len(document)
    for char in normalized:
        if position >= length:
            return None
        if char == " ":
            if not document[position].isspace():
                return None
            while position < length and document[position].isspace():
                position += 1
            continue
        if document[position] != char:
            return None
        position += 1
    return position


__all__ = ["locate", "locate_span", "normalize_whitespace"]
