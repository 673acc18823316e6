"""Pull quoted excerpts and their labels out of free-form AI critique."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

from .models import AnnotationType

QUOTE_CHARS = "\"“”‘’'"
QUOTE_PATTERN = re.compile(rf"[{QUOTE_CHARS}](.{{10,300}}?)[{QUOTE_CHARS}]")
SUGGESTION_PATTERN = re.compile(
    rf"SUGGESTION:\s*[{QUOTE_CHARS}](.{{5,400}}?)[{QUOTE_CHARS}]", re.IGNORECASE
)
LABEL_PATTERN = re.compile(r"(?:ISSUE|PROBLEM|WHY):\s*(.+?)(?:\n|$)", re.IGNORECASE)
SENTENCE_BREAK = re.compile(r"[.!?]\s+")

CONTEXT_BEFORE = 200
CONTEXT_AFTER = 400
MESSAGE_LOOKBACK = 400
MESSAGE_LIMIT = 200
ELLIPSIS = "…"

_CONSISTENCY_WORDS = ("consistency", "character", "timeline", "repeated", "contradiction")


@dataclass(slots=True, frozen=True)
class ExtractedQuote:
    """A quote found in an AI response, with the text around it."""

    quoted_text: str
    match_index: int
    context_before: str
    context_after: str
    message: str = ""
    suggestion: str | None = None

    @property
    def annotation_type(self) -> AnnotationType:
        return classify_type(self.context_before)


def classify_type(context_before: str) -> AnnotationType:
    """Infer the annotation type from the text preceding a quote. First rule wins."""

    lowered = context_before.lower()
    if "passive" in lowered:
        return AnnotationType.PASSIVE_VOICE
    if any(word in lowered for word in _CONSISTENCY_WORDS):
        return AnnotationType.CONSISTENCY
    return AnnotationType.STYLE


def extract_suggestion(context_after: str) -> str | None:
    match = SUGGESTION_PATTERN.search(context_after)
    if match is None:
        return None
    return match.group(1).strip()


def _truncate(text: str) -> str:
    if len(text) > MESSAGE_LIMIT:
        return text[:MESSAGE_LIMIT] + ELLIPSIS
    return text


def extract_message(response: str, quote_index: int) -> str:
    """Return the explanation preceding the quote at ``quote_index``.

    Prefers the last ``ISSUE:``/``PROBLEM:``/``WHY:`` line within the lookback
    window, otherwise the last sentence fragment before the quote.
    """

    before = response[max(0, quote_index - MESSAGE_LOOKBACK) : quote_index]
    labels = LABEL_PATTERN.findall(before)
    if labels:
        return _truncate(labels[-1].strip())
    sentences = SENTENCE_BREAK.split(before)
    return _truncate(sentences[-1].strip() if sentences else "")


def iter_quotes(response: str) -> Iterator[ExtractedQuote]:
    for match in QUOTE_PATTERN.finditer(response):
        quoted = match.group(1).strip()
        if not quoted:
            continue
        start, end = match.start(), match.end()
        context_after = response[end : end + CONTEXT_AFTER]
        yield ExtractedQuote(
            quoted_text=quoted,
            match_index=start,
            context_before=response[max(0, start - CONTEXT_BEFORE) : start],
            context_after=context_after,
            message=extract_message(response, start),
            suggestion=extract_suggestion(context_after),
        )


def extract_quotes(response: str) -> list[ExtractedQuote]:
    """Return every quote in ``response`` in order of appearance."""

    return list(iter_quotes(response or ""))


__all__ = [
    "ExtractedQuote",
    "classify_type",
    "extract_message",
    "extract_quotes",
    "extract_suggestion",
    "iter_quotes",
]
