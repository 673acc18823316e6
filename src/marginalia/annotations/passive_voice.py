"""Rule-based passive voice detector.

A regex heuristic: a form of *to be*, an optional ``-ly`` adverb, then a past
participle (a short list of irregular ones or any ``-ed`` word). Each hit is
widened to its sentence so the highlight covers something worth rewriting.
"""

from __future__ import annotations

import re

from .models import Annotation, AnnotationType, new_annotation_id

IRREGULAR_PARTICIPLES = (
    "written known seen found made done given taken left told shown brought "
    "felt kept held set put become come run begun gone sent built paid said "
    "heard met read lost won broken fallen grown drawn driven eaten forgotten "
    "hidden ridden risen stolen sworn thrown worn woken chosen frozen gotten "
    "proven shaken spoken undertaken woven withdrawn born caught bought "
    "fought taught thought sought hit hurt let cut shut split spread "
    "led fed bled bred fled sped spun stung struck strung swung flung clung "
    "rung sung slung hung dug stuck stunk shrunk drunk sunk sprung"
).split()

PASSIVE_PATTERN = re.compile(
    r"\b(is|was|were|are|been|being|be|am)\b(\s+\w+ly)?\s+("
    + "|".join(IRREGULAR_PARTICIPLES)
    + r"|\w+ed)\b",
    re.IGNORECASE,
)

_SENTENCE_END = ".!?"


def _sentence_start(text: str, position: int) -> int:
    index = position - 1
    while index > 0:
        char = text[index]
        if char in _SENTENCE_END and index + 1 < len(text) and text[index + 1].isspace():
            return index + 2
        if char == "\n" and text[index - 1] == "\n":
            return index + 1
        index -= 1
    return 0


def _sentence_end(text: str, position: int) -> int:
    for index in range(position, len(text)):
        char = text[index]
        if char in _SENTENCE_END:
            return index + 1
        if char == "\n":
            return index
    return len(text)


def _in_heading(text: str, match_start: int, match_end: int) -> bool:
    line_start = text.rfind("\n", 0, match_start) + 1
    return text[line_start:match_end].lstrip().startswith("#")


def detect_passive_voice(text: str) -> list[Annotation]:
    """Return one passive-voice annotation per affected sentence of ``text``."""

    annotations: list[Annotation] = []
    seen: set[tuple[int, int]] = set()
    for match in PASSIVE_PATTERN.finditer(text):
        if _in_heading(text, match.start(), match.end()):
            continue
        start = _sentence_start(text, match.start())
        end = _sentence_end(text, match.end())
        if (start, end) in seen:
            continue
        seen.add((start, end))
        annotations.append(
            Annotation(
                id=new_annotation_id("pv"),
                type=AnnotationType.PASSIVE_VOICE,
                start=start,
                end=end,
                matched_text=text[start:end].strip(),
                message=f'Passive voice: "{match.group(0).strip()}"',
            )
        )
    return annotations


__all__ = ["detect_passive_voice", "PASSIVE_PATTERN", "IRREGULAR_PARTICIPLES"]
