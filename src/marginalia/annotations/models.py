"""Annotation records and the per-file annotation state."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

from ..core.ranges import TextRange, clamp_span


class AnnotationType(str, Enum):
    """Closed set of annotation categories, used for grouping and styling."""

    PASSIVE_VOICE = "passive_voice"
    CONSISTENCY = "consistency"
    STYLE = "style"
    CRITIQUE = "critique"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")

    @classmethod
    def coerce(cls, value: Any) -> AnnotationType:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.STYLE


class AnalysisMode(str, Enum):
    NONE = "none"
    PASSIVE_VOICE = "passive_voice"
    CONSISTENCY = "consistency"
    STYLE = "style"
    CRITIQUE = "critique"

    @classmethod
    def coerce(cls, value: Any) -> AnalysisMode:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "none").strip().lower())
        except ValueError:
            return cls.NONE


def new_annotation_id(prefix: str = "ai") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass(slots=True, frozen=True)
class Annotation:
    """A highlighted range of the document with an explanation attached.

    ``start``/``end`` are half-open offsets and serialize as ``from``/``to``.
    ``applied`` and ``dismissed`` are mutually exclusive; either one freezes
    the record into the archive.
    """

    id: str
    type: AnnotationType
    start: int
    end: int
    matched_text: str = ""
    message: str = ""
    suggestion: str | None = None
    applied: bool = False
    dismissed: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", AnnotationType.coerce(self.type))
        start, end = int(self.start), int(self.end)
        if end < start:
            end = start
        object.__setattr__(self, "start", max(0, start))
        object.__setattr__(self, "end", max(0, end))
        if self.applied and self.dismissed:
            raise ValueError("An annotation cannot be both applied and dismissed")

    @property
    def range(self) -> TextRange:
        return TextRange(self.start, self.end)

    @property
    def is_active(self) -> bool:
        return not (self.applied or self.dismissed)

    @property
    def width(self) -> int:
        return self.end - self.start

    def moved(self, start: int, end: int) -> Annotation:
        if start == self.start and end == self.end:
            return self
        return replace(self, start=start, end=end)

    def clamped(self, length: int) -> Annotation:
        return self.moved(*clamp_span(self.start, self.end, length))

    def archived(self, *, applied: bool = False, dismissed: bool = False) -> Annotation:
        return replace(self, applied=applied, dismissed=dismissed)

    def reactivated(self) -> Annotation:
        return replace(self, applied=False, dismissed=False)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "from": self.start,
            "to": self.end,
            "matched_text": self.matched_text,
            "message": self.message,
        }
        if self.suggestion is not None:
            payload["suggestion"] = self.suggestion
        if self.applied:
            payload["applied"] = True
        if self.dismissed:
            payload["dismissed"] = True
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Annotation:
        span = TextRange.from_value(payload, fallback=(0, 0))
        return cls(
            id=str(payload.get("id") or new_annotation_id()),
            type=AnnotationType.coerce(payload.get("type")),
            start=span.start,
            end=span.end,
            matched_text=str(payload.get("matched_text", payload.get("matchedText", "")) or ""),
            message=str(payload.get("message") or ""),
            suggestion=payload.get("suggestion"),
            applied=bool(payload.get("applied", False)),
            dismissed=bool(payload.get("dismissed", False)),
        )


@dataclass(slots=True)
class AnnotationFileState:
    """Annotations recorded for one file plus the analysis mode that produced them."""

    mode: AnalysisMode = AnalysisMode.NONE
    annotations: list[Annotation] = field(default_factory=list)

    @property
    def active(self) -> list[Annotation]:
        return [annotation for annotation in self.annotations if annotation.is_active]

    @property
    def archived(self) -> list[Annotation]:
        return [annotation for annotation in self.annotations if not annotation.is_active]

    def find(self, annotation_id: str) -> Annotation | None:
        for annotation in self.annotations:
            if annotation.id == annotation_id:
                return annotation
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "annotations": [annotation.to_dict() for annotation in self.annotations],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> AnnotationFileState:
        raw = payload.get("annotations") or []
        return cls(
            mode=AnalysisMode.coerce(payload.get("mode")),
            annotations=[Annotation.from_dict(item) for item in raw if isinstance(item, Mapping)],
        )


__all__ = [
    "Annotation",
    "AnnotationType",
    "AnalysisMode",
    "AnnotationFileState",
    "new_annotation_id",
]
