"""Exception hierarchy shared across the annotation engine."""

from __future__ import annotations


class MarginaliaError(Exception):
    """Base class for errors raised by the annotation engine."""


class InvalidChangeError(MarginaliaError, ValueError):
    """Raised when a change set is malformed (overlapping or out of bounds)."""


class AnnotationNotFoundError(MarginaliaError, KeyError):
    """Raised when an operation targets an id that is not in the active set."""

    def __init__(self, annotation_id: str) -> None:
        super().__init__(annotation_id)
        self.annotation_id = annotation_id

    def __str__(self) -> str:
        return f"No active annotation with id {self.annotation_id!r}"


class NoSuggestionError(MarginaliaError):
    """Raised when applying an annotation that carries no suggestion text."""

    def __init__(self, annotation_id: str) -> None:
        super().__init__(f"Annotation {annotation_id!r} has no suggestion to apply")
        self.annotation_id = annotation_id


class AIConfigurationError(MarginaliaError, RuntimeError):
    """Raised when the AI client cannot be built from the current settings."""


__all__ = [
    "MarginaliaError",
    "InvalidChangeError",
    "AnnotationNotFoundError",
    "NoSuggestionError",
    "AIConfigurationError",
]
