"""Annotation models and the pipeline that turns AI prose into tracked ranges."""

from .builder import build_annotations, parse_annotations
from .decorations import DecorationSpan, project_decorations
from .extractor import ExtractedQuote, extract_quotes
from .locator import locate, locate_span
from .models import AnalysisMode, Annotation, AnnotationFileState, AnnotationType
from .passive_voice import detect_passive_voice
from .tracker import PositionTracker

__all__ = [
    "AnalysisMode",
    "Annotation",
    "AnnotationFileState",
    "AnnotationType",
    "DecorationSpan",
    "ExtractedQuote",
    "PositionTracker",
    "build_annotations",
    "detect_passive_voice",
    "extract_quotes",
    "locate",
    "locate_span",
    "parse_annotations",
    "project_decorations",
]
