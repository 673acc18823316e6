"""Core domain types and utilities."""

from .ranges import TextRange, clamp_span

__all__ = ["TextRange", "clamp_span"]
