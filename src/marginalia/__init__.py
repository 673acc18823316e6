"""Marginalia: AI critique turned into live, edit-stable annotations."""

__all__ = ["__version__"]

__version__ = "0.1.0"
