"""Application layer facade."""

from .workbench import Workbench

__all__ = ["Workbench"]
