"""Domain layer.

Stores that hold per-file state independent of any widget:
    - AnnotationStore: active and archived annotations per file
    - ChatStore: chat sessions per file
    - SessionStore: debounced persistence of both plus view state
"""

from __future__ import annotations

from .annotation_store import ROOT_KEY, AnnotationStore, file_key
from .chat_store import ChatStore
from .session_store import SessionStore

__all__: list[str] = [
    "AnnotationStore",
    "ChatStore",
    "ROOT_KEY",
    "SessionStore",
    "file_key",
]
