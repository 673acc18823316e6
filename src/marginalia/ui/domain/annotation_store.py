"""Per-file annotation store domain service.

Holds the annotations recorded for every file, active ones and the archive
of applied or dismissed ones. This is the single shared record that the
lifecycle engine writes and the session store persists.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from ...annotations.models import Annotation, AnalysisMode, AnnotationFileState

LOGGER = logging.getLogger(__name__)

ROOT_KEY = "__root__"

ChangeListener = Callable[[str], None]


def file_key(path: Path | str | None) -> str:
    """Return the store key for ``path`` (the root sentinel when no file is open)."""

    if path is None or path == "":
        return ROOT_KEY
    return str(path)


class AnnotationStore:
    """Domain store for annotations keyed by file path.

    Listeners registered with :meth:`add_change_listener` are told which key
    changed after every mutation; the session store uses this to schedule a
    debounced write.
    """

    def __init__(self) -> None:
        self._files: dict[str, AnnotationFileState] = {}
        self._listeners: list[ChangeListener] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def keys(self) -> list[str]:
        return list(self._files)

    def get(self, key: str) -> AnnotationFileState | None:
        return self._files.get(key)

    def mode(self, key: str) -> AnalysisMode:
        state = self._files.get(key)
        return state.mode if state is not None else AnalysisMode.NONE

    def active(self, key: str) -> list[Annotation]:
        state = self._files.get(key)
        return state.active if state is not None else []

    def archived(self, key: str) -> list[Annotation]:
        state = self._files.get(key)
        return state.archived if state is not None else []

    def find(self, key: str, annotation_id: str) -> Annotation | None:
        state = self._files.get(key)
        return state.find(annotation_id) if state is not None else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_file_state(
        self,
        key: str,
        annotations: Iterable[Annotation],
        mode: AnalysisMode | str | None = None,
    ) -> AnnotationFileState:
        """Replace everything recorded for ``key``."""

        state = AnnotationFileState(
            mode=AnalysisMode.coerce(mode) if mode is not None else self.mode(key),
            annotations=list(annotations),
        )
        self._files[key] = state
        LOGGER.debug("AnnotationStore.set_file_state: %s, %d annotation(s)", key, len(state.annotations))
        self._notify(key)
        return state

    def replace_active(
        self,
        key: str,
        active: Iterable[Annotation],
        mode: AnalysisMode | str | None = None,
    ) -> AnnotationFileState:
        """Store ``active`` as the live set for ``key`` while keeping the archive.

        Archived records whose id reappears in ``active`` are dropped, which is
        how undoing a dismiss or an apply brings an annotation back.
        """

        live = [annotation.reactivated() if not annotation.is_active else annotation for annotation in active]
        live_ids = {annotation.id for annotation in live}
        archive = [annotation for annotation in self.archived(key) if annotation.id not in live_ids]
        return self.set_file_state(key, archive + live, mode)

    def archive(self, key: str, annotation: Annotation, *, applied: bool = False, dismissed: bool = False) -> Annotation:
        """Record ``annotation`` as applied or dismissed, replacing any live copy."""

        if applied == dismissed:
            raise ValueError("archive() needs exactly one of applied/dismissed")
        record = annotation.archived(applied=applied, dismissed=dismissed)
        state = self._files.setdefault(key, AnnotationFileState())
        state.annotations = [item for item in state.annotations if item.id != annotation.id]
        state.annotations.append(record)
        LOGGER.debug(
            "AnnotationStore.archive: %s %s (applied=%s, dismissed=%s)", key, annotation.id, applied, dismissed
        )
        self._notify(key)
        return record

    def clear_archive(self, key: str) -> int:
        """Hard-delete the archived records for ``key``; returns how many went."""

        state = self._files.get(key)
        if state is None:
            return 0
        archived = len(state.archived)
        if archived:
            state.annotations = state.active
            self._notify(key)
        return archived

    def rename_file(self, old_key: str, new_key: str) -> None:
        """Move the annotations of ``old_key`` under ``new_key`` (save-as)."""

        state = self._files.pop(old_key, None)
        if state is None:
            return
        self._files[new_key] = state
        self._notify(new_key)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, key: str) -> None:
        for listener in list(self._listeners):
            listener(key)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {key: state.to_dict() for key, state in self._files.items()}

    def load(self, payload: Mapping[str, Any] | None) -> None:
        """Replace all state from a serialized payload without notifying listeners."""

        files: dict[str, AnnotationFileState] = {}
        for key, value in (payload or {}).items():
            if isinstance(value, Mapping):
                files[str(key)] = AnnotationFileState.from_dict(value)
        self._files = files
        LOGGER.debug("AnnotationStore.load: %d file(s)", len(files))


__all__ = ["AnnotationStore", "ROOT_KEY", "file_key"]
