"""Session store domain service.

Persists the annotation store, chat sessions, scroll positions and the
active file to one JSON document. Mutations are coalesced: every change
re-arms a single timer and the file is written once the changes stop for
``save_delay`` seconds.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ...annotations.timers import DebouncedTimers, Scheduler
from ...services.session_cache import SessionCacheStore, SessionSnapshot
from ..events import EventBus, SessionSaved

if TYPE_CHECKING:  # pragma: no cover
    from .annotation_store import AnnotationStore
    from .chat_store import ChatStore

LOGGER = logging.getLogger(__name__)

SESSION_SAVE_DELAY = 1.5
_SAVE_KEY = "session"


class SessionStore:
    """Domain manager for session persistence.

    Events Emitted:
        - SessionSaved: after each successful write
    """

    def __init__(
        self,
        cache_store: SessionCacheStore | None,
        annotation_store: AnnotationStore,
        chat_store: ChatStore,
        event_bus: EventBus,
        *,
        scheduler: Scheduler | None = None,
        save_delay: float = SESSION_SAVE_DELAY,
    ) -> None:
        """Initialize the session store.

        Args:
            cache_store: JSON adapter for the session file, or None to disable persistence.
            annotation_store: Store whose changes trigger saves.
            chat_store: Store whose changes trigger saves.
            event_bus: The event bus for publishing events.
            scheduler: ``call_later`` provider for the debounce timer.
            save_delay: Quiet period before a write, in seconds.
        """
        self._cache_store = cache_store
        self._annotations = annotation_store
        self._chat = chat_store
        self._bus = event_bus
        self._timers = DebouncedTimers(save_delay, scheduler)
        self._active_file_path: str | None = None
        self._scroll_positions: dict[str, float] = {}
        annotation_store.add_change_listener(self._on_store_changed)
        chat_store.add_change_listener(self._on_store_changed)

    # ------------------------------------------------------------------
    # View state
    # ------------------------------------------------------------------

    @property
    def active_file_path(self) -> str | None:
        return self._active_file_path

    def set_active_file_path(self, path: Path | str | None) -> None:
        self._active_file_path = str(path) if path is not None else None
        LOGGER.debug("SessionStore.set_active_file_path: %s", self._active_file_path)
        self.schedule_save()

    def scroll_position(self, key: str) -> float:
        return self._scroll_positions.get(key, 0.0)

    def set_scroll_position(self, key: str, position: float) -> None:
        self._scroll_positions[key] = float(position)
        self.schedule_save()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @property
    def save_pending(self) -> bool:
        return self._timers.is_pending(_SAVE_KEY)

    def restore(self) -> SessionSnapshot:
        """Read the session file once and hydrate the stores from it."""

        if self._cache_store is None:
            return SessionSnapshot()
        snapshot = self._cache_store.load()
        self._annotations.load(snapshot.annotations_by_file)
        self._chat.load(snapshot.chat)
        self._scroll_positions = dict(snapshot.scroll_positions)
        self._active_file_path = snapshot.active_file_path
        LOGGER.debug(
            "SessionStore.restore: %d annotated file(s), active=%s",
            len(snapshot.annotations_by_file),
            snapshot.active_file_path,
        )
        return snapshot

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            active_file_path=self._active_file_path,
            annotations_by_file=self._annotations.to_dict(),
            chat=self._chat.to_dict(),
            scroll_positions=dict(self._scroll_positions),
        )

    def schedule_save(self) -> None:
        if self._cache_store is None:
            return
        self._timers.schedule(_SAVE_KEY, self._on_save_timer)

    def save_now(self) -> Path | None:
        """Write the session file immediately.

        Returns:
            The written path, or None when persistence is disabled or failed.
        """
        self._timers.cancel(_SAVE_KEY)
        if self._cache_store is None:
            return None
        try:
            path = self._cache_store.save(self.snapshot())
        except OSError as exc:
            LOGGER.warning("SessionStore.save_now: failed to write session: %s", exc)
            return None
        LOGGER.debug("SessionStore.save_now: wrote %s", path)
        self._bus.publish(SessionSaved(path=str(path)))
        return path

    def flush(self) -> Path | None:
        """Write now if a save is pending, e.g. on shutdown."""

        if not self.save_pending:
            return None
        return self.save_now()

    def process_timers(self) -> int:
        """Write a save that fell due while no event loop was driving time."""

        return self._timers.run_due()

    def _on_save_timer(self, _key: str) -> None:
        self.save_now()

    def _on_store_changed(self, _key: str) -> None:
        self.schedule_save()


__all__ = ["SessionStore", "SESSION_SAVE_DELAY"]
