"""Cache of per-annotation AI explanations shown on hover."""

from __future__ import annotations

import time
from threading import Lock


class AnalysisCache:
    """Explanation text keyed by annotation id, with an optional TTL."""

    def __init__(self, ttl_seconds: float | None = None) -> None:
        self._ttl = None if ttl_seconds is None else max(1.0, float(ttl_seconds))
        self._entries: dict[str, tuple[float | None, str]] = {}
        self._lock = Lock()

    @property
    def ttl_seconds(self) -> float | None:
        return self._ttl

    def __contains__(self, annotation_id: object) -> bool:
        return isinstance(annotation_id, str) and self.get(annotation_id) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, annotation_id: str) -> str | None:
        now = time.monotonic()
        with self._lock:
            payload = self._entries.get(annotation_id)
            if not payload:
                return None
            expires_at, text = payload
            if expires_at is not None and now > expires_at:
                del self._entries[annotation_id]
                return None
            return text

    def set(self, annotation_id: str, text: str) -> None:
        expires_at = None if self._ttl is None else time.monotonic() + self._ttl
        with self._lock:
            self._entries[annotation_id] = (expires_at, text)

    def invalidate(self, annotation_id: str) -> None:
        with self._lock:
            self._entries.pop(annotation_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["AnalysisCache"]
