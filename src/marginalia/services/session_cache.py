"""Persistence helpers for the per-file session document."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .settings import settings_dir

__all__ = ["SessionSnapshot", "SessionCacheStore"]

LOGGER = logging.getLogger(__name__)
_SESSION_FILENAME = "session.json"
_SESSION_VERSION = 1


def _default_session_path() -> Path:
    return settings_dir() / _SESSION_FILENAME


@dataclass(slots=True)
class SessionSnapshot:
    """Everything restored at startup: annotations, chats and view state."""

    active_file_path: str | None = None
    annotations_by_file: dict[str, Any] = field(default_factory=dict)
    chat: dict[str, Any] = field(default_factory=dict)
    scroll_positions: dict[str, float] = field(default_factory=dict)


class SessionCacheStore:
    """JSON persistence adapter for :class:`SessionSnapshot`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _default_session_path()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SessionSnapshot:
        payload = self._read_payload()
        active = payload.get("active_file_path", payload.get("activeFilePath"))
        chat: dict[str, Any] = {}
        for key in (
            "chat_sessions_by_file",
            "active_session_id_by_file",
            "chat_history_by_file",
            "chatSessionsByFile",
            "activeSessionIdByFile",
            "chatHistoryByFile",
        ):
            if isinstance(payload.get(key), Mapping):
                chat[key] = payload[key]
        return SessionSnapshot(
            active_file_path=active if isinstance(active, str) else None,
            annotations_by_file=_coerce_mapping(payload.get("annotations_by_file", payload.get("annotationsByFile"))),
            chat=chat,
            scroll_positions=_coerce_scroll_positions(payload.get("scroll_positions", payload.get("scrollPositions"))),
        )

    def save(self, snapshot: SessionSnapshot) -> Path:
        payload: dict[str, Any] = {
            "version": _SESSION_VERSION,
            "active_file_path": snapshot.active_file_path,
            "annotations_by_file": snapshot.annotations_by_file,
            "scroll_positions": snapshot.scroll_positions,
        }
        payload.update(snapshot.chat)
        body = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        return self._path

    def _read_payload(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Session file %s is not valid JSON: %s", self._path, exc)
            return {}
        return dict(data) if isinstance(data, Mapping) else {}


def _coerce_mapping(value: Any) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        return {}
    return {str(key): entry for key, entry in value.items() if isinstance(entry, Mapping)}


def _coerce_scroll_positions(value: Any) -> dict[str, float]:
    if not isinstance(value, Mapping):
        return {}
    result: dict[str, float] = {}
    for key, entry in value.items():
        try:
            result[str(key)] = float(entry)
        except (TypeError, ValueError):
            continue
    return result
