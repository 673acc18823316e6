"""Chat store domain service.

Keeps the chat sessions of every file and which one is active. Messages
produced by an analysis are linked to the annotations they created so the
chat panel can re-associate them later.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from ...chat.message_model import AttachmentMeta, ChatMessage, ChatSession

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


class ChatStore:
    """Domain store for per-file chat sessions."""

    def __init__(self) -> None:
        self._sessions: dict[str, list[ChatSession]] = {}
        self._active_ids: dict[str, str] = {}
        self._listeners: list[ChangeListener] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def sessions(self, key: str) -> list[ChatSession]:
        return list(self._sessions.get(key, ()))

    def active_session(self, key: str) -> ChatSession | None:
        """Return the active session for ``key``, falling back to the newest one."""
        sessions = self._sessions.get(key) or []
        if not sessions:
            return None
        active_id = self._active_ids.get(key)
        for session in sessions:
            if session.id == active_id:
                return session
        return sessions[-1]

    def history(self, key: str) -> list[ChatMessage]:
        session = self.active_session(key)
        return list(session.messages) if session is not None else []

    def find_message(self, key: str, message_id: str) -> ChatMessage | None:
        for session in self._sessions.get(key, ()):
            for message in session.messages:
                if message.id == message_id:
                    return message
        return None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def ensure_session(self, key: str) -> ChatSession:
        session = self.active_session(key)
        if session is None:
            session = self.new_session(key)
        return session

    def new_session(self, key: str) -> ChatSession:
        session = ChatSession()
        self._sessions.setdefault(key, []).append(session)
        self._active_ids[key] = session.id
        LOGGER.debug("ChatStore.new_session: %s -> %s", key, session.id)
        self._notify(key)
        return session

    def set_active_session(self, key: str, session_id: str) -> bool:
        if not any(session.id == session_id for session in self._sessions.get(key, ())):
            LOGGER.debug("ChatStore.set_active_session: unknown session %s for %s", session_id, key)
            return False
        self._active_ids[key] = session_id
        self._notify(key)
        return True

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_user_message(
        self,
        key: str,
        text: str,
        attachments: Iterable[AttachmentMeta] | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            role="user",
            content=text,
            attachments=[AttachmentMeta(item.name, item.mime_type) for item in attachments or ()],
        )
        self.ensure_session(key).messages.append(message)
        self._notify(key)
        return message

    def start_assistant_message(self, key: str) -> ChatMessage:
        message = ChatMessage(role="assistant", content="")
        self.ensure_session(key).messages.append(message)
        return message

    def append_to_message(self, key: str, message_id: str, chunk: str) -> bool:
        """Stream ``chunk`` onto the assistant message ``message_id``."""

        message = self.find_message(key, message_id)
        if message is None or message.role != "assistant":
            return False
        message.content += chunk
        return True

    def link_annotations(self, key: str, message_id: str, annotation_ids: Iterable[str]) -> bool:
        """Attach ``annotation_ids`` to a message; a link is only ever set once."""

        message = self.find_message(key, message_id)
        if message is None or message.annotation_ids is not None:
            return False
        message.annotation_ids = list(annotation_ids)
        self._notify(key)
        return True

    def touch(self, key: str) -> None:
        """Signal that streamed content for ``key`` finished and should be persisted."""
        self._notify(key)

    # ------------------------------------------------------------------
    # Listeners & serialization
    # ------------------------------------------------------------------

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, key: str) -> None:
        for listener in list(self._listeners):
            listener(key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chat_sessions_by_file": {
                key: [session.to_dict() for session in sessions] for key, sessions in self._sessions.items()
            },
            "active_session_id_by_file": dict(self._active_ids),
        }

    def load(self, payload: Mapping[str, Any] | None) -> None:
        """Restore sessions, migrating the older flat ``chat_history_by_file`` layout."""

        payload = payload or {}
        sessions_payload = payload.get("chat_sessions_by_file", payload.get("chatSessionsByFile"))
        sessions: dict[str, list[ChatSession]] = {}
        active_ids: dict[str, str] = {}
        if isinstance(sessions_payload, Mapping):
            for key, raw_sessions in sessions_payload.items():
                if isinstance(raw_sessions, list):
                    sessions[str(key)] = [ChatSession.from_dict(item) for item in raw_sessions if isinstance(item, Mapping)]
            raw_active = payload.get("active_session_id_by_file", payload.get("activeSessionIdByFile")) or {}
            if isinstance(raw_active, Mapping):
                active_ids = {str(key): str(value) for key, value in raw_active.items()}
        else:
            legacy = payload.get("chat_history_by_file", payload.get("chatHistoryByFile"))
            if isinstance(legacy, Mapping):
                for key, messages in legacy.items():
                    if not isinstance(messages, list) or not messages:
                        continue
                    session = ChatSession(
                        messages=[ChatMessage.from_dict(item) for item in messages if isinstance(item, Mapping)]
                    )
                    sessions[str(key)] = [session]
                    active_ids[str(key)] = session.id
                LOGGER.debug("ChatStore.load: migrated %d legacy chat history file(s)", len(sessions))
        self._sessions = sessions
        self._active_ids = active_ids


__all__ = ["ChatStore"]
