"""Chat message, attachment and session data models."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Mapping, Optional

ChatRole = Literal["user", "assistant"]


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True, frozen=True)
class AttachmentMeta:
    """Attachment description kept in chat history (no payload)."""

    name: str
    mime_type: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "mime_type": self.mime_type}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> AttachmentMeta:
        return cls(
            name=str(payload.get("name", "")),
            mime_type=str(payload.get("mime_type", payload.get("mimeType", "text/plain"))),
        )


@dataclass(slots=True, frozen=True)
class Attachment(AttachmentMeta):
    """Attachment sent with one request.

    ``data`` is extracted text for text documents and base64 for images. It is
    never persisted; history stores :class:`AttachmentMeta` only.
    """

    data: str = ""

    def meta(self) -> AttachmentMeta:
        return AttachmentMeta(self.name, self.mime_type)


@dataclass(slots=True)
class ChatMessage:
    """Represents a row inside the chat history list."""

    role: ChatRole
    content: str
    id: str = field(default_factory=lambda: _new_id("msg"))
    attachments: list[AttachmentMeta] = field(default_factory=list)
    annotation_ids: Optional[list[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        payload: Dict[str, Any] = {"id": self.id, "role": self.role, "content": self.content}
        if self.attachments:
            payload["attachments"] = [attachment.to_dict() for attachment in self.attachments]
        if self.annotation_ids is not None:
            payload["annotation_ids"] = list(self.annotation_ids)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ChatMessage:
        role = payload.get("role")
        annotation_ids = payload.get("annotation_ids", payload.get("annotationIds"))
        return cls(
            role="assistant" if role == "assistant" else "user",
            content=str(payload.get("content") or ""),
            id=str(payload.get("id") or _new_id("msg")),
            attachments=[
                AttachmentMeta.from_dict(item) for item in payload.get("attachments") or () if isinstance(item, Mapping)
            ],
            annotation_ids=[str(item) for item in annotation_ids] if annotation_ids is not None else None,
        )


@dataclass(slots=True)
class ChatSession:
    """One conversation thread about a file."""

    id: str = field(default_factory=lambda: _new_id("session"))
    created_at: int = field(default_factory=_now_ms)
    messages: list[ChatMessage] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "messages": [message.to_dict() for message in self.messages],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ChatSession:
        return cls(
            id=str(payload.get("id") or _new_id("session")),
            created_at=int(payload.get("created_at", payload.get("createdAt", 0)) or 0),
            messages=[ChatMessage.from_dict(item) for item in payload.get("messages") or () if isinstance(item, Mapping)],
        )


__all__ = ["Attachment", "AttachmentMeta", "ChatMessage", "ChatRole", "ChatSession"]
