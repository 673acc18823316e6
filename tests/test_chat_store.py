"""Tests for chat sessions and the chat store."""

from __future__ import annotations

from marginalia.chat.message_model import Attachment, AttachmentMeta, ChatMessage, ChatSession
from marginalia.ui.domain.chat_store import ChatStore


def test_first_message_creates_session() -> None:
    store = ChatStore()
    assert store.active_session("doc") is None
    message = store.add_user_message("doc", "Is the opening slow?")
    session = store.active_session("doc")
    assert session is not None
    assert session.id.startswith("session-")
    assert message.id.startswith("msg-")
    assert store.history("doc") == [message]


def test_attachments_are_stored_without_payload() -> None:
    store = ChatStore()
    attachment = Attachment("notes.txt", "text/plain", data="secret body")
    message = store.add_user_message("doc", "See attached", [attachment])
    assert message.attachments == [AttachmentMeta("notes.txt", "text/plain")]
    assert "data" not in message.to_dict()["attachments"][0]


def test_assistant_streaming_appends_to_the_reply() -> None:
    store = ChatStore()
    question = store.add_user_message("doc", "hello")
    reply = store.start_assistant_message("doc")
    store.append_to_message("doc", reply.id, "Hi ")
    store.append_to_message("doc", reply.id, "there")
    assert store.history("doc")[-1].content == "Hi there"
    assert not store.append_to_message("doc", question.id, "!")
    assert not store.append_to_message("other", reply.id, "!")


def test_new_session_becomes_active_and_old_ones_are_kept() -> None:
    store = ChatStore()
    store.add_user_message("doc", "first")
    first = store.active_session("doc")
    second = store.new_session("doc")
    assert store.active_session("doc") is second
    assert store.history("doc") == []
    assert store.set_active_session("doc", first.id)
    assert store.history("doc")[0].content == "first"
    assert not store.set_active_session("doc", "session-missing")


def test_link_annotations_is_set_once() -> None:
    store = ChatStore()
    message = store.start_assistant_message("doc")
    assert store.link_annotations("doc", message.id, ["ai-1", "ai-2"])
    assert not store.link_annotations("doc", message.id, ["ai-3"])
    assert message.annotation_ids == ["ai-1", "ai-2"]
    assert not store.link_annotations("doc", "msg-missing", [])


def test_empty_link_is_still_recorded() -> None:
    store = ChatStore()
    message = store.start_assistant_message("doc")
    assert store.link_annotations("doc", message.id, [])
    assert message.to_dict()["annotation_ids"] == []


def test_listeners_hear_mutations() -> None:
    store = ChatStore()
    changed: list[str] = []
    store.add_change_listener(changed.append)
    store.add_user_message("doc", "hi")
    store.touch("doc")
    assert changed == ["doc", "doc", "doc"]


def test_round_trip_through_dict() -> None:
    store = ChatStore()
    store.add_user_message("doc", "question", [AttachmentMeta("pic.png", "image/png")])
    reply = store.start_assistant_message("doc")
    store.append_to_message("doc", reply.id, "answer")
    store.link_annotations("doc", reply.id, ["ai-9"])

    restored = ChatStore()
    restored.load(store.to_dict())
    assert restored.active_session("doc").id == store.active_session("doc").id
    history = restored.history("doc")
    assert [message.role for message in history] == ["user", "assistant"]
    assert history[0].attachments[0].is_image
    assert history[1].annotation_ids == ["ai-9"]


def test_legacy_flat_history_is_migrated() -> None:
    store = ChatStore()
    store.load(
        {
            "chatHistoryByFile": {
                "/tmp/a.md": [
                    {"role": "user", "content": "hi"},
                    {"role": "assistant", "content": "hello", "annotationIds": ["ai-1"]},
                ],
                "/tmp/empty.md": [],
            }
        }
    )
    session = store.active_session("/tmp/a.md")
    assert session is not None
    assert [message.content for message in session.messages] == ["hi", "hello"]
    assert session.messages[1].annotation_ids == ["ai-1"]
    assert store.active_session("/tmp/empty.md") is None


def test_message_from_dict_defaults() -> None:
    message = ChatMessage.from_dict({"role": "system", "content": None})
    assert message.role == "user"
    assert message.content == ""
    assert message.annotation_ids is None
    assert ChatSession.from_dict({}).messages == []
