"""Prompt templates for chat and analysis requests.

Every request carries the whole document in the system prompt together with
instructions for the active mode. Analysis modes ask the model to quote the
document verbatim in a fixed ``LABEL: "quote"`` layout so the quote extractor
can locate the passages afterwards.
"""

from __future__ import annotations

from pathlib import PurePath
from typing import Any, Iterable, Mapping, Sequence

from ..annotations.models import Annotation
from ..chat.message_model import Attachment, ChatMessage

HISTORY_WINDOW = 10
CHAT_MODE = "chat"

_MODE_INSTRUCTIONS: Mapping[str, str] = {
    CHAT_MODE: (
        "Answer questions about the document, its characters, plot or craft. "
        "Be specific and cite passages where relevant."
    ),
    "passive_voice": """Identify ALL instances of passive voice in this document.

For each instance, respond in this exact format:
PASSIVE: "[exact quoted sentence]"
WHY: [brief explanation]
SUGGESTION: "[rewritten in active voice]"

List every instance you find, then give a brief overall summary.""",
    "consistency": """Check this document carefully for consistency issues:
- Character names spelled or used inconsistently
- Timeline contradictions or impossibilities
- Repeated words or phrases appearing too close together
- Setting details that seem contradictory
- Character behaviour inconsistent with their established personality

For each issue found:
ISSUE: [type of issue]
PASSAGE: "[exact quoted text]"
PROBLEM: [explanation]
SUGGESTION: [how to fix it]""",
    "style": """Analyze the writing style and provide specific improvement suggestions:
- Pacing: identify slow passages or rushed moments
- Sentence variety: flag runs of similar length or structure
- Show don't tell: identify passages that tell emotion or state rather than showing it
- Tone: passages where the atmosphere is inconsistent
- Dialogue: any dialogue that feels stilted or unnatural

For each suggestion:
ISSUE: [type: Pacing / Sentence Variety / Show-Don't-Tell / Tone / Dialogue]
PASSAGE: "[exact quoted text]"
PROBLEM: [specific explanation]
SUGGESTION: [concrete rewrite or approach]""",
    "critique": """Give an honest, detailed critique of this document as a whole. Structure your response as follows:

**Overall impression** (2-3 sentences on what the document achieves and its most significant weakness)

**What works well**
Identify 2-4 specific strengths. Quote the passage and explain why it works.

STRENGTH: "[exact quoted passage]"
WHY: [explanation]

**What needs work**
Identify 2-4 areas where the document falls short. Be direct.

ISSUE: "[exact quoted passage]"
PROBLEM: [explanation]
SUGGESTION: [concrete direction]

**One priority**
Name the single most important thing to fix in a revision.""",
}

_ANALYSIS_REQUESTS: Mapping[str, str] = {
    "passive_voice": "Please find every use of passive voice in this document.",
    "consistency": "Please check this document for consistency issues (character names, timeline, repeated phrases).",
    "style": "Please analyze the style and pacing of this document and suggest improvements.",
    "critique": "Please give me an honest critique of this document.",
}


def supported_modes() -> tuple[str, ...]:
    return tuple(_MODE_INSTRUCTIONS)


def document_title(path: str | None) -> str:
    if not path:
        return "Untitled document"
    return PurePath(path).stem or "Untitled document"


def system_prompt(mode: str, document_text: str, document_path: str | None = None) -> str:
    """Return the system prompt for ``mode`` with the document inlined."""

    instructions = _MODE_INSTRUCTIONS.get(mode)
    if instructions is None:
        raise ValueError(f"Unsupported AI mode {mode!r}")
    context = (
        "You are a literary editor assistant helping a writer revise their work. "
        f'The current document is: "{document_title(document_path)}".\n\n'
        "The document text is provided below. When identifying specific passages, quote the EXACT "
        "text from the document so it can be located and highlighted in the editor.\n\n"
        f"--- DOCUMENT ---\n{document_text}\n--- END DOCUMENT ---"
    )
    return f"{context}\n\n{instructions}"


def analysis_request(mode: str) -> str:
    """User-facing request text recorded in chat when an analysis runs."""

    try:
        return _ANALYSIS_REQUESTS[mode]
    except KeyError:
        raise ValueError(f"No analysis request for mode {mode!r}") from None


def explain_request(annotation: Annotation) -> str:
    return (
        f'Explain the issue with this passage: "{annotation.matched_text}"\n'
        f"The flag raised was: {annotation.message}\n"
        "Keep it short. If a rewrite would help, end with a line in the form "
        'SUGGESTION: "[rewritten passage]".'
    )


def history_messages(history: Sequence[ChatMessage], window: int = HISTORY_WINDOW) -> list[dict[str, Any]]:
    """Return the last ``window`` messages as provider role/content pairs.

    Empty assistant placeholders are skipped.
    """

    recent = history[-window:] if window > 0 else []
    return [
        {"role": message.role, "content": message.content}
        for message in recent
        if message.content or message.role == "user"
    ]


def user_content(text: str, attachments: Iterable[Attachment] = ()) -> str | list[dict[str, Any]]:
    """Build the user turn, inlining text attachments and adding images as data URLs."""

    items = list(attachments)
    if not items:
        return text
    inline = [text]
    images: list[dict[str, Any]] = []
    for attachment in items:
        if attachment.is_image:
            images.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{attachment.mime_type};base64,{attachment.data}"},
                }
            )
        else:
            inline.append(f"--- ATTACHMENT: {attachment.name} ---\n{attachment.data}\n--- END ATTACHMENT ---")
    body = "\n\n".join(inline)
    if not images:
        return body
    return [{"type": "text", "text": body}, *images]


def build_messages(
    *,
    mode: str,
    document_text: str,
    document_path: str | None,
    history: Sequence[ChatMessage],
    user_message: str,
    attachments: Iterable[Attachment] = (),
    history_window: int = HISTORY_WINDOW,
) -> list[dict[str, Any]]:
    """Assemble the provider payload for one request."""

    return [
        {"role": "system", "content": system_prompt(mode, document_text, document_path)},
        *history_messages(history, history_window),
        {"role": "user", "content": user_content(user_message, attachments)},
    ]


__all__ = [
    "CHAT_MODE",
    "HISTORY_WINDOW",
    "analysis_request",
    "build_messages",
    "document_title",
    "explain_request",
    "history_messages",
    "supported_modes",
    "system_prompt",
    "user_content",
]
