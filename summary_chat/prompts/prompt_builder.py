# summary_chat/prompts/prompt_builder.py

from typing import Dict, Iterable, List, Optional

from summary_chat.db.models import ContentKind, Message, SenderType
from summary_chat.prompts.system_prompts import (
    RETRIEVED_CONTEXT_HEADER,
    SUMMARY_CHAT_SYSTEM_PROMPT,
)

_KIND_LABELS = {
    ContentKind.TEXT: "text",
    ContentKind.PDF: "PDF",
    ContentKind.LINK: "web page",
}


def _source_label(message: Message) -> str:

    label = _KIND_LABELS.get(message.content_type, "text")

    if message.content_type == ContentKind.LINK and message.link_url:
        return f"{label} from {message.link_url}"

    if message.content_type == ContentKind.PDF and message.file_name:
        return f"{label} \"{message.file_name}\""

    return label


def format_message_content(message: Message) -> str:
    """
    Render one persisted message the way the model should see it.

    Full-content primaries and truncated excerpts are labelled so the
    model knows whether it holds the whole source.
    """

    if message.sender_type == SenderType.ASSISTANT:
        return message.content

    if message.has_full_content:
        return (
            f"[Complete {_source_label(message)} content. "
            f"This is the full original text to summarize or answer from.]\n\n"
            f"{message.content}"
        )

    if message.is_truncated:
        return (
            f"[Truncated {_source_label(message)} excerpt. Only the beginning is shown; "
            f"relevant detail from the rest of the document is retrieved for follow-up questions.]\n\n"
            f"{message.content}"
        )

    if message.content_type == ContentKind.PDF:
        return f"PDF content:\n{message.content}"

    if message.content_type == ContentKind.LINK:
        return f"Web page content from {message.link_url}:\n{message.content}"

    return message.content


def format_turn(message: Message) -> Dict[str, str]:

    role = "assistant" if message.sender_type == SenderType.ASSISTANT else "user"

    return {"role": role, "content": format_message_content(message)}


def append_retrieved_context(content: str, context: str) -> str:

    return f"{content}\n\n{RETRIEVED_CONTEXT_HEADER}\n{context}"


def build_system_prompt(notes: Optional[Iterable[str]] = None) -> str:

    parts: List[str] = [SUMMARY_CHAT_SYSTEM_PROMPT.strip()]

    for note in notes or []:
        parts.append(note.strip())

    return "\n\n".join(parts)
