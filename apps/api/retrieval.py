from __future__ import annotations

from typing import Any, Sequence

from apps.ingest.store import StoredChunk, StoredMessage

from .models import ChatMessage


FIRST_TURN_INSTRUCTIONS = """You are a helpful AI assistant that answers questions based on the provided PDF document.

PDF Content:
{context}

Instructions:
- Answer questions based only on the provided PDF content
- If information is not in the PDF, clearly state that
- If the user asks for related information not covered by the PDF, give a brief answer from your knowledge and clearly say it is not mentioned in the PDF
- Remember this PDF content for our entire conversation
- Format your response as:
- Answer: [your response]
- Page number: [page X]"""

FOLLOW_UP_INSTRUCTIONS = (
    "Continue our conversation about the PDF document. Answer questions based on the PDF content "
    "provided earlier in this conversation. If you need to reference specific information, refer back "
    "to the PDF content from our conversation history."
)


def build_context(chunks: Sequence[StoredChunk], *, max_chunks: int) -> str:
    """Render the leading chunks as `[Chunk i - Page p]: content` blocks."""
    parts: list[str] = []
    for i, chunk in enumerate(chunks[:max_chunks], start=1):
        parts.append(f"[Chunk {i} - Page {chunk.page_number}]: {chunk.content}")
    return "\n\n".join(parts)


def clean_messages(messages: Sequence[ChatMessage]) -> list[dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages if m.content.strip()]


def build_chat_messages(
    *,
    new_messages: list[dict[str, str]],
    history: Sequence[StoredMessage],
    chunks: Sequence[StoredChunk],
    max_chunks: int,
    first_turn: bool,
) -> list[dict[str, Any]]:
    """Assemble the upstream message list.

    The document context rides along until the assistant has answered once; after that
    the conversation history carries it.
    """
    if first_turn:
        system = FIRST_TURN_INSTRUCTIONS.format(context=build_context(chunks, max_chunks=max_chunks))
    else:
        system = FOLLOW_UP_INSTRUCTIONS
    return [
        {"role": "system", "content": system},
        *({"role": m.role, "content": m.content} for m in history),
        *new_messages,
    ]
