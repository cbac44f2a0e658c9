"""
messages.py – convert normalized chat messages to Ollama's /api/chat shape.

OpenAI-style multi-part user content (text parts + image_url parts) becomes a
single text ``content`` plus a message-level ``images`` list of raw base64
strings.  An empty ``images`` list is never emitted.
"""
from __future__ import annotations

from typing import Any, Iterable

from ..schemas import ImagePart, Message, TextPart


def adapt_message_for_ollama(message: Message) -> dict[str, Any]:
    if message.role != "user" or isinstance(message.content, str):
        return message.model_dump(mode="json")

    texts: list[str] = []
    images: list[str] = []
    for part in message.content:
        if isinstance(part, TextPart):
            texts.append(part.text)
        elif isinstance(part, ImagePart) and part.image_url.url:
            images.append(part.data)

    content = " ".join(texts).strip()
    if not images:
        return {"role": message.role, "content": content}
    return {"role": message.role, "content": content, "images": images}


def adapt_messages_for_ollama(messages: Iterable[Message]) -> list[dict[str, Any]]:
    """Adapt every message, preserving order."""
    return [adapt_message_for_ollama(m) for m in messages]
