"""
schemas.py – normalized request/response models shared by every provider.

The multi-part message shape follows the OpenAI chat format so the cloud
backend can receive it unchanged; the self-hosted provider adapts it
(see services/messages.py).
"""
from __future__ import annotations

import base64
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant", "system"]


# ──────────────────────────────────────────────────────────────────────────────
# Content parts
# ──────────────────────────────────────────────────────────────────────────────

class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageURL(BaseModel):
    url: str


class ImagePart(BaseModel):
    """Inline image carried as a ``data:<mime>;base64,<data>`` URL."""

    type: Literal["image_url"] = "image_url"
    image_url: ImageURL

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> "ImagePart":
        encoded = base64.b64encode(raw).decode("ascii")
        return cls(image_url=ImageURL(url=f"data:{mime_type};base64,{encoded}"))

    @property
    def data(self) -> str:
        """Raw base64 payload with any ``data:...,`` prefix removed."""
        url = self.image_url.url
        return url[url.find(",") + 1:]

    @property
    def mime_type(self) -> Optional[str]:
        url = self.image_url.url
        if not url.startswith("data:") or "," not in url:
            return None
        header = url[len("data:"):url.find(",")]
        return header.split(";", 1)[0] or None


ContentPart = Union[TextPart, ImagePart]


class Message(BaseModel):
    role: Role
    content: Union[str, list[ContentPart]]


# ──────────────────────────────────────────────────────────────────────────────
# Requests / responses
# ──────────────────────────────────────────────────────────────────────────────

class NormalizedRequest(BaseModel):
    """Provider-independent chat request. Treated as immutable by providers."""

    model_config = ConfigDict(frozen=True)

    model: str
    messages: list[Message] = Field(..., min_length=1)
    temperature: float = 0.7
    max_tokens: int = 4000
    think: bool = False
    stream: bool = False


class ModelDescriptor(BaseModel):
    id: str
    name: str


class Credentials(BaseModel):
    """Per-request credential overrides; both optional."""

    model_config = ConfigDict(protected_namespaces=())

    api_key: Optional[str] = None
    model_url: Optional[str] = None
