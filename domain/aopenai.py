"""Minimal async client for OpenAI-compatible chat completions over httpx.

Used for locally served models (LM Studio, llama.cpp server, ...), which speak
the same wire format as the hosted API but need no SDK or credentials.
"""

import base64
from enum import Enum
from typing import Any, Protocol, Self

import httpx

from domain.errors import ModelError


LOCAL_BASE_URL = "http://localhost:1234/v1/"
TIMEOUT = 60 * 2


def local_client_factory(base_url: str = LOCAL_BASE_URL) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        headers={"Content-Type": "application/json"},
        timeout=TIMEOUT,
    )


def image_mime_type(image_bytes: bytes) -> str:
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    return "image/jpeg"


class Content(Protocol):
    def to_dict(self) -> dict[str, Any]:
        ...


class ContentType(Enum):
    text = "text"
    image_url = "image_url"


class TextContent:
    type = ContentType.text

    def __init__(self, text: str) -> None:
        self.text = text

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "text": self.text}


class ImgContent:
    type = ContentType.image_url

    @classmethod
    def from_bytes(cls, image_bytes: bytes) -> Self:
        b64 = base64.b64encode(image_bytes).decode("utf-8")
        return cls(url=f"data:{image_mime_type(image_bytes)};base64,{b64}")

    def __init__(self, url: str) -> None:
        self.url = url

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "image_url": {"url": self.url}}


class ChatMsg:
    def __init__(self, *, role: str, content: str | list[Content]) -> None:
        self.role = role
        self.content = content

    def to_dict(self) -> dict[str, Any]:
        content = (
            self.content
            if isinstance(self.content, str)
            else [c.to_dict() for c in self.content]
        )
        return {"role": self.role, "content": content}


class Chat:
    """A single-shot chat completion. No conversation state is kept."""

    def __init__(
        self,
        *,
        model: str,
        client: httpx.AsyncClient,
        temperature: float = 1,
        max_tokens: int = 1024,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    def payload(self, messages: list[ChatMsg]) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def chat(self, msg: ChatMsg) -> str:
        try:
            resp = await self._client.post("chat/completions", json=self.payload([msg]))
        except httpx.HTTPError as e:
            raise ModelError(f"Failed to send request. {e!r}") from e

        if resp.status_code != httpx.codes.OK:
            raise ModelError(f"Received non-OK status code: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise ModelError("Failed to decode response body.") from e

        if not isinstance(data, dict):
            raise ModelError("Response body is not a JSON object.")

        if "error" in data:
            raise ModelError(f"Problem creating completion. {data['error']}")

        choices = data.get("choices") or []
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise ModelError("No content found in response.")

        message = choices[0].get("message")
        if not isinstance(message, dict):
            raise ModelError("No message found in response.")

        content = message.get("content")
        if not isinstance(content, str):
            raise ModelError("Non-string response content not supported.")
        return content
