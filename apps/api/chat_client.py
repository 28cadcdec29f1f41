from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any, AsyncIterator, Protocol

import httpx

from core.config import Settings


class ChatClient(Protocol):
    async def chat_completions(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    def stream_chat_text(self, payload: dict[str, Any]) -> AsyncIterator[str]: ...


def completion_text(data: dict[str, Any]) -> str:
    """Pull the assistant text out of an OpenAI-shaped completion."""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    c0 = choices[0] or {}
    msg = c0.get("message") if isinstance(c0, dict) else None
    if isinstance(msg, dict) and isinstance(msg.get("content"), str):
        return msg["content"]
    # Some providers return "text" at choice-level.
    if isinstance(c0, dict) and isinstance(c0.get("text"), str):
        return c0["text"]
    return ""


def _delta_text(event: dict[str, Any]) -> str:
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    c0 = choices[0] or {}
    delta = c0.get("delta") if isinstance(c0, dict) else None
    if isinstance(delta, dict) and isinstance(delta.get("content"), str):
        return delta["content"]
    return ""


@dataclass(frozen=True)
class OpenAICompatChatClient:
    base_url: str
    api_key: str | None = None
    timeout_s: float = 120.0
    transport: httpx.AsyncBaseTransport | None = None

    def _headers(self) -> dict[str, str] | None:
        if not self.api_key:
            return None
        return {"Authorization": f"Bearer {self.api_key}"}

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=timeout,
            transport=self.transport,
        )

    async def chat_completions(self, payload: dict[str, Any]) -> dict[str, Any]:
        body = {**payload, "stream": False}
        async with self._client(httpx.Timeout(self.timeout_s, connect=5.0)) as client:
            r = await client.post("/chat/completions", json=body)
            r.raise_for_status()
            return r.json()

    async def stream_chat_text(self, payload: dict[str, Any]) -> AsyncIterator[str]:
        body = {**payload, "stream": True}
        async with self._client(httpx.Timeout(None, connect=5.0)) as client:
            async with client.stream("POST", "/chat/completions", json=body) as r:
                r.raise_for_status()
                async for line in r.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        continue
                    text = _delta_text(event)
                    if text:
                        yield text


def build_chat_client(settings: Settings) -> ChatClient:
    return OpenAICompatChatClient(
        settings.chat_base_url,
        api_key=settings.chat_api_key,
        timeout_s=settings.chat_timeout_s,
    )
