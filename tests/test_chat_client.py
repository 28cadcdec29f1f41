from __future__ import annotations

import json

import httpx
import pytest

from apps.api.chat_client import OpenAICompatChatClient, build_chat_client, completion_text


def _sse(*events: str) -> bytes:
    return "".join(f"data: {e}\n\n" for e in events).encode("utf-8")


class TestCompletionText:
    def test_message_content(self):
        assert completion_text({"choices": [{"message": {"content": "hi"}}]}) == "hi"

    def test_choice_level_text(self):
        assert completion_text({"choices": [{"text": "legacy"}]}) == "legacy"

    @pytest.mark.parametrize("data", [{}, {"choices": []}, {"choices": [None]}, {"choices": [{"message": {}}]}])
    def test_missing_content(self, data):
        assert completion_text(data) == ""


class TestOpenAICompatChatClient:
    @pytest.mark.asyncio
    async def test_chat_completions_posts_payload_with_bearer(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

        client = OpenAICompatChatClient("http://llm.test/v1", api_key="k", transport=httpx.MockTransport(handler))
        data = await client.chat_completions({"model": "m", "messages": [{"role": "user", "content": "q"}]})

        assert completion_text(data) == "ok"
        assert seen["url"] == "http://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer k"
        assert seen["body"]["stream"] is False
        assert seen["body"]["model"] == "m"

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"choices": []})

        client = OpenAICompatChatClient("http://llm.test/v1", transport=httpx.MockTransport(handler))
        await client.chat_completions({"model": "m", "messages": []})
        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        client = OpenAICompatChatClient(
            "http://llm.test/v1",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "boom"})),
        )
        with pytest.raises(httpx.HTTPStatusError):
            await client.chat_completions({"model": "m", "messages": []})

    @pytest.mark.asyncio
    async def test_stream_yields_text_deltas(self):
        body = _sse(
            json.dumps({"choices": [{"delta": {"role": "assistant"}}]}),
            json.dumps({"choices": [{"delta": {"content": "Hello"}}]}),
            ": keep-alive",
            json.dumps({"choices": [{"delta": {"content": " world"}}]}),
            "[DONE]",
            json.dumps({"choices": [{"delta": {"content": "ignored"}}]}),
        )
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        client = OpenAICompatChatClient("http://llm.test/v1", transport=httpx.MockTransport(handler))
        parts = [part async for part in client.stream_chat_text({"model": "m", "messages": []})]

        assert parts == ["Hello", " world"]
        assert seen["body"]["stream"] is True


def test_build_chat_client_uses_settings(settings):
    client = build_chat_client(settings)
    assert isinstance(client, OpenAICompatChatClient)
    assert client.base_url == "http://llm.test/v1"
    assert client.api_key == "test-key"
    assert client.timeout_s == 5.0
