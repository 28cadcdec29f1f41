"""
Shared fixtures: settings, an in-memory database, fake PDF extraction and a fake chat client.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

import pytest

from apps.ingest.pdf_extract import PdfPageText
from core.config import Settings
from core.db import Db
from core.schema import ensure_schema


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        chat_base_url="http://llm.test/v1",
        chat_api_key="test-key",
        chat_model="test-model",
        chat_timeout_s=5.0,
        chunk_size=1000,
        chunk_overlap=200,
        context_max_chunks=10,
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def db() -> Db:
    database = Db("sqlite://")
    ensure_schema(database)
    yield database
    database.dispose()


@pytest.fixture
def fake_pages(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Replace PDF extraction with whatever page texts the test puts in the returned list."""
    pages: list[str] = ["Page one text.", "", "Page three text."]

    def _extract(data: bytes) -> list[PdfPageText]:
        return [PdfPageText(page=i + 1, text=text) for i, text in enumerate(pages)]

    monkeypatch.setattr("apps.ingest.pipeline.extract_pdf_text_pages", _extract)
    return pages


class FakeChatClient:
    def __init__(self, answer: str = "Answer: it is about testing.\nPage number: 1") -> None:
        self.answer = answer
        self.payloads: list[dict[str, Any]] = []
        self.fail = False
        # Raise after this many streamed deltas; `fail` raises before the first one.
        self.fail_after: int | None = None

    async def chat_completions(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.payloads.append(payload)
        if self.fail:
            raise RuntimeError("upstream exploded with key=secret")
        return {"choices": [{"message": {"role": "assistant", "content": self.answer}}]}

    async def stream_chat_text(self, payload: dict[str, Any]) -> AsyncIterator[str]:
        self.payloads.append(payload)
        if self.fail:
            raise RuntimeError("provider 401 key=secret")
        for i, word in enumerate(self.answer.split(" ")):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("connection reset mid-stream")
            yield word + " "


@pytest.fixture
def chat_client() -> FakeChatClient:
    return FakeChatClient()
