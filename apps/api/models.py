from __future__ import annotations

from datetime import datetime
from typing import Literal
import uuid

from pydantic import BaseModel, Field


class DocumentUploadResponse(BaseModel):
    id: uuid.UUID
    filename: str
    page_count: int
    chunk_count: int
    url: str


class DocumentInfo(BaseModel):
    id: uuid.UUID
    filename: str
    mime_type: str
    size_bytes: int
    page_count: int
    created_at: datetime
    url: str


class ChunkOut(BaseModel):
    ordinal: int
    page_number: int
    start_index: int
    end_index: int
    content: str


class ChunkListResponse(BaseModel):
    document_id: uuid.UUID
    chunks: list[ChunkOut]


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str = ""


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list, description="Conversation turns, newest last")
    stream: bool = False
    temperature: float | None = None
    max_tokens: int | None = None


class ChatResponse(BaseModel):
    document_id: uuid.UUID
    answer: str


class StoredMessageOut(BaseModel):
    id: uuid.UUID
    role: str
    content: str
    created_at: datetime


class MessageListResponse(BaseModel):
    document_id: uuid.UUID
    messages: list[StoredMessageOut]
