from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Sequence
import uuid

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.chunking import PageChunk
from core.db import Db
from core.db_models import ChatMessage as ChatMessageModel
from core.db_models import Document as DocumentModel
from core.db_models import DocumentChunk as DocumentChunkModel

log = logging.getLogger("pdfchat.store")

MessageRole = Literal["user", "assistant", "system"]

# Concurrent writers can race for the same message ordinal; the unique index decides.
MESSAGE_INSERT_ATTEMPTS = 3


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class StoredDocument:
    id: uuid.UUID
    filename: str
    mime_type: str
    size_bytes: int
    sha256: str
    page_count: int
    created_at: datetime


@dataclass(frozen=True)
class StoredChunk:
    ordinal: int
    page_number: int
    start_index: int
    end_index: int
    content: str


@dataclass(frozen=True)
class StoredMessage:
    id: uuid.UUID
    role: str
    content: str
    created_at: datetime


def _to_document(row: DocumentModel) -> StoredDocument:
    return StoredDocument(
        id=row.id,
        filename=row.filename,
        mime_type=row.mime_type,
        size_bytes=int(row.size_bytes),
        sha256=row.sha256,
        page_count=int(row.page_count),
        created_at=row.created_at,
    )


def _to_chunk(row: DocumentChunkModel) -> StoredChunk:
    return StoredChunk(
        ordinal=int(row.ordinal),
        page_number=int(row.page_number),
        start_index=int(row.start_index),
        end_index=int(row.end_index),
        content=row.content,
    )


def _to_message(row: ChatMessageModel) -> StoredMessage:
    return StoredMessage(id=row.id, role=row.role, content=row.content, created_at=row.created_at)


def save_document(
    db: Db,
    *,
    filename: str,
    mime_type: str,
    data: bytes,
    page_count: int,
    chunks: Sequence[PageChunk],
) -> StoredDocument:
    if not chunks:
        raise ValueError("Cannot persist a document without chunks.")

    document_id = uuid.uuid4()
    with db.session() as session, session.begin():
        document = DocumentModel(
            id=document_id,
            filename=filename,
            mime_type=mime_type,
            size_bytes=len(data),
            sha256=sha256_bytes(data),
            page_count=page_count,
            data=data,
        )
        session.add(document)
        # Storage order is not guaranteed; ordinal preserves document order.
        session.add_all(
            DocumentChunkModel(
                document_id=document_id,
                ordinal=ordinal,
                page_number=chunk.page_number,
                start_index=chunk.start_index,
                end_index=chunk.end_index,
                content=chunk.content,
            )
            for ordinal, chunk in enumerate(chunks)
        )
        session.flush()
        return _to_document(document)


def get_document(db: Db, *, document_id: uuid.UUID) -> StoredDocument | None:
    with db.session() as session:
        row = session.get(DocumentModel, document_id)
        return None if row is None else _to_document(row)


def get_latest_document(db: Db) -> StoredDocument | None:
    with db.session() as session:
        row = session.execute(
            select(DocumentModel).order_by(DocumentModel.created_at.desc()).limit(1)
        ).scalar_one_or_none()
        return None if row is None else _to_document(row)


def get_document_data(db: Db, *, document_id: uuid.UUID) -> bytes | None:
    with db.session() as session:
        return session.execute(
            select(DocumentModel.data).where(DocumentModel.id == document_id)
        ).scalar_one_or_none()


def delete_document(db: Db, *, document_id: uuid.UUID) -> bool:
    with db.session() as session, session.begin():
        # Explicit child deletes: SQLite does not enforce ON DELETE CASCADE by default.
        session.execute(delete(DocumentChunkModel).where(DocumentChunkModel.document_id == document_id))
        session.execute(delete(ChatMessageModel).where(ChatMessageModel.document_id == document_id))
        result = session.execute(delete(DocumentModel).where(DocumentModel.id == document_id))
        return bool(result.rowcount)


def list_document_chunks(db: Db, *, document_id: uuid.UUID, limit: int | None = None) -> list[StoredChunk]:
    stmt = (
        select(DocumentChunkModel)
        .where(DocumentChunkModel.document_id == document_id)
        .order_by(DocumentChunkModel.ordinal.asc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    with db.session() as session:
        return [_to_chunk(row) for row in session.execute(stmt).scalars()]


def count_messages(db: Db, *, document_id: uuid.UUID, role: MessageRole | None = None) -> int:
    stmt = select(func.count()).select_from(ChatMessageModel).where(ChatMessageModel.document_id == document_id)
    if role is not None:
        stmt = stmt.where(ChatMessageModel.role == role)
    with db.session() as session:
        return int(session.execute(stmt).scalar_one())


def list_messages(db: Db, *, document_id: uuid.UUID) -> list[StoredMessage]:
    with db.session() as session:
        rows = session.execute(
            select(ChatMessageModel)
            .where(ChatMessageModel.document_id == document_id)
            .order_by(ChatMessageModel.ordinal.asc())
        ).scalars()
        return [_to_message(row) for row in rows]


def _next_message_ordinal(session: Session, *, document_id: uuid.UUID) -> int:
    return int(
        session.execute(
            select(func.coalesce(func.max(ChatMessageModel.ordinal) + 1, 0)).where(
                ChatMessageModel.document_id == document_id
            )
        ).scalar_one()
    )


def add_message(db: Db, *, document_id: uuid.UUID, role: MessageRole, content: str) -> StoredMessage:
    attempt = 0
    while True:
        attempt += 1
        try:
            with db.session() as session, session.begin():
                row = ChatMessageModel(
                    document_id=document_id,
                    ordinal=_next_message_ordinal(session, document_id=document_id),
                    role=role,
                    content=content,
                )
                session.add(row)
                session.flush()
                return _to_message(row)
        except IntegrityError:
            if attempt >= MESSAGE_INSERT_ATTEMPTS:
                raise
            log.debug("message_ordinal_conflict document_id=%s attempt=%s", document_id, attempt)
