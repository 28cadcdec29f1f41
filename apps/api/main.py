from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator
from urllib.parse import quote
import uuid

from dotenv import load_dotenv
from fastapi import FastAPI, File, HTTPException, Query, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse, StreamingResponse

from apps.ingest.pdf_extract import PdfExtractionError
from apps.ingest.pipeline import ingest_pdf
from apps.ingest.store import (
    StoredDocument,
    add_message,
    count_messages,
    delete_document,
    get_document,
    get_document_data,
    get_latest_document,
    list_document_chunks,
    list_messages,
)
from core.config import Settings, load_settings
from core.db import Db
from core.schema import ensure_schema

from .chat_client import ChatClient, build_chat_client, completion_text
from .logging_config import configure_logging
from .models import (
    ChatRequest,
    ChatResponse,
    ChunkListResponse,
    ChunkOut,
    DocumentInfo,
    DocumentUploadResponse,
    MessageListResponse,
    StoredMessageOut,
)
from .retrieval import build_chat_messages, clean_messages


log = logging.getLogger("pdfchat.api")

PDF_MIME_TYPE = "application/pdf"


def _document_url(document_id: uuid.UUID) -> str:
    return f"/v1/documents/{document_id}"


def _document_info(doc: StoredDocument) -> DocumentInfo:
    return DocumentInfo(
        id=doc.id,
        filename=doc.filename,
        mime_type=doc.mime_type,
        size_bytes=doc.size_bytes,
        page_count=doc.page_count,
        created_at=doc.created_at,
        url=_document_url(doc.id),
    )


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", None), "request_id", None) or str(uuid.uuid4())


def _upstream_failed() -> JSONResponse:
    return JSONResponse({"error": {"message": "Upstream chat provider failed"}}, status_code=status.HTTP_502_BAD_GATEWAY)


async def _close_stream(deltas: AsyncIterator[str]) -> None:
    aclose = getattr(deltas, "aclose", None)
    if aclose is not None:
        await aclose()


def create_app(
    settings: Settings | None = None,
    *,
    db: Db | None = None,
    chat_client: ChatClient | None = None,
) -> FastAPI:
    """Build the application; every collaborator is constructed here or injected."""
    if settings is None:
        load_dotenv()
        configure_logging()
        settings = load_settings()
    db = db or Db(settings.database_url)
    chat = chat_client or build_chat_client(settings)
    chunk_options = settings.chunk_options()

    app = FastAPI(title="pdf-chat", version="0.1.0")
    app.state.settings = settings
    app.state.db = db

    @app.middleware("http")
    async def _request_logging(request: Request, call_next: Any) -> Any:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        started = asyncio.get_running_loop().time()
        try:
            response = await call_next(request)
        except Exception:
            log.exception("request_id=%s http %s %s unhandled_error", request_id, request.method, request.url.path)
            raise
        elapsed_ms = (asyncio.get_running_loop().time() - started) * 1000.0
        response.headers["x-request-id"] = request_id
        log.info(
            "request_id=%s http %s %s status=%s dur_ms=%.1f",
            request_id,
            request.method,
            request.url.path,
            getattr(response, "status_code", "?"),
            elapsed_ms,
            extra={"request_id": request_id},
        )
        return response

    @app.on_event("startup")
    def _startup() -> None:
        ensure_schema(db)

    def _require_document(document_id: uuid.UUID) -> StoredDocument:
        doc = get_document(db, document_id=document_id)
        if doc is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
        return doc

    @app.get("/healthz")
    def healthz() -> dict[str, Any]:
        return {"ok": True}

    @app.post("/v1/documents", response_model=DocumentUploadResponse, status_code=status.HTTP_201_CREATED)
    async def upload_document(request: Request, file: UploadFile | None = File(default=None)) -> DocumentUploadResponse:
        request_id = _request_id(request)
        if file is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")
        if file.content_type != PDF_MIME_TYPE:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only PDF files are allowed")

        data = await file.read(settings.max_upload_bytes + 1)
        if len(data) > settings.max_upload_bytes:
            raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large")
        if not data:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")

        filename = file.filename or "document.pdf"
        try:
            result = await asyncio.to_thread(
                ingest_pdf,
                db,
                filename=filename,
                data=data,
                options=chunk_options,
                mime_type=PDF_MIME_TYPE,
            )
        except PdfExtractionError as e:
            log.warning("request_id=%s upload_rejected filename=%s reason=unreadable_pdf", request_id, filename)
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Unreadable PDF") from e
        except ValueError as e:
            log.warning("request_id=%s upload_rejected filename=%s reason=no_text", request_id, filename)
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

        log.info(
            "request_id=%s upload document_id=%s pages=%s chunks=%s",
            request_id,
            result.document_id,
            result.page_count,
            result.chunk_count,
        )
        return DocumentUploadResponse(
            id=result.document_id,
            filename=result.filename,
            page_count=result.page_count,
            chunk_count=result.chunk_count,
            url=_document_url(result.document_id),
        )

    @app.get("/v1/documents/latest", response_model=DocumentInfo)
    def latest_document() -> DocumentInfo:
        doc = get_latest_document(db)
        if doc is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No documents uploaded yet")
        return _document_info(doc)

    @app.get("/v1/documents/{document_id}")
    def download_document(document_id: uuid.UUID) -> Response:
        doc = _require_document(document_id)
        data = get_document_data(db, document_id=document_id) or b""
        return Response(
            content=data,
            media_type=doc.mime_type,
            headers={
                "Content-Disposition": f"inline; filename=\"{quote(doc.filename)}\"",
                "Cache-Control": "private, max-age=0, must-revalidate",
            },
        )

    @app.delete("/v1/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_document(document_id: uuid.UUID) -> Response:
        if not delete_document(db, document_id=document_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/v1/documents/{document_id}/chunks", response_model=ChunkListResponse)
    def document_chunks(document_id: uuid.UUID, limit: int | None = Query(default=None, ge=1)) -> ChunkListResponse:
        _require_document(document_id)
        chunks = list_document_chunks(db, document_id=document_id, limit=limit)
        return ChunkListResponse(
            document_id=document_id,
            chunks=[
                ChunkOut(
                    ordinal=c.ordinal,
                    page_number=c.page_number,
                    start_index=c.start_index,
                    end_index=c.end_index,
                    content=c.content,
                )
                for c in chunks
            ],
        )

    @app.get("/v1/documents/{document_id}/messages", response_model=MessageListResponse)
    def document_messages(document_id: uuid.UUID) -> MessageListResponse:
        _require_document(document_id)
        return MessageListResponse(
            document_id=document_id,
            messages=[
                StoredMessageOut(id=m.id, role=m.role, content=m.content, created_at=m.created_at)
                for m in list_messages(db, document_id=document_id)
            ],
        )

    @app.post("/v1/documents/{document_id}/chat", response_model=None)
    async def chat_with_document(document_id: uuid.UUID, req: ChatRequest, request: Request) -> Any:
        request_id = _request_id(request)
        _require_document(document_id)

        new_messages = clean_messages(req.messages)
        if not new_messages:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid messages found in request")

        # Context goes out until the assistant has answered once; unanswered questions from
        # failed attempts are not replayed.
        first_turn = count_messages(db, document_id=document_id, role="assistant") == 0
        history = [] if first_turn else list_messages(db, document_id=document_id)
        context_chunks = (
            list_document_chunks(db, document_id=document_id, limit=settings.context_max_chunks) if first_turn else []
        )
        messages = build_chat_messages(
            new_messages=new_messages,
            history=history,
            chunks=context_chunks,
            max_chunks=settings.context_max_chunks,
            first_turn=first_turn,
        )
        log.info(
            "request_id=%s chat document_id=%s first_turn=%s context_chunks=%s history=%s stream=%s",
            request_id,
            document_id,
            first_turn,
            len(context_chunks),
            len(history),
            req.stream,
        )

        payload: dict[str, Any] = {"model": settings.chat_model, "messages": messages}
        if req.temperature is not None:
            payload["temperature"] = req.temperature
        if req.max_tokens is not None:
            payload["max_tokens"] = req.max_tokens

        add_message(db, document_id=document_id, role="user", content=new_messages[-1]["content"])

        if not req.stream:
            try:
                data = await chat.chat_completions(payload)
            except Exception as e:
                # Log only the exception type; provider errors can echo request URLs and keys.
                log.error("request_id=%s upstream_error=%s", request_id, type(e).__name__)
                return _upstream_failed()
            answer = completion_text(data)
            add_message(db, document_id=document_id, role="assistant", content=answer)
            return ChatResponse(document_id=document_id, answer=answer)

        # Pull the first delta before committing to a 200 so a dead provider still maps to 502.
        deltas = chat.stream_chat_text(payload)
        try:
            first = await deltas.__anext__()
        except StopAsyncIteration:
            first = ""
        except Exception as e:
            log.error("request_id=%s upstream_error=%s", request_id, type(e).__name__)
            await _close_stream(deltas)
            return _upstream_failed()

        async def _text_stream() -> AsyncIterator[bytes]:
            parts: list[str] = [first] if first else []
            complete = False
            try:
                if first:
                    yield first.encode("utf-8")
                async for text in deltas:
                    parts.append(text)
                    yield text.encode("utf-8")
                complete = True
            except Exception as e:
                log.error("request_id=%s upstream_stream_error=%s", request_id, type(e).__name__)
            finally:
                await _close_stream(deltas)
                answer = "".join(parts)
                # A cut-off answer is not stored; the question stays unanswered.
                if complete and answer:
                    add_message(db, document_id=document_id, role="assistant", content=answer)
                log.info(
                    "request_id=%s chat_stream_done document_id=%s chars=%s complete=%s",
                    request_id,
                    document_id,
                    len(answer),
                    complete,
                )

        return StreamingResponse(_text_stream(), media_type="text/plain; charset=utf-8")

    return app
