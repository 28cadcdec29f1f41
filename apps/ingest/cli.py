from __future__ import annotations

import argparse
from pathlib import Path
import time

from dotenv import load_dotenv

from core.chunking import ChunkOptions
from core.config import load_settings
from core.db import Db
from core.schema import ensure_schema

from .extract_output import build_chunks_output_path, write_chunks_jsonl
from .pdf_extract import PdfExtractionError
from .pipeline import chunk_pdf, ingest_pdf
from .store import sha256_bytes


def _exception_text(exc: BaseException) -> str:
    message = str(exc).strip()
    if not message:
        message = exc.__class__.__name__
    return message[:2000]


def _resolve_pdf(raw: str) -> Path:
    path = Path(raw).expanduser().resolve()
    if not path.is_file():
        raise SystemExit(f"PDF not found: {path}")
    return path


def _options_from_args(args: argparse.Namespace, defaults: ChunkOptions) -> ChunkOptions:
    chunk_size = args.chunk_size if args.chunk_size is not None else defaults.chunk_size
    overlap = args.overlap if args.overlap is not None else defaults.overlap
    if not 0 <= overlap < chunk_size:
        raise SystemExit(f"--overlap must be in [0, --chunk-size), got overlap={overlap} chunk_size={chunk_size}")
    return ChunkOptions(chunk_size=chunk_size, overlap=overlap)


def _cmd_chunk(args: argparse.Namespace, options: ChunkOptions) -> None:
    pdf_path = _resolve_pdf(args.pdf)
    data = pdf_path.read_bytes()
    started = time.monotonic()
    try:
        pages, chunks = chunk_pdf(data, options)
    except PdfExtractionError as e:
        raise SystemExit(f"Extraction failed for {pdf_path}: {_exception_text(e)}") from e

    out_path = Path(args.out).expanduser().resolve() if args.out else build_chunks_output_path(pdf_path=pdf_path)
    write_chunks_jsonl(output_path=out_path, pdf_path=pdf_path, source_sha256=sha256_bytes(data), chunks=chunks)
    print(
        f"chunk_done path={pdf_path} pages={len(pages)} chunks={len(chunks)} "
        f"chunk_size={options.chunk_size} overlap={options.overlap} out={out_path} "
        f"elapsed_s={time.monotonic() - started:.2f}"
    )


def _cmd_ingest(args: argparse.Namespace, options: ChunkOptions, db: Db) -> None:
    ensure_schema(db)
    failed = 0
    for raw in args.pdfs:
        pdf_path = _resolve_pdf(raw)
        started = time.monotonic()
        try:
            result = ingest_pdf(db, filename=pdf_path.name, data=pdf_path.read_bytes(), options=options)
        except (PdfExtractionError, ValueError) as e:
            failed += 1
            print(f"item_fail path={pdf_path} reason={_exception_text(e)}")
            if args.on_error == "fail":
                raise SystemExit(f"Ingest failed for {pdf_path}: {_exception_text(e)}") from e
            continue
        print(
            f"item_done path={pdf_path} document_id={result.document_id} pages={result.page_count} "
            f"chunks={result.chunk_count} elapsed_s={time.monotonic() - started:.2f}"
        )
    print(f"task_done files={len(args.pdfs)} failed={failed}")


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    try:
        settings = load_settings()
    except ValueError as e:
        raise SystemExit(f"Invalid configuration: {e}") from e

    parser = argparse.ArgumentParser(prog="pdfchat-ingest")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_chunk = sub.add_parser("chunk", help="Extract and chunk a PDF into a .chunks.jsonl file")
    p_chunk.add_argument("pdf", type=str, help="Path to the PDF")
    p_chunk.add_argument("--out", type=str, help="Output path (default: <stem>.chunks.jsonl next to the PDF)")

    p_ingest = sub.add_parser("ingest", help="Extract, chunk and store PDFs in the database")
    p_ingest.add_argument("pdfs", nargs="+", type=str, help="PDF files to ingest")
    p_ingest.add_argument(
        "--on-error",
        choices=("fail", "skip"),
        default="fail",
        help="How to handle per-file failures during this run.",
    )

    for p in (p_chunk, p_ingest):
        p.add_argument("--chunk-size", type=int, help=f"Characters per chunk (default: {settings.chunk_size})")
        p.add_argument("--overlap", type=int, help=f"Characters shared by neighbours (default: {settings.chunk_overlap})")

    args = parser.parse_args(argv)
    options = _options_from_args(args, settings.chunk_options())

    if args.cmd == "chunk":
        _cmd_chunk(args, options)
        return

    db = Db(settings.database_url)
    try:
        _cmd_ingest(args, options, db)
    finally:
        db.dispose()


if __name__ == "__main__":
    main()
