from __future__ import annotations

from pathlib import Path
import json
import re
import unicodedata

from core.chunking import PageChunk


_RE_SAFE_FILENAME = re.compile(r"[<>:\"/\\|?*\u0000-\u001F]+")


def _safe_stem(path: Path) -> str:
    raw_stem = unicodedata.normalize("NFKC", path.stem)
    return _RE_SAFE_FILENAME.sub("_", raw_stem).strip(" ._-")[:120] or "document"


def build_chunks_output_path(*, pdf_path: Path, out_dir: Path | None = None) -> Path:
    target_dir = out_dir if out_dir is not None else pdf_path.parent
    return target_dir / f"{_safe_stem(pdf_path)}.chunks.jsonl"


def write_chunks_jsonl(
    *,
    output_path: Path,
    pdf_path: Path,
    source_sha256: str,
    chunks: list[PageChunk],
) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        for ordinal, chunk in enumerate(chunks):
            line = {
                "source_path": str(pdf_path),
                "source_sha256": source_sha256,
                "ordinal": ordinal,
                "page_number": chunk.page_number,
                "start_index": chunk.start_index,
                "end_index": chunk.end_index,
                "content": chunk.content,
            }
            f.write(json.dumps(line, ensure_ascii=False) + "\n")

