from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import os

PRETTY_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers that echo request lines (and auth headers) at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "pypdfium2", "multipart", "python_multipart")


def _parse_level(name: str | None) -> int:
    level = logging.getLevelName((name or "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure root logging from LOG_LEVEL / LOG_FORMAT unless given explicitly."""
    resolved_level = _parse_level(level if level is not None else os.getenv("LOG_LEVEL"))
    resolved_fmt = (fmt if fmt is not None else os.getenv("LOG_FORMAT") or "pretty").strip().lower()

    handler = logging.StreamHandler()
    if resolved_fmt in {"json", "jsonl"}:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(PRETTY_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    logging.basicConfig(level=resolved_level, handlers=[handler], force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """One JSON object per line; `request_id` passed via `extra=` is lifted to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)
