from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


_IN_MEMORY_SQLITE = frozenset({"sqlite://", "sqlite:///:memory:"})


def normalize_database_url(url: str) -> str:
    """Pin plain PostgreSQL URLs to the psycopg (v3) driver."""
    url = (url or "").strip()
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://") :]
    return url


def _engine_options(url: str) -> dict[str, Any]:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    # One shared connection, otherwise every checkout sees an empty database.
    if url in _IN_MEMORY_SQLITE:
        options["poolclass"] = StaticPool
    return options


@dataclass
class Db:
    """Engine plus session factory for one database; build one per process and pass it around."""

    url: str
    echo: bool = False
    _engine: Engine = field(init=False, repr=False)
    _sessions: sessionmaker[Session] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        resolved = normalize_database_url(self.url)
        self._engine = create_engine(resolved, echo=self.echo, **_engine_options(resolved))
        self._sessions = sessionmaker(bind=self._engine, autoflush=False, expire_on_commit=False)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    def session(self) -> Session:
        return self._sessions()

    def dispose(self) -> None:
        self._engine.dispose()
