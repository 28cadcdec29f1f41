from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import inspect

from .db import Db
from .db_models import Base


@dataclass(frozen=True)
class SchemaInfo:
    tables: frozenset[str]

    @property
    def is_complete(self) -> bool:
        return set(Base.metadata.tables).issubset(self.tables)


def get_schema_info(db: Db) -> SchemaInfo:
    return SchemaInfo(tables=frozenset(inspect(db.engine).get_table_names()))


def ensure_schema(db: Db) -> None:
    """Create any missing tables; existing ones are left untouched."""
    if get_schema_info(db).is_complete:
        return
    Base.metadata.create_all(db.engine, checkfirst=True)
