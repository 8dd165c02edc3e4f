"""Database engine and table definitions.

Both stores share one SQLAlchemy ``MetaData``. Tables are created on first
use; there is no migration layer because the occurrence table is cleared at
the start of every ingest and the task table is append-mostly.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Engine,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.pool import StaticPool

from bee_atlas.occurrences.models import RECORD_FIELDS

metadata = MetaData()

# One text column per record field, in export order
occurrences_table = Table(
    "occurrences",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("composite_sort", Text, nullable=False, index=True),
    Column("scratch", Boolean, nullable=False, default=False, index=True),
    Column("is_new", Boolean, nullable=False, default=False),
    *(Column(name, Text, nullable=False, default="") for name in RECORD_FIELDS),
)

tasks_table = Table(
    "tasks",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(128), nullable=False),
    Column("tag", String(64), nullable=False),
    Column("type", String(32), nullable=False),
    Column("status", String(16), nullable=False, index=True),
    Column("current_subtask", String(32)),
    Column("subtasks", JSON, nullable=False),
    Column("progress", JSON),
    Column("warnings", JSON),
    Column("result", JSON),
    Column("upload", JSON),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True)),
)


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine and make sure the tables exist.

    In-memory SQLite URLs get a single shared connection so every store in
    the process sees the same database.
    """
    if url == "sqlite://" or (url.startswith("sqlite") and ":memory:" in url):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(url, echo=echo, pool_pre_ping=True)

    metadata.create_all(engine)
    return engine

