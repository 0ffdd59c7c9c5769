from __future__ import annotations

import structlog
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from rental_tax_filer.db.base import Base
from rental_tax_filer.db.models import Booking

logger = structlog.get_logger(__name__)

# Optional columns added after the first release of the bookings table.
# Each entry: (column name, DDL suffix appended after the compiled type).
ADDITIVE_COLUMNS: list[tuple[str, str]] = [
    ("is_cancelled", "NOT NULL DEFAULT FALSE"),
    ("cancellation_date", ""),
    ("audit_evidence_path", ""),
    ("last_error", ""),
    ("updated_at", ""),
]


def ensure_schema(engine: Engine) -> list[str]:
    """
    What it does:
    - Creates the bookings table if missing and adds newer optional columns to old tables.

    Why it matters:
    - Databases created by earlier versions must keep working; rows that predate a
      column read as NULL/false instead of breaking the queue.

    Behavior:
    - Never drops, renames or rewrites columns.
    - Returns the names of columns that were added (empty when up to date).
    """
    Base.metadata.create_all(bind=engine)

    existing = {c["name"] for c in inspect(engine).get_columns(Booking.__tablename__)}
    table = Booking.__table__
    added: list[str] = []

    with engine.begin() as conn:
        for name, suffix in ADDITIVE_COLUMNS:
            if name in existing:
                continue
            col_type = table.c[name].type.compile(dialect=engine.dialect)
            ddl = f"ALTER TABLE {Booking.__tablename__} ADD COLUMN {name} {col_type} {suffix}"
            conn.execute(text(ddl.strip()))
            added.append(name)
            logger.info("schema_column_added", table=Booking.__tablename__, column=name)

    return added
