"""
Single-statement "insert unless present" for PostgreSQL and SQLite.

INSERT ... ON CONFLICT (cols) DO NOTHING keyed by a unique constraint, so concurrent
callers never read-modify-write from application memory.
"""
from typing import Any, Dict, Sequence

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def insert_ignore(db: Session, model, values: Dict[str, Any], conflict_columns: Sequence[str]) -> int:
    """
    Insert one row unless a row with the same conflict_columns exists.

    Returns:
        Number of rows inserted (0 or 1)
    """
    dialect = db.get_bind().dialect.name
    insert_fn = _INSERTS.get(dialect)
    if insert_fn is None:
        raise NotImplementedError(f"insert_ignore is not supported on {dialect}")
    stmt = insert_fn(model.__table__).values(**values).on_conflict_do_nothing(
        index_elements=list(conflict_columns)
    )
    result = db.execute(stmt)
    return result.rowcount or 0
