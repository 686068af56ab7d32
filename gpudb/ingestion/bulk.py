"""
Bulk INSERT ... ON CONFLICT with an explicit conflict policy.

Every write of the import goes through ``bulk_insert`` so the conflict
behaviour of each table is a named argument at the call site:

    ConflictPolicy.IGNORE         ON CONFLICT DO NOTHING
    ConflictPolicy.UPDATE_ALL     ON CONFLICT DO UPDATE every non-key column
    ConflictPolicy.UPDATE_SUBSET  ON CONFLICT DO UPDATE only ``update_columns``

``insert_row_set`` wraps it for dependent rows where a failure must be
recorded and skipped rather than raised.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncConnection

from gpudb.ingestion.batching import chunk

logger = logging.getLogger(__name__)


class ConflictPolicy(str, Enum):
    IGNORE = "ignore"
    UPDATE_ALL = "update_all"
    UPDATE_SUBSET = "update_subset"


@dataclass
class InsertResult:
    """Outcome of inserting one row set (possibly in several statements)."""

    attempted: int = 0
    inserted: int = 0
    failed: int = 0
    first_error: str | None = None

    def merge(self, other: "InsertResult") -> "InsertResult":
        self.attempted += other.attempted
        self.inserted += other.inserted
        self.failed += other.failed
        if self.first_error is None:
            self.first_error = other.first_error
        return self


def _dialect_insert(conn: AsyncConnection, model):
    if conn.dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


async def bulk_insert(
    conn: AsyncConnection,
    model,
    rows: list[dict],
    *,
    conflict: ConflictPolicy = ConflictPolicy.IGNORE,
    index_elements: Sequence[str] | None = None,
    update_columns: Sequence[str] | None = None,
    returning: Sequence[Any] | None = None,
) -> tuple[int, list[Row]]:
    """Insert rows in one statement using the given conflict policy.

    Args:
        conn: Connection with an open transaction
        model: ORM model of the target table
        rows: Row dicts keyed by column name
        conflict: What to do when a row hits a unique key
        index_elements: Columns of the conflicting unique key. Required for
            the UPDATE policies; optional for IGNORE (any conflict is ignored)
        update_columns: Columns overwritten under UPDATE_SUBSET
        returning: Columns to return for every inserted or updated row

    Returns:
        (rowcount, returned rows)
    """
    if not rows:
        return 0, []

    stmt = _dialect_insert(conn, model).values(rows)

    if conflict is ConflictPolicy.IGNORE:
        stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    else:
        if not index_elements:
            raise ValueError(f"{conflict.value} needs index_elements")
        if conflict is ConflictPolicy.UPDATE_ALL:
            columns = [
                c.name for c in model.__table__.columns
                if c.name not in index_elements and not c.primary_key
            ]
        else:
            if not update_columns:
                raise ValueError("update_subset needs update_columns")
            columns = list(update_columns)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(index_elements),
            set_={name: stmt.excluded[name] for name in columns},
        )

    if returning:
        stmt = stmt.returning(*returning)
        result = await conn.execute(stmt)
        returned = list(result.all())
        return len(returned), returned

    result = await conn.execute(stmt)
    return result.rowcount, []


async def insert_row_set(
    conn: AsyncConnection,
    model,
    rows: list[dict],
    batch_size: int,
    index_elements: Sequence[str] | None = None,
) -> InsertResult:
    """Insert a dependent row set with DO NOTHING, one transaction per chunk.

    A failing chunk is logged and counted in the result; the remaining
    chunks still run.
    """
    outcome = InsertResult(attempted=len(rows))
    table = model.__tablename__

    for rows_chunk in chunk(rows, batch_size):
        try:
            async with conn.begin():
                count, _ = await bulk_insert(
                    conn, model, rows_chunk,
                    conflict=ConflictPolicy.IGNORE,
                    index_elements=index_elements,
                )
            # Some drivers report -1 when the count is unknown
            outcome.inserted += max(count, 0)
        except Exception as e:
            outcome.failed += len(rows_chunk)
            if outcome.first_error is None:
                outcome.first_error = f"{type(e).__name__}: {str(e)[:200]}"
            logger.warning(f"Skipped {len(rows_chunk)} {table} rows: {str(e)[:100]}")

    return outcome
