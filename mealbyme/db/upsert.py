"""INSERT ... ON CONFLICT DO UPDATE for Postgres (and SQLite in tests)."""

from typing import Any, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert
    return postgresql.insert


async def upsert(
    db: AsyncSession,
    model,
    values: dict[str, Any],
    conflict_columns: list[str],
    set_: Optional[dict[str, Any]] = None,
):
    """
    Insert values, or update the existing row that matches conflict_columns.

    set_ defaults to every non-conflict column in values. Does not commit.
    """
    insert = _insert_for(db)
    stmt = insert(model).values(**values)
    if set_ is None:
        set_ = {
            key: getattr(stmt.excluded, key)
            for key in values
            if key not in conflict_columns
        }
    stmt = stmt.on_conflict_do_update(index_elements=conflict_columns, set_=set_)
    return await db.execute(stmt)
