"""Turn live result cursors into immutable snapshots."""

import logging
from typing import TYPE_CHECKING, Optional

from sqlalchemy.engine import CursorResult

from pocketsql.core import builder
from pocketsql.errors import PocketSQLError
from pocketsql.models.query import TabularSnapshot
from pocketsql.utils.serialization import cell_to_text

if TYPE_CHECKING:
    from pocketsql.core.connection import SqlSession

logger = logging.getLogger(__name__)


def materialize(
    result: CursorResult,
    table_name: str,
    database_name: str,
    primary_key: Optional[str] = None,
) -> TabularSnapshot:
    """
    Drain a result into a snapshot.

    Column names come from the cursor metadata in order. Every cell is
    rendered to text; SQL NULL becomes the ``NULL`` sentinel.

    Args:
        result: Row-producing result, fully consumed by this call
        table_name: Table label for the snapshot
        database_name: Database label for the snapshot
        primary_key: Primary key column, if known

    Returns:
        Immutable snapshot
    """
    if not result.returns_rows:
        # e.g. SELECT ... INTO @var
        columns: tuple[str, ...] = ()
        rows: tuple[tuple[str, ...], ...] = ()
    else:
        columns = tuple(str(key) for key in result.keys())
        rows = tuple(
            tuple(cell_to_text(value) for value in row) for row in result.fetchall()
        )
    return TabularSnapshot(
        table_name=table_name,
        database_name=database_name,
        columns=columns,
        rows=rows,
        primary_key=primary_key,
    )


async def discover_primary_key(
    session: "SqlSession", database: Optional[str], table: str
) -> Optional[str]:
    """First column whose DESCRIBE key is PRI, or None if none or on failure."""
    try:
        result = await session.execute(builder.describe_table(database, table))
        for row in result.mappings().fetchall():
            if cell_to_text(row.get("Key")) == "PRI":
                return cell_to_text(row.get("Field"))
    except PocketSQLError as e:
        logger.debug(f"Primary key discovery failed for {table}: {e}")
    return None
