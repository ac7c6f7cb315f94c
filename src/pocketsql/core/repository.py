"""Database browsing and editing operations on the active session."""

import logging
from typing import Any, Mapping, Optional

from pocketsql.core import builder
from pocketsql.core.connection import SqlSession
from pocketsql.core.materializer import discover_primary_key
from pocketsql.core.pagination import DEFAULT_PAGE_SIZE, QueryPager
from pocketsql.core.router import QueryRouter
from pocketsql.errors import DatabaseError
from pocketsql.models.query import QueryOutcome, TabularSnapshot
from pocketsql.models.table import ColumnSpec, TableDefinition
from pocketsql.utils.serialization import cell_to_text

logger = logging.getLogger(__name__)


class DatabaseRepository:
    """Catalog, table browsing, row editing and DDL for one session."""

    def __init__(
        self,
        session: SqlSession,
        router: Optional[QueryRouter] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        """
        Initialize the repository.

        Args:
            session: Session the operations run on
            router: Router for user SQL; one is created when omitted
            page_size: Rows per page for browsing and custom queries
        """
        self.session = session
        self.router = router or QueryRouter(session)
        self.query_pager = QueryPager(self.router, page_size=page_size)
        self.table_pager = QueryPager(self.router, page_size=page_size, history_size=0)

    def reset(self) -> None:
        """Forget paging state from a previous session."""
        self.query_pager.reset()
        self.table_pager.reset()

    async def list_databases(self) -> list[str]:
        """
        Databases visible to the user.

        When the session was opened for a specific database, only that one is
        returned.
        """
        connected = self.session.connected_database
        if connected:
            return [connected]
        result = await self.session.execute(builder.show_databases())
        return [cell_to_text(row[0]) for row in result.fetchall()]

    async def list_tables(self, database: str) -> list[str]:
        result = await self.session.execute(builder.show_tables(database))
        return sorted(cell_to_text(row[0]) for row in result.fetchall())

    async def browse_table(self, database: str, table: str) -> TabularSnapshot:
        """
        First page of a table's rows, labeled with its primary key.

        Args:
            database: Database name
            table: Table name

        Returns:
            Snapshot labeled with the table, database and primary key
        """

        async def label(snapshot: TabularSnapshot) -> TabularSnapshot:
            primary_key = await discover_primary_key(self.session, database, table)
            return snapshot.relabel(table, database, primary_key)

        outcome = await self.table_pager.submit(
            builder.select_all(database, table), on_first_page=label
        )
        if not isinstance(outcome, TabularSnapshot):
            raise DatabaseError(f"Browsing {table} did not return rows")
        return outcome

    async def load_more_table_rows(self) -> Optional[TabularSnapshot]:
        return await self.table_pager.load_more()

    async def get_table_structure(self, database: str, table: str) -> list[ColumnSpec]:
        result = await self.session.execute(builder.describe_table(database, table))
        return [ColumnSpec.from_describe_row(row) for row in result.mappings().fetchall()]

    async def get_create_table_statement(self, database: str, table: str) -> str:
        result = await self.session.execute(builder.show_create_table(database, table))
        row = result.fetchone()
        if row is None:
            raise DatabaseError(f"SHOW CREATE TABLE returned nothing for {table}")
        return cell_to_text(row[1])

    async def execute_query(
        self, query: str, database: Optional[str] = None
    ) -> QueryOutcome:
        """Run user SQL through the query pager (first page only)."""
        return await self.query_pager.submit(query, database)

    async def load_more_query_results(self) -> Optional[TabularSnapshot]:
        return await self.query_pager.load_more()

    async def insert_row(
        self, database: str, table: str, values: Mapping[str, Optional[str]]
    ) -> int:
        statement = builder.insert_row(database, table, values)
        result = await self.session.execute(statement.sql, statement.parameters)
        return result.rowcount

    async def update_row(
        self,
        database: str,
        table: str,
        primary_key: Optional[str],
        key_value: Any,
        updates: Mapping[str, Optional[str]],
    ) -> int:
        statement = builder.update_row(database, table, primary_key, key_value, updates)
        result = await self.session.execute(statement.sql, statement.parameters)
        return result.rowcount

    async def delete_row(
        self, database: str, table: str, primary_key: Optional[str], key_value: Any
    ) -> int:
        statement = builder.delete_row(database, table, primary_key, key_value)
        result = await self.session.execute(statement.sql, statement.parameters)
        return result.rowcount

    async def create_table(self, database: str, definition: TableDefinition) -> None:
        await self.session.execute(builder.create_table(database, definition))
        logger.info(f"Created table {definition.table_name} in {database}")

    async def drop_table(self, database: str, table: str) -> None:
        await self.session.execute(builder.drop_table(database, table))
        logger.info(f"Dropped table {table} from {database}")

    async def add_column(
        self,
        database: str,
        table: str,
        column: ColumnSpec,
        collation: Optional[str] = None,
    ) -> None:
        await self.session.execute(builder.add_column(database, table, column, collation))

    async def drop_column(self, database: str, table: str, column: str) -> None:
        await self.session.execute(builder.drop_column(database, table, column))
