"""Split raw SQL text into statements and route each by kind."""

import logging
from typing import TYPE_CHECKING

from pocketsql.core.materializer import materialize
from pocketsql.errors import DatabaseError
from pocketsql.models.query import AffectedRows, QueryOutcome

if TYPE_CHECKING:
    from pocketsql.core.connection import SqlSession

logger = logging.getLogger(__name__)

STATEMENT_SEPARATOR = ";"

# Statements whose leading keyword means they return rows
ROW_PRODUCING_KEYWORDS = ("SELECT", "SHOW", "DESCRIBE", "DESC")

QUERY_RESULT_TABLE = "query_result"
QUERY_RESULT_DATABASE = "custom_query"


def split_statements(raw_text: str) -> list[str]:
    """
    Split on every semicolon, trim, and drop empty fragments.

    The split does not understand string literals or comments, so a
    semicolon inside a quoted value also splits.
    """
    return [s.strip() for s in raw_text.split(STATEMENT_SEPARATOR) if s.strip()]


def is_row_producing(statement: str) -> bool:
    return statement.lstrip().upper().startswith(ROW_PRODUCING_KEYWORDS)


class QueryRouter:
    """Executes multi-statement text on the active session."""

    def __init__(self, session: "SqlSession"):
        self.session = session

    async def execute(self, raw_text: str) -> QueryOutcome:
        """
        Execute each statement in order and return the last one's outcome.

        Execution stops at the first failing statement; earlier statements
        are not rolled back.

        Args:
            raw_text: One or more statements separated by semicolons

        Returns:
            Snapshot for a row-producing last statement, else affected rows

        Raises:
            DatabaseError: If there is no statement or one fails
            ConnectionFailedError: If there is no active connection
        """
        statements = split_statements(raw_text)
        if not statements:
            raise DatabaseError("No valid statement to execute")

        *leading, last = statements
        for index, statement in enumerate(leading, 1):
            logger.debug(f"Executing statement {index}/{len(statements)}")
            await self._execute_statement(statement)
        logger.debug(f"Executing statement {len(statements)}/{len(statements)}")
        return await self._execute_statement(last)

    async def _execute_statement(self, statement: str) -> QueryOutcome:
        result = await self.session.execute(statement)
        if is_row_producing(statement):
            return materialize(result, QUERY_RESULT_TABLE, QUERY_RESULT_DATABASE)

        affected = result.rowcount
        if result.returns_rows:
            result.close()
        return AffectedRows(affected_rows=max(affected, 0))
