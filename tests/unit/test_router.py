"""Tests for statement splitting and routing, on an SQLite-backed session."""

import pytest

from pocketsql.core.router import (
    QUERY_RESULT_DATABASE,
    QUERY_RESULT_TABLE,
    QueryRouter,
    is_row_producing,
    split_statements,
)
from pocketsql.errors import ConnectionFailedError, DatabaseError
from pocketsql.models.query import AffectedRows, TabularSnapshot


class TestSplitStatements:
    def test_split_trims_and_drops_empty(self):
        assert split_statements(" SELECT 1 ;; UPDATE t SET a=1; ") == [
            "SELECT 1",
            "UPDATE t SET a=1",
        ]

    def test_only_separators(self):
        assert split_statements(" ; ;  ") == []

    def test_semicolon_inside_literal_still_splits(self):
        assert split_statements("SELECT 'a;b'") == ["SELECT 'a", "b'"]

    @pytest.mark.parametrize(
        "statement,expected",
        [
            ("select 1", True),
            ("SHOW TABLES", True),
            ("DESCRIBE t", True),
            ("desc t", True),
            ("UPDATE t SET a = 1", False),
            ("WITH x AS (SELECT 1) SELECT * FROM x", False),
        ],
    )
    def test_is_row_producing(self, statement, expected):
        assert is_row_producing(statement) is expected


class TestQueryRouter:
    """Each statement runs in order; the last one decides the outcome."""

    async def test_select_becomes_snapshot(self, router, people_table):
        outcome = await router.execute("SELECT id, city FROM people ORDER BY id")

        assert isinstance(outcome, TabularSnapshot)
        assert outcome.table_name == QUERY_RESULT_TABLE
        assert outcome.database_name == QUERY_RESULT_DATABASE
        assert outcome.primary_key is None
        assert outcome.columns == ("id", "city")
        assert outcome.rows[1] == ("2", "NULL")
        assert outcome.rows[3] == ("4", "")

    async def test_mutation_reports_affected_rows(self, router, people_table):
        outcome = await router.execute("UPDATE people SET city = 'Paris' WHERE id < 3")
        assert outcome == AffectedRows(affected_rows=2)

    async def test_last_outcome_wins(self, router, people_table):
        outcome = await router.execute(
            "SELECT * FROM people; DELETE FROM people WHERE id = 5"
        )
        assert outcome == AffectedRows(affected_rows=1)

        outcome = await router.execute("DELETE FROM people WHERE id = 4; SELECT count(*) FROM people")
        assert isinstance(outcome, TabularSnapshot)
        assert outcome.rows == (("3",),)

    async def test_percent_and_colon_pass_through(self, router, people_table):
        outcome = await router.execute(
            "SELECT name FROM people WHERE name LIKE 'A%' AND ':x' = ':x'"
        )
        assert isinstance(outcome, TabularSnapshot)
        assert outcome.rows == (("Ada",),)

    async def test_empty_text(self, router):
        with pytest.raises(DatabaseError, match="No valid statement"):
            await router.execute(" ;; ")

    async def test_stops_at_first_failure(self, router, session, people_table):
        with pytest.raises(DatabaseError):
            await router.execute(
                "DELETE FROM people WHERE id = 1; SELECT * FROM missing; DELETE FROM people"
            )
        result = await session.execute("SELECT count(*) FROM people")
        assert result.scalar() == 4

    async def test_requires_connection(self, settings):
        from pocketsql.core.connection import SqlSession

        with pytest.raises(ConnectionFailedError):
            await QueryRouter(SqlSession(settings)).execute("SELECT 1")
