"""LIMIT/OFFSET rewriting and incremental result loading."""

import logging
import re
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from pocketsql.core.builder import quote_identifier
from pocketsql.models.query import QueryOutcome, TabularSnapshot

if TYPE_CHECKING:
    from pocketsql.core.router import QueryRouter

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 200
DEFAULT_HISTORY_SIZE = 20

LIMIT_PATTERN = re.compile(r"\bLIMIT\b", re.IGNORECASE)
PAGE_ALIAS = "_page"

SnapshotHook = Callable[[TabularSnapshot], Awaitable[TabularSnapshot]]


def has_limit(query: str) -> bool:
    """Check if query already has a LIMIT keyword anywhere."""
    return bool(LIMIT_PATTERN.search(query))


def rewrite(query: str, limit: int, offset: int) -> str:
    """
    Add a page window to a SELECT.

    Queries without a LIMIT get ``LIMIT/OFFSET`` appended; queries that
    already have one are wrapped in a derived table so the user's own limit
    still applies inside the window.
    """
    query = query.strip().rstrip(";").rstrip()
    if not has_limit(query):
        return f"{query} LIMIT {limit} OFFSET {offset}"
    return f"SELECT * FROM ( {query} ) AS {PAGE_ALIAS} LIMIT {limit} OFFSET {offset}"


def is_select(query: str) -> bool:
    return query.strip().upper().startswith("SELECT")


def with_database(query: str, database: Optional[str]) -> str:
    """Prefix ``USE `db`;`` unless no database is given or the query selects one."""
    if not database or query.strip().upper().startswith("USE"):
        return query
    return f"USE {quote_identifier(database)}; {query}"


class QueryPager:
    """
    Runs a query one page at a time and accumulates the rows.

    Only one page load is in flight at a time. Submitting a new query while
    a page is loading discards that page when it arrives.
    """

    def __init__(
        self,
        router: "QueryRouter",
        page_size: int = DEFAULT_PAGE_SIZE,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ):
        self.router = router
        self.page_size = page_size
        self.history_size = history_size
        self.history: list[str] = []
        self.last_query: Optional[str] = None
        self.database: Optional[str] = None
        self.outcome: Optional[QueryOutcome] = None
        self.offset = 0
        self.has_more = False
        self.is_loading = False
        self._paginated = False
        self._generation = 0

    def reset(self) -> None:
        self._generation += 1
        self.last_query = None
        self.database = None
        self.outcome = None
        self.offset = 0
        self.has_more = False
        self._paginated = False

    @property
    def can_load_more(self) -> bool:
        return self.has_more and not self.is_loading

    async def submit(
        self,
        query: str,
        database: Optional[str] = None,
        on_first_page: Optional[SnapshotHook] = None,
    ) -> QueryOutcome:
        """
        Run a new query from the first page.

        SELECT statements are paginated; anything else runs as written and
        cannot load more.

        Args:
            query: User query text
            database: Database to select first, if any
            on_first_page: Optional hook applied to the first snapshot

        Returns:
            Outcome of the first page
        """
        self.reset()
        generation = self._generation
        self.last_query = query
        self.database = database
        self._paginated = is_select(query)

        statement = rewrite(query, self.page_size, 0) if self._paginated else query
        outcome = await self.router.execute(with_database(statement, database))

        if isinstance(outcome, TabularSnapshot) and on_first_page is not None:
            outcome = await on_first_page(outcome)

        self._remember(query)
        if generation != self._generation:
            return outcome

        self.outcome = outcome
        if self._paginated and isinstance(outcome, TabularSnapshot):
            self.offset = outcome.row_count
            self.has_more = outcome.row_count >= self.page_size
        return outcome

    async def load_more(self) -> Optional[TabularSnapshot]:
        """
        Fetch the next page and append it to the current snapshot.

        Returns:
            The grown snapshot, or None if no load was started or the page
            was discarded because another query was submitted meanwhile
        """
        if (
            not self.can_load_more
            or self.last_query is None
            or not isinstance(self.outcome, TabularSnapshot)
        ):
            return None

        generation = self._generation
        statement = rewrite(self.last_query, self.page_size, self.offset)
        self.is_loading = True
        try:
            page = await self.router.execute(with_database(statement, self.database))
        finally:
            self.is_loading = False

        if generation != self._generation:
            logger.debug("Discarding page for a superseded query")
            return None
        if not isinstance(page, TabularSnapshot) or not isinstance(
            self.outcome, TabularSnapshot
        ):
            self.has_more = False
            return None

        self.outcome = self.outcome.with_rows_appended(page.rows)
        self.offset += page.row_count
        self.has_more = page.row_count >= self.page_size
        return self.outcome

    def _remember(self, query: str) -> None:
        if self.history_size <= 0:
            return
        if query in self.history:
            self.history.remove(query)
        self.history.insert(0, query)
        del self.history[self.history_size :]
