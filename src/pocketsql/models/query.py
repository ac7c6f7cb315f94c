"""Query outcome models."""

from typing import Iterable, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from pocketsql.utils.serialization import NULL_SENTINEL, dumps


class TabularSnapshot(BaseModel):
    """Immutable materialized result set.

    Every cell is display text; SQL NULL is stored as ``NULL_SENTINEL``.
    Appending a page produces a new snapshot instead of mutating this one.
    """

    model_config = ConfigDict(frozen=True)

    table_name: str = Field(..., description="Source table, or a synthetic label")
    database_name: str = Field(..., description="Source database, or a synthetic label")
    columns: tuple[str, ...] = Field(..., description="Column names in order")
    rows: tuple[tuple[str, ...], ...] = Field(
        default=(), description="Rows of display text, aligned with columns"
    )
    primary_key: Optional[str] = Field(
        None, description="Primary key column, when it could be discovered"
    )

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        """Check if result set is empty."""
        return not self.rows

    def with_rows_appended(self, rows: Iterable[Sequence[str]]) -> "TabularSnapshot":
        """Return a new snapshot with ``rows`` added after the existing ones."""
        return self.model_copy(
            update={"rows": self.rows + tuple(tuple(row) for row in rows)}
        )

    def relabel(
        self, table_name: str, database_name: str, primary_key: Optional[str] = None
    ) -> "TabularSnapshot":
        return self.model_copy(
            update={
                "table_name": table_name,
                "database_name": database_name,
                "primary_key": primary_key,
            }
        )

    def get_column_values(self, column: str) -> list[str]:
        """Extract all values for a specific column."""
        index = self.columns.index(column)
        return [row[index] for row in self.rows]

    def row_as_dict(self, index: int) -> dict[str, Optional[str]]:
        """One row keyed by column name, with NULL cells mapped back to None."""
        return {
            column: None if value == NULL_SENTINEL else value
            for column, value in zip(self.columns, self.rows[index])
        }

    def to_table_string(self, max_rows: int = 10) -> str:
        """Format result as a simple table string."""
        if self.is_empty:
            return "No rows returned"

        result_lines = [" | ".join(self.columns)]
        result_lines.append("-" * len(result_lines[0]))

        for row in self.rows[:max_rows]:
            result_lines.append(" | ".join(row))

        if self.row_count > max_rows:
            result_lines.append(f"... ({self.row_count - max_rows} more rows)")

        return "\n".join(result_lines)

    def to_json(self) -> str:
        return dumps(self.model_dump())


class AffectedRows(BaseModel):
    """Outcome of a statement that does not produce rows."""

    model_config = ConfigDict(frozen=True)

    affected_rows: int = Field(..., ge=0, description="Rows changed by the statement")

    def to_json(self) -> str:
        return dumps(self.model_dump())


QueryOutcome = Union[TabularSnapshot, AffectedRows]
