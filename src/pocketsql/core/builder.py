"""SQL text builders for MySQL/MariaDB.

Identifiers are always backtick-quoted with embedded backticks doubled.
Row values never appear in the SQL text: insert, update and delete return a
``BoundStatement`` carrying named parameters for ``sqlalchemy.text``.
Literal text only appears for column DEFAULT clauses in DDL, which cannot be
parameterized.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from pocketsql.errors import DatabaseError
from pocketsql.models.table import ColumnSpec, TableDefinition

IDENTIFIER_QUOTE = "`"

# Types that accept a COLLATE clause
STRING_TYPES = frozenset({"CHAR", "VARCHAR", "TEXT", "TINYTEXT", "MEDIUMTEXT", "LONGTEXT"})


@dataclass(frozen=True)
class BoundStatement:
    """SQL with ``:name`` placeholders and the values to bind to them."""

    sql: str
    parameters: dict[str, Any] = field(default_factory=dict)


def quote_identifier(name: str) -> str:
    return f"{IDENTIFIER_QUOTE}{name.replace(IDENTIFIER_QUOTE, IDENTIFIER_QUOTE * 2)}{IDENTIFIER_QUOTE}"


def qualified_table(database: Optional[str], table: str) -> str:
    if database:
        return f"{quote_identifier(database)}.{quote_identifier(table)}"
    return quote_identifier(table)


def quote_literal(value: str) -> str:
    """Render a string literal for DDL (DEFAULT clauses)."""
    escaped = value.replace("\\", "\\\\").replace("'", "''")
    return f"'{escaped}'"


def _bindsafe(sql: str) -> str:
    # sqlalchemy.text() treats ":name" as a bind; identifiers may contain colons
    return sql.replace(":", "\\:")


def column_definition(column: ColumnSpec, table_collation: Optional[str] = None) -> str:
    """
    Render one column definition.

    Args:
        column: Column to render
        table_collation: Collation applied to string-typed columns

    Returns:
        Column definition fragment such as: `name` VARCHAR(50) NOT NULL
    """
    parts = [quote_identifier(column.name), column.type_declaration]
    parts.append("NULL" if column.nullable else "NOT NULL")

    if column.auto_increment:
        parts.append("AUTO_INCREMENT")

    if column.default is not None:
        parts.append(f"DEFAULT {quote_literal(column.default)}")

    if table_collation and column.data_type.upper() in STRING_TYPES:
        parts.append(f"COLLATE {table_collation}")

    return " ".join(parts)


def create_table(database: Optional[str], definition: TableDefinition) -> str:
    clauses = [
        column_definition(column, definition.collation) for column in definition.columns
    ]

    primary_keys = definition.primary_keys
    if primary_keys:
        key_list = ", ".join(quote_identifier(name) for name in primary_keys)
        clauses.append(f"PRIMARY KEY ({key_list})")

    sql = (
        f"CREATE TABLE {qualified_table(database, definition.table_name)} "
        f"({', '.join(clauses)})"
    )
    if definition.collation:
        sql += f" DEFAULT CHARSET={definition.charset} COLLATE={definition.collation}"
    return sql


def drop_table(database: Optional[str], table: str) -> str:
    return f"DROP TABLE {qualified_table(database, table)}"


def add_column(
    database: Optional[str],
    table: str,
    column: ColumnSpec,
    collation: Optional[str] = None,
) -> str:
    sql = (
        f"ALTER TABLE {qualified_table(database, table)} "
        f"ADD COLUMN {column_definition(column, collation)}"
    )
    if column.primary_key:
        sql += f", ADD PRIMARY KEY ({quote_identifier(column.name)})"
    return sql


def drop_column(database: Optional[str], table: str, column: str) -> str:
    return f"ALTER TABLE {qualified_table(database, table)} DROP COLUMN {quote_identifier(column)}"


def insert_row(
    database: Optional[str], table: str, values: Mapping[str, Optional[str]]
) -> BoundStatement:
    """
    Build a parameterized INSERT.

    Args:
        database: Target database, or None for the session default
        table: Target table
        values: Column name to value; None inserts SQL NULL

    Returns:
        Bound INSERT statement
    """
    columns = list(values)
    placeholders = [f":p{i}" for i in range(len(columns))]
    column_list = ", ".join(quote_identifier(name) for name in columns)
    sql = (
        f"INSERT INTO {_bindsafe(qualified_table(database, table))} "
        f"({_bindsafe(column_list)}) VALUES ({', '.join(placeholders)})"
    )
    parameters = {f"p{i}": values[name] for i, name in enumerate(columns)}
    return BoundStatement(sql, parameters)


def update_row(
    database: Optional[str],
    table: str,
    primary_key: Optional[str],
    key_value: Any,
    updates: Mapping[str, Optional[str]],
) -> BoundStatement:
    """
    Build a parameterized UPDATE of one row identified by its primary key.

    Raises:
        DatabaseError: If the table has no primary key or nothing is updated
    """
    if not primary_key:
        raise DatabaseError("Cannot update rows of a table without a primary key")
    if not updates:
        raise DatabaseError("No columns to update")

    columns = list(updates)
    assignments = ", ".join(
        f"{_bindsafe(quote_identifier(name))} = :p{i}" for i, name in enumerate(columns)
    )
    key_param = f"p{len(columns)}"
    sql = (
        f"UPDATE {_bindsafe(qualified_table(database, table))} SET {assignments} "
        f"WHERE {_bindsafe(quote_identifier(primary_key))} = :{key_param}"
    )
    parameters = {f"p{i}": updates[name] for i, name in enumerate(columns)}
    parameters[key_param] = key_value
    return BoundStatement(sql, parameters)


def delete_row(
    database: Optional[str], table: str, primary_key: Optional[str], key_value: Any
) -> BoundStatement:
    if not primary_key:
        raise DatabaseError("Cannot delete rows of a table without a primary key")
    sql = (
        f"DELETE FROM {_bindsafe(qualified_table(database, table))} "
        f"WHERE {_bindsafe(quote_identifier(primary_key))} = :p0"
    )
    return BoundStatement(sql, {"p0": key_value})


def show_databases() -> str:
    return "SHOW DATABASES"


def show_tables(database: Optional[str] = None) -> str:
    if database:
        return f"SHOW TABLES FROM {quote_identifier(database)}"
    return "SHOW TABLES"


def describe_table(database: Optional[str], table: str) -> str:
    return f"DESCRIBE {qualified_table(database, table)}"


def show_create_table(database: Optional[str], table: str) -> str:
    return f"SHOW CREATE TABLE {qualified_table(database, table)}"


def use_database(database: str) -> str:
    return f"USE {quote_identifier(database)}"


def select_all(database: Optional[str], table: str) -> str:
    return f"SELECT * FROM {qualified_table(database, table)}"
