"""Column and table definition models."""

import re
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field

from pocketsql.utils.serialization import cell_to_text

# Base type plus an optional single-integer length: "int(11) unsigned" gives
# ("int", 11); "decimal(10,2)" gives ("decimal", None).
TYPE_PATTERN = re.compile(r"(\w+)(?:\((\d+)\))?")


class ColumnSpec(BaseModel):
    """One column of a table, as used for DDL and for describing tables."""

    name: str = Field(..., min_length=1, description="Column name")
    data_type: str = Field(..., min_length=1, description="Base type, e.g. VARCHAR")
    length: Optional[int] = Field(
        None, ge=1, description="Length or display width, when the type takes one"
    )
    nullable: bool = Field(default=True, description="Whether column allows NULL")
    primary_key: bool = Field(
        default=False, description="Whether column is part of primary key"
    )
    auto_increment: bool = Field(
        default=False, description="Whether column is AUTO_INCREMENT"
    )
    default: Optional[str] = Field(None, description="Default value, rendered as a literal")

    @staticmethod
    def parse_type(type_string: str) -> tuple[str, Optional[int]]:
        match = TYPE_PATTERN.search(type_string)
        if match is None:
            return type_string, None
        length = match.group(2)
        return match.group(1), int(length) if length else None

    @classmethod
    def from_describe_row(cls, row: Mapping[str, Any]) -> "ColumnSpec":
        """
        Build a column from one ``DESCRIBE`` row.

        Args:
            row: Mapping with Field, Type, Null, Key, Default and Extra keys

        Returns:
            Column specification
        """
        data_type, length = cls.parse_type(cell_to_text(row.get("Type")))
        default = row.get("Default")
        extra = cell_to_text(row.get("Extra")) if row.get("Extra") is not None else ""
        return cls(
            name=cell_to_text(row.get("Field")),
            data_type=data_type,
            length=length,
            nullable=cell_to_text(row.get("Null")) == "YES",
            primary_key=cell_to_text(row.get("Key")) == "PRI",
            auto_increment="auto_increment" in extra.lower(),
            default=None if default is None else cell_to_text(default),
        )

    @property
    def type_declaration(self) -> str:
        if self.length is not None:
            return f"{self.data_type}({self.length})"
        return self.data_type


class TableDefinition(BaseModel):
    """Everything needed to render a CREATE TABLE statement."""

    table_name: str = Field(..., min_length=1, description="Table name")
    columns: list[ColumnSpec] = Field(..., min_length=1, description="Column definitions")
    collation: Optional[str] = Field(
        None, description="Table collation, e.g. utf8mb4_unicode_ci"
    )

    @property
    def primary_keys(self) -> list[str]:
        return [column.name for column in self.columns if column.primary_key]

    @property
    def charset(self) -> Optional[str]:
        """Character set implied by the collation prefix."""
        if not self.collation:
            return None
        return self.collation.split("_")[0]
