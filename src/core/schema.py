"""Dataset schema definition for delimited extracts.

This module defines the immutable schema value handed to the decoder
and projector, plus the built-in schema of the ``tbl_logs`` extract.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.constants import (
    DEFAULT_COLUMN_FAMILY,
    DEFAULT_FIELD_DELIMITER,
    DEFAULT_TABLE_NAME,
    LOGS_COLUMNS,
)
from core.errors import RangeloadConfigError


@dataclass(frozen=True)
class DatasetSchema:
    """Immutable layout of one delimited extract.

    Attributes:
        table_name: Target table name.
        columns: Ordered column names; the first one is the row key.
        column_family: Column family every non-key column is written to.
        delimiter: Field delimiter of input lines.
    """

    table_name: str
    columns: tuple[str, ...]
    column_family: str
    delimiter: str = DEFAULT_FIELD_DELIMITER

    def __post_init__(self) -> None:
        if len(self.columns) < 2:
            raise RangeloadConfigError(
                f"Invalid schema for {self.table_name}: expected a row key column and at "
                f"least one value column, got {len(self.columns)} columns."
            )
        if len(set(self.columns)) != len(self.columns):
            raise RangeloadConfigError(
                f"Invalid schema for {self.table_name}: column names must be unique."
            )
        if not self.delimiter:
            raise RangeloadConfigError(
                f"Invalid schema for {self.table_name}: delimiter must not be empty."
            )

    @property
    def field_count(self) -> int:
        """Number of fields a valid record has."""
        return len(self.columns)

    @property
    def family_bytes(self) -> bytes:
        """Column family encoded for cells."""
        return self.column_family.encode("utf-8")


LOGS_SCHEMA = DatasetSchema(
    table_name=DEFAULT_TABLE_NAME,
    columns=LOGS_COLUMNS,
    column_family=DEFAULT_COLUMN_FAMILY,
)
