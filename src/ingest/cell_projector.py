"""Record to cell projection.

This module maps decoded records onto store cells keyed by field 0.
Qualifiers of a row are always emitted in ascending byte order.
"""

from __future__ import annotations

from core.schema import DatasetSchema
from core.types import Cell


class CellProjector:
    """Project field tuples into byte-ordered cells."""

    def __init__(self, schema: DatasetSchema, timestamp: int) -> None:
        """Precompute the byte order of the value columns.

        Args:
            schema: Extract schema.
            timestamp: Write version shared by every cell of the run.
        """
        self._family = schema.family_bytes
        self._timestamp = timestamp
        qualified = [
            (name.encode("utf-8"), position)
            for position, name in enumerate(schema.columns)
            if position > 0
        ]
        self._qualifiers = tuple(sorted(qualified))

    @property
    def qualifiers(self) -> tuple[bytes, ...]:
        """Value column names in emission order."""
        return tuple(qualifier for qualifier, _ in self._qualifiers)

    def project(self, fields: tuple[str, ...]) -> list[Cell]:
        """Build one cell per value column.

        Args:
            fields: Decoded record of full arity.

        Returns:
            Cells sorted by qualifier bytes.
        """
        row_key = fields[0].encode("utf-8")
        return [
            Cell(
                row_key=row_key,
                family=self._family,
                qualifier=qualifier,
                value=fields[position].encode("utf-8"),
                timestamp=self._timestamp,
            )
            for qualifier, position in self._qualifiers
        ]
