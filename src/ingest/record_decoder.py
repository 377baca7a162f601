"""Delimited record decoding.

This module splits raw extract lines into fixed-arity field tuples.
Lines with the wrong arity are dropped and counted, never raised.
"""

from __future__ import annotations

from core.schema import DatasetSchema


class RecordDecoder:
    """Stateless line decoder with a local rejection count."""

    def __init__(self, schema: DatasetSchema) -> None:
        self._schema = schema
        self._max_split = schema.field_count - 1
        self.rejected = 0

    def decode(self, line: str) -> tuple[str, ...] | None:
        """Split one line into exactly ``field_count`` fields.

        The line is split into at most ``field_count`` fields, so surplus
        delimiters stay inside the last field.

        Args:
            line: Raw input line, with or without its terminator.

        Returns:
            Field tuple, or ``None`` when the record is rejected.
        """
        fields = _strip_terminator(line).split(self._schema.delimiter, self._max_split)
        if len(fields) != self._schema.field_count:
            self.rejected += 1
            return None
        return tuple(fields)


def _strip_terminator(line: str) -> str:
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith(("\n", "\r")):
        return line[:-1]
    return line
