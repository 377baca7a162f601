"""Row key to partition mapping.

This module resolves which partition of a boundary set owns a row key,
using the same byte-lexicographic order as the store.
"""

from __future__ import annotations

from bisect import bisect_right
from typing import Sequence

from core.errors import RangeloadMappingError
from core.types import PartitionInfo


class PartitionLocator:
    """Total-order partitioner over a fixed boundary set."""

    def __init__(self, partitions: Sequence[PartitionInfo]) -> None:
        """Validate and index a boundary set.

        Args:
            partitions: Partitions ordered by start key.

        Raises:
            RangeloadMappingError: If the set is empty, unordered, or overlapping.
        """
        _validate_boundaries(partitions)
        self._partitions = tuple(partitions)
        self._start_keys = [partition.key_range.start_key for partition in partitions]

    @property
    def partitions(self) -> tuple[PartitionInfo, ...]:
        """Partitions in key order."""
        return self._partitions

    def locate(self, row_key: bytes) -> int:
        """Return the index of the partition containing a row key.

        Args:
            row_key: Row key bytes.

        Returns:
            Index into ``partitions``.

        Raises:
            RangeloadMappingError: If no partition range contains the key.
        """
        index = bisect_right(self._start_keys, row_key) - 1
        if index < 0 or not self._partitions[index].key_range.contains(row_key):
            raise RangeloadMappingError(
                f"Row key {row_key!r} falls outside every partition range. "
                "The table boundaries do not cover the input; recreate the table "
                "or fix its partition catalog before loading."
            )
        return index


def _validate_boundaries(partitions: Sequence[PartitionInfo]) -> None:
    """Check ordering and disjointness of partition ranges."""
    if not partitions:
        raise RangeloadMappingError(
            "Cannot map row keys: the table has no partitions. Create the table first."
        )
    for previous, current in zip(partitions, partitions[1:]):
        previous_end = previous.key_range.end_key
        if previous_end is None or previous_end > current.key_range.start_key:
            raise RangeloadMappingError(
                f"Partition {previous.partition_id} {previous.key_range.describe()} overlaps "
                f"or is not ordered before {current.partition_id} "
                f"{current.key_range.describe()}. Repair the table catalog."
            )
