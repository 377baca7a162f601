"""Spill-to-disk sort for partitioned cells.

Map tasks buffer cells per partition and spill sorted runs as Parquet
files once a cell threshold is reached. After every producer finished,
the runs of one partition are merged with a streaming k-way merge and
collapsed so that the last cell in input order wins for each
``(row_key, qualifier)`` pair.

Run entries are tuples ``(row_key, qualifier, split_index, line_number,
value)``; the first four members are unique per cell, so tuple ordering
never compares values.
"""

from __future__ import annotations

import heapq
from pathlib import Path
from typing import Iterable, Iterator

import pyarrow as pa
import pyarrow.parquet as pq

from core.constants import MERGE_READ_BATCH_SIZE
from core.errors import RangeloadSortError
from core.types import Cell

RunEntry = tuple[bytes, bytes, int, int, bytes]

SPILL_SCHEMA = pa.schema(
    [
        pa.field("row_key", pa.binary(), nullable=False),
        pa.field("qualifier", pa.binary(), nullable=False),
        pa.field("split_index", pa.int32(), nullable=False),
        pa.field("line_number", pa.int64(), nullable=False),
        pa.field("value", pa.binary(), nullable=False),
    ]
)


class SpillBuffer:
    """Per-task cell buffer that spills sorted runs per partition."""

    def __init__(self, spill_dir: Path, threshold_cells: int, split_index: int) -> None:
        self._spill_dir = spill_dir
        self._threshold_cells = threshold_cells
        self._split_index = split_index
        self._buffers: dict[int, list[RunEntry]] = {}
        self._buffered = 0
        self._run_paths: dict[int, list[Path]] = {}
        self._run_count = 0

    @property
    def run_paths(self) -> dict[int, tuple[Path, ...]]:
        """Spilled run files keyed by partition index."""
        return {index: tuple(paths) for index, paths in sorted(self._run_paths.items())}

    def add(self, partition_index: int, cell: Cell, line_number: int) -> None:
        """Buffer one cell and spill when the threshold is reached."""
        entry = (cell.row_key, cell.qualifier, self._split_index, line_number, cell.value)
        self._buffers.setdefault(partition_index, []).append(entry)
        self._buffered += 1
        if self._buffered >= self._threshold_cells:
            self.flush()

    def flush(self) -> None:
        """Sort and spill every non-empty partition buffer."""
        for partition_index, entries in sorted(self._buffers.items()):
            entries.sort()
            run_path = self._next_run_path(partition_index)
            write_run(run_path, entries)
            self._run_paths.setdefault(partition_index, []).append(run_path)
        self._buffers = {}
        self._buffered = 0

    def _next_run_path(self, partition_index: int) -> Path:
        run_path = (
            self._spill_dir
            / f"partition-{partition_index:05d}"
            / f"run-{self._run_count:05d}.parquet"
        )
        self._run_count += 1
        return run_path


def write_run(run_path: Path, entries: list[RunEntry]) -> None:
    """Write one sorted run file.

    Args:
        run_path: Destination run path.
        entries: Entries already in ascending order.

    Raises:
        RangeloadSortError: If the run cannot be written.
    """
    columns = list(zip(*entries)) if entries else [[] for _ in SPILL_SCHEMA]
    table = pa.Table.from_arrays(
        [pa.array(values, type=field.type) for values, field in zip(columns, SPILL_SCHEMA)],
        schema=SPILL_SCHEMA,
    )
    try:
        run_path.parent.mkdir(parents=True, exist_ok=True)
        pq.write_table(table, run_path)
    except (OSError, pa.ArrowException) as error:
        raise RangeloadSortError(
            f"Failed to spill sorted run at {run_path}: {error}. "
            "Check free space under the staging directory."
        ) from error


def iter_run(run_path: Path) -> Iterator[RunEntry]:
    """Stream entries of one run file in stored order."""
    try:
        run_file = pq.ParquetFile(run_path)
        for batch in run_file.iter_batches(batch_size=MERGE_READ_BATCH_SIZE):
            columns = [batch.column(name).to_pylist() for name in SPILL_SCHEMA.names]
            yield from zip(*columns)
    except (OSError, pa.ArrowException) as error:
        raise RangeloadSortError(
            f"Failed to read sorted run at {run_path}: {error}. "
            "Rerun the load to regenerate spill files."
        ) from error


def merge_sorted_runs(run_paths: Iterable[Path]) -> Iterator[RunEntry]:
    """Merge sorted runs from every producer into one ordered stream.

    Args:
        run_paths: Run files of one partition.

    Returns:
        Entries in ascending ``(row_key, qualifier, split_index, line_number)``.
    """
    return heapq.merge(*(iter_run(path) for path in run_paths))


def latest_cells(entries: Iterable[RunEntry], family: bytes, timestamp: int) -> Iterator[Cell]:
    """Collapse duplicate ``(row_key, qualifier)`` pairs, keeping the last.

    Args:
        entries: Merged entries in ascending order.
        family: Column family for emitted cells.
        timestamp: Write version for emitted cells.

    Yields:
        Cells with unique, strictly ascending ``(row_key, qualifier)``.
    """
    pending: RunEntry | None = None
    for entry in entries:
        if pending is not None and pending[:2] != entry[:2]:
            yield _cell_from_entry(pending, family, timestamp)
        pending = entry
    if pending is not None:
        yield _cell_from_entry(pending, family, timestamp)


def _cell_from_entry(entry: RunEntry, family: bytes, timestamp: int) -> Cell:
    row_key, qualifier, _, _, value = entry
    return Cell(
        row_key=row_key,
        family=family,
        qualifier=qualifier,
        value=value,
        timestamp=timestamp,
    )
