"""Reduce side of the bulk load.

After every map task finished, each partition's runs from all producers
are merged into one ordered, de-duplicated cell stream and written as
that partition's sorted file.
"""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

from core.logging_config import get_logger
from core.types import PartitionInfo, SortedFileInfo
from store.sorted_file import write_sorted_file
from transforms.external_sort import latest_cells, merge_sorted_runs

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class PartitionWriteTask:
    """Inputs of one partition write task."""

    partition: PartitionInfo
    run_paths: tuple[Path, ...]
    output_path: Path
    family: bytes
    timestamp: int
    block_cells: int


def run_partition_write_task(task: PartitionWriteTask) -> SortedFileInfo:
    """Merge a partition's runs and write its sorted file.

    Args:
        task: Partition write task inputs.

    Returns:
        Footer metadata of the written file.

    Raises:
        RangeloadSortError: If a run cannot be read.
        RangeloadFileError: If the file cannot be written.
    """
    cells = latest_cells(merge_sorted_runs(task.run_paths), task.family, task.timestamp)
    info = write_sorted_file(
        task.output_path,
        cells,
        task.partition.key_range,
        task.family,
        task.block_cells,
    )
    for run_path in task.run_paths:
        with suppress(FileNotFoundError):
            run_path.unlink()
    _LOGGER.info(
        "partition_file_written",
        partition_id=task.partition.partition_id,
        path=str(task.output_path),
        run_count=len(task.run_paths),
        cell_count=info.cell_count,
        block_count=info.block_count,
    )
    return info
