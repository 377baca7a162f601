"""Map side of the bulk load.

One map task owns one input split: it decodes and projects every line,
routes the cells to their partition, and spills sorted runs. Tasks share
no state and return their counts and run files as values.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from core.config import RangeloadConfig
from core.logging_config import get_logger
from core.schema import DatasetSchema
from core.types import PartitionInfo, StageCounts
from ingest.cell_projector import CellProjector
from ingest.input_reader import InputSplit, read_split_lines
from ingest.record_decoder import RecordDecoder
from transforms.external_sort import SpillBuffer
from transforms.partition_locator import PartitionLocator

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class MapTask:
    """Inputs of one map task.

    Attributes:
        split: Input split to process.
        schema: Extract schema.
        partitions: Boundary set read at job start.
        timestamp: Write version of the run.
        spill_dir: Root directory for spilled runs.
        config: Runtime configuration.
    """

    split: InputSplit
    schema: DatasetSchema
    partitions: tuple[PartitionInfo, ...]
    timestamp: int
    spill_dir: Path
    config: RangeloadConfig


@dataclass(frozen=True)
class MapTaskResult:
    """Outputs of one map task.

    Attributes:
        split_index: Index of the processed split.
        counts: Local record and cell counts.
        run_paths: Spilled runs keyed by partition index.
    """

    split_index: int
    counts: StageCounts
    run_paths: dict[int, tuple[Path, ...]]


def run_map_task(task: MapTask) -> MapTaskResult:
    """Decode, project, and partition one split into sorted runs.

    Args:
        task: Map task inputs.

    Returns:
        Counts and spilled run files of the split.

    Raises:
        RangeloadMappingError: If a row key falls outside every partition.
        RangeloadIngestError: If the split cannot be read.
        RangeloadSortError: If a run cannot be spilled.
    """
    decoder = RecordDecoder(task.schema)
    projector = CellProjector(task.schema, task.timestamp)
    locator = PartitionLocator(task.partitions)
    buffer = SpillBuffer(
        task.spill_dir / f"task-{task.split.index:05d}",
        task.config.spill_threshold_cells,
        task.split.index,
    )
    records_read = 0
    cells_emitted = 0
    for line_number, line in enumerate(read_split_lines(task.split, task.config), 1):
        records_read += 1
        fields = decoder.decode(line)
        if fields is None:
            continue
        cells = projector.project(fields)
        partition_index = locator.locate(cells[0].row_key)
        for cell in cells:
            buffer.add(partition_index, cell, line_number)
        cells_emitted += len(cells)
    buffer.flush()
    counts = StageCounts(
        records_read=records_read,
        records_rejected=decoder.rejected,
        cells_emitted=cells_emitted,
    )
    _LOGGER.info(
        "map_task_completed",
        split=task.split.uri,
        split_index=task.split.index,
        records_read=counts.records_read,
        records_rejected=counts.records_rejected,
        cells_emitted=counts.cells_emitted,
    )
    return MapTaskResult(
        split_index=task.split.index,
        counts=counts,
        run_paths=buffer.run_paths,
    )
