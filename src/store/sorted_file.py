"""Immutable sorted partition files.

This module writes, reads, and splits the indexed files handed to the
store. A file is a Parquet file whose row groups are the blocks; the
footer carries a block index plus the declared partition range, so a
point lookup only reads the blocks whose key span covers the row.
"""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass
import hashlib
from itertools import groupby
import json
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

import pyarrow as pa
import pyarrow.parquet as pq

from core.constants import (
    HASH_ALGORITHM,
    SORTED_FILE_FORMAT_VERSION,
    SORTED_FILE_METADATA_KEY,
    SORTED_FILE_SUFFIX,
)
from core.errors import RangeloadFileError
from core.logging_config import get_logger
from core.types import Cell, KeyRange, PartitionInfo, SortedFileInfo
from transforms.partition_locator import PartitionLocator

_LOGGER = get_logger(__name__)

SORTED_FILE_SCHEMA = pa.schema(
    [
        pa.field("row_key", pa.binary(), nullable=False),
        pa.field("qualifier", pa.binary(), nullable=False),
        pa.field("value", pa.binary(), nullable=False),
        pa.field("timestamp", pa.int64(), nullable=False),
    ]
)
_IN_PROGRESS_SUFFIX = ".inprogress"


@dataclass(frozen=True)
class BlockIndexEntry:
    """Key span of one block."""

    first_row: bytes
    last_row: bytes
    cell_count: int


def write_sorted_file(
    path: Path,
    cells: Iterable[Cell],
    key_range: KeyRange,
    family: bytes,
    block_cells: int,
) -> SortedFileInfo:
    """Write one partition's sorted cells as an indexed immutable file.

    Cells must arrive in strictly ascending ``(row_key, qualifier)``
    order and inside ``key_range``. The file is built under a temporary
    name and renamed into place once complete.

    Args:
        path: Destination path; must not exist.
        cells: Sorted cells of one partition.
        key_range: Partition range the file is written for.
        family: Column family shared by every cell.
        block_cells: Cells per indexed block.

    Returns:
        Footer metadata of the written file.

    Raises:
        RangeloadFileError: If the path exists or the cells are invalid.
    """
    if path.exists():
        raise RangeloadFileError(
            f"Refusing to write sorted file {path}: destination already exists. "
            "Clear the staging directory before rerunning the load."
        )
    in_progress_path = path.with_name(path.name + _IN_PROGRESS_SUFFIX)
    path.parent.mkdir(parents=True, exist_ok=True)
    builder = _SortedFileBuilder(in_progress_path, key_range, family, block_cells)
    completed = False
    try:
        for cell in cells:
            builder.add(cell)
        builder.finish()
        in_progress_path.replace(path)
        completed = True
    except (OSError, pa.ArrowException) as error:
        raise RangeloadFileError(
            f"Failed to write sorted file {path}: {error}. "
            "Check free space under the staging directory."
        ) from error
    finally:
        if not completed:
            builder.abort()
            with suppress(FileNotFoundError):
                in_progress_path.unlink()
    info = read_sorted_file_info(path)
    _LOGGER.debug(
        "sorted_file_written",
        path=str(path),
        cell_count=info.cell_count,
        block_count=info.block_count,
    )
    return info


def read_sorted_file_info(path: Path) -> SortedFileInfo:
    """Read footer metadata of a sorted file.

    Args:
        path: Sorted file path.

    Returns:
        Parsed file metadata.

    Raises:
        RangeloadFileError: If the file is missing or not a sorted file.
    """
    with SortedFileReader(path) as reader:
        return reader.info


class SortedFileReader:
    """Block-indexed reader over one sorted file."""

    def __init__(self, path: Path) -> None:
        try:
            self._parquet = pq.ParquetFile(path)
        except (OSError, pa.ArrowException) as error:
            raise RangeloadFileError(
                f"Failed to open sorted file {path}: {error}. "
                "Regenerate the file by rerunning the load."
            ) from error
        try:
            payload = _read_footer_payload(path, self._parquet)
        except RangeloadFileError:
            self._parquet.close()
            raise
        self._blocks = tuple(
            BlockIndexEntry(
                first_row=bytes.fromhex(block["first_row"]),
                last_row=bytes.fromhex(block["last_row"]),
                cell_count=int(block["cell_count"]),
            )
            for block in payload["blocks"]
        )
        self._info = _info_from_payload(path, payload, len(self._blocks))

    def __enter__(self) -> "SortedFileReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the underlying file handle."""
        self._parquet.close()

    @property
    def info(self) -> SortedFileInfo:
        """Footer metadata of the file."""
        return self._info

    @property
    def blocks(self) -> tuple[BlockIndexEntry, ...]:
        """Block index in key order."""
        return self._blocks

    def scan(self) -> Iterator[Cell]:
        """Yield every cell in file order."""
        for block_number in range(len(self._blocks)):
            yield from self._read_block(block_number)

    def get(self, row_key: bytes) -> list[Cell]:
        """Return the cells of one row, reading only matching blocks."""
        cells: list[Cell] = []
        for block_number, block in enumerate(self._blocks):
            if block.first_row > row_key:
                break
            if block.last_row < row_key:
                continue
            cells.extend(cell for cell in self._read_block(block_number) if cell.row_key == row_key)
        return cells

    def _read_block(self, block_number: int) -> Iterator[Cell]:
        try:
            table = self._parquet.read_row_group(block_number)
        except (OSError, pa.ArrowException) as error:
            raise RangeloadFileError(
                f"Failed to read block {block_number} of sorted file {self._info.path}: "
                f"{error}. Regenerate the file by rerunning the load."
            ) from error
        columns = [table.column(name).to_pylist() for name in SORTED_FILE_SCHEMA.names]
        family = self._info.family
        for row_key, qualifier, value, timestamp in zip(*columns):
            yield Cell(
                row_key=row_key,
                family=family,
                qualifier=qualifier,
                value=value,
                timestamp=timestamp,
            )


def split_sorted_file(
    path: Path,
    partitions: Sequence[PartitionInfo],
    output_dir: Path,
    block_cells: int,
) -> list[tuple[PartitionInfo, SortedFileInfo]]:
    """Rewrite a sorted file into one file per overlapping partition.

    Args:
        path: Source sorted file.
        partitions: Current partitions, ordered by start key.
        output_dir: Directory receiving the pieces.
        block_cells: Cells per indexed block in the pieces.

    Returns:
        Pairs of target partition and written piece, in key order.

    Raises:
        RangeloadMappingError: If a row falls outside every partition.
        RangeloadFileError: If a piece cannot be written.
    """
    locator = PartitionLocator(partitions)
    pieces: list[tuple[PartitionInfo, SortedFileInfo]] = []
    stem = path.name.removesuffix(SORTED_FILE_SUFFIX)
    with SortedFileReader(path) as reader:
        cells_by_partition = groupby(reader.scan(), key=lambda cell: locator.locate(cell.row_key))
        for partition_index, group in cells_by_partition:
            partition = locator.partitions[partition_index]
            piece_path = output_dir / f"{stem}.{partition.partition_id}{SORTED_FILE_SUFFIX}"
            with suppress(FileNotFoundError):
                piece_path.unlink()
            info = write_sorted_file(
                piece_path, group, partition.key_range, reader.info.family, block_cells
            )
            pieces.append((partition, info))
    return pieces


def file_checksum(path: Path) -> str:
    """Return the content digest of a file."""
    hasher = hashlib.new(HASH_ALGORITHM)
    try:
        with open(path, "rb") as handle:
            for chunk in iter(lambda: handle.read(1 << 20), b""):
                hasher.update(chunk)
    except OSError as error:
        raise RangeloadFileError(f"Failed to checksum {path}: {error}.") from error
    return hasher.hexdigest()


class _SortedFileBuilder:
    """Incremental block writer enforcing cell order."""

    def __init__(self, path: Path, key_range: KeyRange, family: bytes, block_cells: int) -> None:
        self._path = path
        self._key_range = key_range
        self._family = family
        self._block_cells = block_cells
        self._writer = pq.ParquetWriter(path, SORTED_FILE_SCHEMA)
        self._pending: list[Cell] = []
        self._blocks: list[BlockIndexEntry] = []
        self._last_key: tuple[bytes, bytes] | None = None
        self._cell_count = 0

    def add(self, cell: Cell) -> None:
        self._check_cell(cell)
        self._pending.append(cell)
        self._cell_count += 1
        if len(self._pending) >= self._block_cells:
            self._flush_block()

    def finish(self) -> None:
        self._flush_block()
        payload = {
            "format_version": SORTED_FILE_FORMAT_VERSION,
            "family": self._family.hex(),
            "start_key": self._key_range.start_key.hex(),
            "end_key": None if self._key_range.end_key is None else self._key_range.end_key.hex(),
            "first_row": self._blocks[0].first_row.hex() if self._blocks else None,
            "last_row": self._blocks[-1].last_row.hex() if self._blocks else None,
            "cell_count": self._cell_count,
            "blocks": [
                {
                    "first_row": block.first_row.hex(),
                    "last_row": block.last_row.hex(),
                    "cell_count": block.cell_count,
                }
                for block in self._blocks
            ],
        }
        self._writer.add_key_value_metadata({SORTED_FILE_METADATA_KEY: json.dumps(payload)})
        self._writer.close()

    def abort(self) -> None:
        with suppress(OSError, pa.ArrowException):
            self._writer.close()

    def _check_cell(self, cell: Cell) -> None:
        if cell.family != self._family:
            raise RangeloadFileError(
                f"Cell family {cell.family!r} does not match file family {self._family!r} "
                f"while writing {self._path}."
            )
        if not self._key_range.contains(cell.row_key):
            raise RangeloadFileError(
                f"Row key {cell.row_key!r} lies outside partition range "
                f"{self._key_range.describe()} while writing {self._path}. "
                "A sorted file must not straddle partition boundaries."
            )
        key = (cell.row_key, cell.qualifier)
        if self._last_key is not None and key <= self._last_key:
            problem = "duplicates" if key == self._last_key else "precedes"
            raise RangeloadFileError(
                f"Cell {key!r} {problem} the previous cell {self._last_key!r} "
                f"while writing {self._path}. Cells must arrive sorted by row and column."
            )
        self._last_key = key

    def _flush_block(self) -> None:
        if not self._pending:
            return
        block = self._pending
        table = pa.Table.from_arrays(
            [
                pa.array([cell.row_key for cell in block], type=pa.binary()),
                pa.array([cell.qualifier for cell in block], type=pa.binary()),
                pa.array([cell.value for cell in block], type=pa.binary()),
                pa.array([cell.timestamp for cell in block], type=pa.int64()),
            ],
            schema=SORTED_FILE_SCHEMA,
        )
        self._writer.write_table(table, row_group_size=len(block))
        self._blocks.append(
            BlockIndexEntry(
                first_row=block[0].row_key,
                last_row=block[-1].row_key,
                cell_count=len(block),
            )
        )
        self._pending = []


def _read_footer_payload(path: Path, parquet_file: pq.ParquetFile) -> dict[str, Any]:
    """Parse the sorted-file footer payload."""
    key_value_metadata = parquet_file.metadata.metadata or {}
    encoded = key_value_metadata.get(SORTED_FILE_METADATA_KEY.encode("utf-8"))
    if encoded is None:
        raise RangeloadFileError(
            f"File {path} is not a sorted partition file: footer index is missing."
        )
    try:
        payload = json.loads(encoded)
    except json.JSONDecodeError as error:
        raise RangeloadFileError(
            f"Failed to parse footer index of {path}: {error.msg}. "
            "Regenerate the file by rerunning the load."
        ) from error
    if payload.get("format_version") != SORTED_FILE_FORMAT_VERSION:
        raise RangeloadFileError(
            f"Unsupported sorted file version in {path}: {payload.get('format_version')}."
        )
    return payload


def _info_from_payload(path: Path, payload: dict[str, Any], block_count: int) -> SortedFileInfo:
    end_key = payload["end_key"]
    first_row = payload["first_row"]
    last_row = payload["last_row"]
    return SortedFileInfo(
        path=path,
        key_range=KeyRange(
            start_key=bytes.fromhex(payload["start_key"]),
            end_key=None if end_key is None else bytes.fromhex(end_key),
        ),
        first_row=None if first_row is None else bytes.fromhex(first_row),
        last_row=None if last_row is None else bytes.fromhex(last_row),
        cell_count=int(payload["cell_count"]),
        block_count=block_count,
        family=bytes.fromhex(payload["family"]),
    )
