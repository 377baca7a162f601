"""Local range-partitioned table store.

This module owns table catalogs, partition directories, and the adoption
of externally produced sorted files. A table is split into contiguous
partitions; each partition serves the sorted files adopted into it, and
reads resolve the newest version of every cell across those files.
"""

from __future__ import annotations

from contextlib import ExitStack
from datetime import datetime, timezone
import heapq
from itertools import groupby
from pathlib import Path
import shutil
import threading
from typing import Any, Iterable, Iterator, Sequence, cast

from core.config import RangeloadConfig
from core.constants import (
    CATALOG_FILE_NAME,
    PARTITIONS_DIR_NAME,
    SORTED_FILE_SUFFIX,
    TABLES_DIR_NAME,
)
from core.errors import RangeloadBoundaryDriftError, RangeloadStoreError
from core.logging_config import get_logger
from core.types import Cell, KeyRange, PartitionInfo
from store.catalog_io import (
    build_partitions,
    partition_from_dict,
    partition_id_for,
    partition_to_dict,
    read_catalog_file,
    write_catalog_file,
)
from store.sorted_file import (
    SortedFileReader,
    file_checksum,
    read_sorted_file_info,
    split_sorted_file,
)
from transforms.partition_locator import PartitionLocator

_LOGGER = get_logger(__name__)

Row = dict[bytes, bytes]


class RegionStore:
    """Filesystem-backed store handle.

    The handle is opened on construction and must be closed after use;
    it is also a context manager. Catalog mutations are serialized by a
    handle-wide lock so adoptions from parallel committers never race.
    """

    def __init__(self, config: RangeloadConfig) -> None:
        """Open a store rooted at ``config.data_root``.

        Args:
            config: Runtime configuration.
        """
        self._tables_root = config.data_root / TABLES_DIR_NAME
        self._tables_root.mkdir(parents=True, exist_ok=True)
        self._block_cells = config.block_cells
        self._lock = threading.RLock()
        self._closed = False

    def __enter__(self) -> "RegionStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the handle; further calls raise."""
        self._closed = True

    def create_table(
        self,
        table_name: str,
        column_family: str,
        split_keys: Sequence[bytes] = (),
    ) -> tuple[PartitionInfo, ...]:
        """Create a table pre-split at the given keys.

        Args:
            table_name: Table identifier.
            column_family: Single column family of the table.
            split_keys: Partition boundaries; order does not matter.

        Returns:
            Partitions of the new table.

        Raises:
            RangeloadStoreError: If the table exists or split keys are invalid.
        """
        self._ensure_open()
        keys = sorted(set(split_keys))
        if b"" in keys:
            raise RangeloadStoreError(
                f"Invalid split keys for table '{table_name}': the empty key cannot split."
            )
        with self._lock:
            if self.table_exists(table_name):
                raise RangeloadStoreError(
                    f"Table '{table_name}' already exists. Choose another name or reuse it."
                )
            partitions = build_partitions(keys, first_number=0)
            table_root = self._table_root(table_name)
            (table_root / PARTITIONS_DIR_NAME).mkdir(parents=True, exist_ok=True)
            catalog = {
                "table_name": table_name,
                "column_family": column_family,
                "created_at": _utc_now(),
                "next_partition_number": len(partitions),
                "next_file_sequence": 0,
                "partitions": [partition_to_dict(partition) for partition in partitions],
                "files": {},
                "adopted": {},
            }
            write_catalog_file(table_root / CATALOG_FILE_NAME, catalog)
        _LOGGER.info(
            "table_created",
            table_name=table_name,
            column_family=column_family,
            partition_count=len(partitions),
        )
        return tuple(partitions)

    def table_exists(self, table_name: str) -> bool:
        """Return whether a table catalog exists."""
        return (self._table_root(table_name) / CATALOG_FILE_NAME).exists()

    def partitions(self, table_name: str) -> tuple[PartitionInfo, ...]:
        """Return the current partition boundary set of a table."""
        catalog = self._read_catalog(table_name)
        return tuple(partition_from_dict(item) for item in catalog["partitions"])

    def column_family(self, table_name: str) -> bytes:
        """Return the column family a table was provisioned with."""
        catalog = self._read_catalog(table_name)
        return str(catalog["column_family"]).encode("utf-8")

    def partition_files(self, table_name: str, partition_id: str) -> list[Path]:
        """Return adopted files of a partition in adoption order."""
        catalog = self._read_catalog(table_name)
        return [
            self._family_dir(table_name, partition_id, catalog) / entry["file_name"]
            for entry in _file_entries(catalog, partition_id)
        ]

    def is_adopted(self, table_name: str, checksum: str) -> bool:
        """Return whether content with this checksum was already adopted."""
        catalog = self._read_catalog(table_name)
        return checksum in catalog["adopted"]

    def adopt_file(self, table_name: str, partition_id: str, source_path: Path) -> bool:
        """Adopt a sorted file as committed data of one partition.

        The file is copied into the partition directory, registered in the
        catalog, and only then removed from its source location. Adopting
        content that is already registered is a no-op.

        Args:
            table_name: Target table.
            partition_id: Partition that must contain every row of the file.
            source_path: Staged sorted file.

        Returns:
            ``True`` when adopted now, ``False`` when it already was.

        Raises:
            RangeloadStoreError: If the partition is gone or does not cover the file.
        """
        self._ensure_open()
        with self._lock:
            catalog = self._read_catalog(table_name)
            checksum = file_checksum(source_path)
            if checksum in catalog["adopted"]:
                _LOGGER.info(
                    "file_already_adopted",
                    table_name=table_name,
                    path=str(source_path),
                    checksum=checksum,
                )
                return False
            partition = _find_partition(catalog, table_name, partition_id)
            _validate_adoptable(catalog, partition, source_path)
            file_name = f"{checksum[:24]}{SORTED_FILE_SUFFIX}"
            target_dir = self._family_dir(table_name, partition_id, catalog)
            _install_file(source_path, target_dir / file_name)
            _register_file(catalog, partition_id, file_name, checksum)
            catalog["adopted"][checksum] = {
                "partition_ids": [partition_id],
                "adopted_at": _utc_now(),
            }
            write_catalog_file(self._catalog_path(table_name), catalog)
            source_path.unlink()
        _LOGGER.info(
            "file_adopted",
            table_name=table_name,
            partition_id=partition_id,
            file_name=file_name,
            source=str(source_path),
        )
        return True

    def record_adoption(
        self,
        table_name: str,
        checksum: str,
        partition_ids: Iterable[str],
    ) -> None:
        """Register content adopted through derived pieces, such as a split file."""
        self._ensure_open()
        with self._lock:
            catalog = self._read_catalog(table_name)
            catalog["adopted"][checksum] = {
                "partition_ids": list(partition_ids),
                "adopted_at": _utc_now(),
            }
            write_catalog_file(self._catalog_path(table_name), catalog)

    def split_partition(
        self,
        table_name: str,
        split_key: bytes,
    ) -> tuple[PartitionInfo, PartitionInfo]:
        """Split the partition containing ``split_key`` into two children.

        Files adopted by the parent are rewritten into the children so
        that every adopted file stays inside one partition.

        Args:
            table_name: Target table.
            split_key: First row key of the upper child.

        Returns:
            Lower and upper child partitions.

        Raises:
            RangeloadStoreError: If the key is already a partition boundary.
        """
        self._ensure_open()
        with self._lock:
            catalog = self._read_catalog(table_name)
            partitions = [partition_from_dict(item) for item in catalog["partitions"]]
            parent_index = PartitionLocator(partitions).locate(split_key)
            parent = partitions[parent_index]
            if parent.key_range.start_key == split_key:
                raise RangeloadStoreError(
                    f"Cannot split partition {parent.partition_id} of '{table_name}' at "
                    f"{split_key!r}: key is already a partition boundary."
                )
            children = _child_partitions(catalog, parent, split_key)
            self._move_files_to_children(table_name, catalog, parent, children)
            partitions[parent_index : parent_index + 1] = list(children)
            catalog["partitions"] = [partition_to_dict(partition) for partition in partitions]
            write_catalog_file(self._catalog_path(table_name), catalog)
            shutil.rmtree(self._partition_root(table_name, parent.partition_id), ignore_errors=True)
        _LOGGER.info(
            "partition_split",
            table_name=table_name,
            parent_id=parent.partition_id,
            lower_id=children[0].partition_id,
            upper_id=children[1].partition_id,
        )
        return children

    def get(self, table_name: str, row_key: bytes) -> Row:
        """Return the newest value of every column of one row.

        Args:
            table_name: Target table.
            row_key: Row to read.

        Returns:
            Column name to value mapping, empty when the row is absent.
        """
        self._ensure_open()
        partitions = self.partitions(table_name)
        partition = partitions[PartitionLocator(partitions).locate(row_key)]
        versions: dict[bytes, tuple[int, int, bytes]] = {}
        for sequence, path in enumerate(self.partition_files(table_name, partition.partition_id)):
            with SortedFileReader(path) as reader:
                for cell in reader.get(row_key):
                    _keep_newest(versions, cell, sequence)
        return {qualifier: versions[qualifier][2] for qualifier in sorted(versions)}

    def scan(self, table_name: str) -> Iterator[tuple[bytes, Row]]:
        """Yield every row of a table in key order with its newest values."""
        self._ensure_open()
        for partition in self.partitions(table_name):
            yield from self._scan_partition(table_name, partition.partition_id)

    def _scan_partition(self, table_name: str, partition_id: str) -> Iterator[tuple[bytes, Row]]:
        with ExitStack() as stack:
            readers = [
                stack.enter_context(SortedFileReader(path))
                for path in self.partition_files(table_name, partition_id)
            ]
            streams = [
                ((cell, sequence) for cell in reader.scan())
                for sequence, reader in enumerate(readers)
            ]
            merged = heapq.merge(*streams, key=lambda item: (item[0].row_key, item[0].qualifier))
            for row_key, row_items in groupby(merged, key=lambda item: item[0].row_key):
                versions: dict[bytes, tuple[int, int, bytes]] = {}
                for cell, sequence in row_items:
                    _keep_newest(versions, cell, sequence)
                yield row_key, {qualifier: versions[qualifier][2] for qualifier in versions}

    def _move_files_to_children(
        self,
        table_name: str,
        catalog: dict[str, Any],
        parent: PartitionInfo,
        children: tuple[PartitionInfo, PartitionInfo],
    ) -> None:
        """Rewrite the parent's adopted files into the child partitions."""
        parent_dir = self._family_dir(table_name, parent.partition_id, catalog)
        work_dir = self._partition_root(table_name, parent.partition_id) / "_splitting"
        for entry in _file_entries(catalog, parent.partition_id):
            pieces = split_sorted_file(
                parent_dir / entry["file_name"], children, work_dir, self._block_cells
            )
            for child, info in pieces:
                checksum = file_checksum(info.path)
                file_name = f"{checksum[:24]}{SORTED_FILE_SUFFIX}"
                child_dir = self._family_dir(table_name, child.partition_id, catalog)
                _install_file(info.path, child_dir / file_name)
                info.path.unlink()
                catalog["files"].setdefault(child.partition_id, []).append(
                    {
                        "file_name": file_name,
                        "checksum": checksum,
                        "sequence": entry["sequence"],
                        "adopted_at": entry["adopted_at"],
                    }
                )
        catalog["files"].pop(parent.partition_id, None)

    def _read_catalog(self, table_name: str) -> dict[str, Any]:
        self._ensure_open()
        with self._lock:
            return read_catalog_file(self._catalog_path(table_name))

    def _ensure_open(self) -> None:
        if self._closed:
            raise RangeloadStoreError(
                "Store handle is closed. Open a new RegionStore before issuing requests."
            )

    def _table_root(self, table_name: str) -> Path:
        return self._tables_root / table_name

    def _catalog_path(self, table_name: str) -> Path:
        return self._table_root(table_name) / CATALOG_FILE_NAME

    def _partition_root(self, table_name: str, partition_id: str) -> Path:
        return self._table_root(table_name) / PARTITIONS_DIR_NAME / partition_id

    def _family_dir(self, table_name: str, partition_id: str, catalog: dict[str, Any]) -> Path:
        return self._partition_root(table_name, partition_id) / str(catalog["column_family"])


def _find_partition(catalog: dict[str, Any], table_name: str, partition_id: str) -> PartitionInfo:
    """Return a current partition by id.

    Raises:
        RangeloadStoreError: If the partition no longer exists.
    """
    for item in catalog["partitions"]:
        if item["partition_id"] == partition_id:
            return partition_from_dict(item)
    raise RangeloadBoundaryDriftError(
        f"Partition {partition_id} of table '{table_name}' no longer exists. "
        "Re-read the partition boundaries and retry the commit."
    )


def _validate_adoptable(catalog: dict[str, Any], partition: PartitionInfo, path: Path) -> None:
    """Check family and key span of a file against its target partition."""
    info = read_sorted_file_info(path)
    family = str(catalog["column_family"]).encode("utf-8")
    if info.family != family:
        raise RangeloadStoreError(
            f"Cannot adopt {path}: column family {info.family!r} does not match "
            f"table family {family!r}."
        )
    if info.first_row is None or info.last_row is None:
        raise RangeloadStoreError(f"Cannot adopt {path}: the file holds no cells.")
    if not partition.key_range.covers(info.first_row, info.last_row):
        raise RangeloadBoundaryDriftError(
            f"Cannot adopt {path} into partition {partition.partition_id} "
            f"{partition.key_range.describe()}: rows {info.first_row!r}..{info.last_row!r} "
            "fall outside the partition. Split the file against current boundaries."
        )


def _install_file(source_path: Path, target_path: Path) -> None:
    """Copy a file into place under a temporary name, then rename it."""
    target_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target_path.with_name(target_path.name + ".tmp")
    try:
        shutil.copyfile(source_path, temp_path)
        temp_path.replace(target_path)
    except OSError as error:
        raise RangeloadStoreError(
            f"Failed to install {source_path} at {target_path}: {error}. "
            "Check store permissions and available disk space."
        ) from error


def _register_file(
    catalog: dict[str, Any],
    partition_id: str,
    file_name: str,
    checksum: str,
) -> None:
    sequence = int(catalog["next_file_sequence"])
    catalog["next_file_sequence"] = sequence + 1
    catalog["files"].setdefault(partition_id, []).append(
        {
            "file_name": file_name,
            "checksum": checksum,
            "sequence": sequence,
            "adopted_at": _utc_now(),
        }
    )


def _file_entries(catalog: dict[str, Any], partition_id: str) -> list[dict[str, Any]]:
    """Return file entries of a partition ordered by adoption sequence."""
    entries = cast(list[dict[str, Any]], catalog["files"].get(partition_id, []))
    return sorted(entries, key=lambda entry: int(entry["sequence"]))


def _child_partitions(
    catalog: dict[str, Any],
    parent: PartitionInfo,
    split_key: bytes,
) -> tuple[PartitionInfo, PartitionInfo]:
    number = int(catalog["next_partition_number"])
    catalog["next_partition_number"] = number + 2
    return (
        PartitionInfo(
            partition_id=partition_id_for(number),
            key_range=KeyRange(start_key=parent.key_range.start_key, end_key=split_key),
        ),
        PartitionInfo(
            partition_id=partition_id_for(number + 1),
            key_range=KeyRange(start_key=split_key, end_key=parent.key_range.end_key),
        ),
    )


def _keep_newest(versions: dict[bytes, tuple[int, int, bytes]], cell: Cell, sequence: int) -> None:
    """Keep the newest version of a column; later files win timestamp ties."""
    candidate = (cell.timestamp, sequence, cell.value)
    current = versions.get(cell.qualifier)
    if current is None or candidate[:2] >= current[:2]:
        versions[cell.qualifier] = candidate


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
