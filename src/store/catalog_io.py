"""Table catalog persistence helpers.

This module isolates JSON catalog IO and partition (de)serialization.
It keeps the region store focused on partition and adoption flow.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from core.errors import RangeloadStoreError
from core.types import KeyRange, PartitionInfo


def read_catalog_file(catalog_path: Path) -> dict[str, Any]:
    """Read and validate a table catalog payload.

    Args:
        catalog_path: Catalog JSON path.

    Returns:
        Parsed catalog object.

    Raises:
        RangeloadStoreError: If catalog is missing or invalid.
    """
    if not catalog_path.exists():
        raise RangeloadStoreError(
            f"Table catalog not found at {catalog_path}. "
            "Create the table before loading or reading it."
        )
    try:
        payload = json.loads(catalog_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise RangeloadStoreError(
            f"Failed to parse table catalog at {catalog_path}: {error.msg}. "
            "Restore the catalog from a backup."
        ) from error
    if not isinstance(payload, dict):
        raise RangeloadStoreError(
            f"Failed to parse table catalog at {catalog_path}: "
            "expected JSON object at top level. Restore the catalog."
        )
    return payload


def write_catalog_file(catalog_path: Path, catalog: dict[str, Any]) -> None:
    """Replace a catalog file atomically.

    Args:
        catalog_path: Catalog JSON path.
        catalog: Catalog payload.

    Raises:
        RangeloadStoreError: If the catalog cannot be written.
    """
    temp_path = catalog_path.with_name(catalog_path.name + ".tmp")
    try:
        temp_path.write_text(json.dumps(catalog, indent=2) + "\n", encoding="utf-8")
        os.replace(temp_path, catalog_path)
    except OSError as error:
        raise RangeloadStoreError(
            f"Failed to persist table catalog at {catalog_path}: {error}. "
            "Check write permissions and available disk space."
        ) from error


def partition_to_dict(partition: PartitionInfo) -> dict[str, Any]:
    """Serialize a partition into a JSON-safe dictionary."""
    end_key = partition.key_range.end_key
    return {
        "partition_id": partition.partition_id,
        "start_key": partition.key_range.start_key.hex(),
        "end_key": None if end_key is None else end_key.hex(),
    }


def partition_from_dict(payload: dict[str, Any]) -> PartitionInfo:
    """Deserialize a partition dictionary."""
    end_key = payload["end_key"]
    return PartitionInfo(
        partition_id=str(payload["partition_id"]),
        key_range=KeyRange(
            start_key=bytes.fromhex(str(payload["start_key"])),
            end_key=None if end_key is None else bytes.fromhex(str(end_key)),
        ),
    )


def build_partitions(split_keys: list[bytes], first_number: int) -> list[PartitionInfo]:
    """Build contiguous partitions covering the key space.

    Args:
        split_keys: Sorted, unique, non-empty boundary keys.
        first_number: Number used for the first partition id.

    Returns:
        ``len(split_keys) + 1`` partitions in key order.
    """
    starts = [b""] + split_keys
    ends: list[bytes | None] = [*split_keys, None]
    return [
        PartitionInfo(
            partition_id=partition_id_for(first_number + offset),
            key_range=KeyRange(start_key=start, end_key=end),
        )
        for offset, (start, end) in enumerate(zip(starts, ends))
    ]


def partition_id_for(number: int) -> str:
    """Format a partition id from its sequence number."""
    return f"p{number:05d}"
