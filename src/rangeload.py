"""Public SDK surface for Rangeload.

This module provides a stable import path for bulk load users.
It re-exports the pipeline entry points, store handle, and typed models.
"""

from __future__ import annotations

from core.config import RangeloadConfig
from core.schema import LOGS_SCHEMA, DatasetSchema
from core.types import (
    Cell,
    CommitResult,
    KeyRange,
    LoadOptions,
    LoadResult,
    PartitionInfo,
    SortedFileInfo,
    StageCounts,
)
from ingest.pipeline import BulkLoadRunner, commit_staged_files, run_bulk_load
from store.region_store import RegionStore
from store.sorted_file import SortedFileReader

__all__ = [
    "BulkLoadRunner",
    "Cell",
    "CommitResult",
    "DatasetSchema",
    "KeyRange",
    "LOGS_SCHEMA",
    "LoadOptions",
    "LoadResult",
    "PartitionInfo",
    "RangeloadConfig",
    "RegionStore",
    "SortedFileInfo",
    "SortedFileReader",
    "StageCounts",
    "commit_staged_files",
    "run_bulk_load",
]
