"""Bulk commit of staged sorted files.

This module adopts the partition files of a finished load into the live
store. Each file is re-validated against the current boundaries, split
when partitions moved since it was generated, and adopted by checksum so
that a retried commit never duplicates data.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from core.constants import SORTED_FILE_SUFFIX, SPLIT_DIR_NAME
from core.errors import (
    RangeloadBoundaryDriftError,
    RangeloadCommitError,
    RangeloadError,
    RangeloadFileError,
)
from core.logging_config import get_logger
from core.types import CommitResult, FileCommitFailure, SortedFileInfo
from store.region_store import RegionStore
from store.sorted_file import file_checksum, read_sorted_file_info, split_sorted_file
from transforms.partition_locator import PartitionLocator

_LOGGER = get_logger(__name__)

MAX_ADOPT_ATTEMPTS = 3


@dataclass(frozen=True)
class _FileOutcome:
    """Commit outcome of one staged file."""

    path: Path
    adopted: tuple[tuple[str, str], ...] = ()
    skipped: tuple[str, ...] = ()
    failure: str | None = None


class BulkCommitter:
    """Adopt staged partition files into one table."""

    def __init__(
        self,
        store: RegionStore,
        table_name: str,
        block_cells: int,
        workers: int = 1,
    ) -> None:
        self._store = store
        self._table_name = table_name
        self._block_cells = block_cells
        self._workers = workers

    def commit(self, staging_dir: Path) -> CommitResult:
        """Adopt every staged file under a staging directory.

        Files target disjoint partitions, so they are committed in
        parallel; the store serializes the adoptions themselves.

        Args:
            staging_dir: Staging directory of a finished load.

        Returns:
            Adopted, skipped, and failed files.
        """
        staged_files = discover_staged_files(staging_dir)
        split_dir = staging_dir / SPLIT_DIR_NAME
        with ThreadPoolExecutor(max_workers=self._workers) as executor:
            outcomes = list(
                executor.map(lambda path: self._commit_file(path, split_dir), staged_files)
            )
        result = CommitResult(
            adopted=tuple(pair for outcome in outcomes for pair in outcome.adopted),
            skipped=tuple(name for outcome in outcomes for name in outcome.skipped),
            failed=tuple(
                FileCommitFailure(path=outcome.path, reason=outcome.failure)
                for outcome in outcomes
                if outcome.failure is not None
            ),
        )
        _LOGGER.info(
            "commit_completed",
            table_name=self._table_name,
            staged_count=len(staged_files),
            adopted_count=len(result.adopted),
            skipped_count=len(result.skipped),
            failed_count=len(result.failed),
        )
        return result

    def _commit_file(self, path: Path, split_dir: Path) -> _FileOutcome:
        try:
            info = read_sorted_file_info(path)
            if info.is_empty:
                _remove_staged_file(path)
                return _FileOutcome(path=path, skipped=(path.name,))
            checksum = file_checksum(path)
            if self._store.is_adopted(self._table_name, checksum):
                _LOGGER.info("staged_file_already_adopted", path=str(path), checksum=checksum)
                return _FileOutcome(path=path, skipped=(path.name,))
            return self._adopt_with_revalidation(info, checksum, split_dir)
        except RangeloadError as error:
            _LOGGER.error("file_commit_failed", path=str(path), error=str(error))
            return _FileOutcome(path=path, failure=str(error))

    def _adopt_with_revalidation(
        self,
        info: SortedFileInfo,
        checksum: str,
        split_dir: Path,
    ) -> _FileOutcome:
        """Adopt a file, re-reading boundaries when they move underneath it."""
        attempt = 1
        while True:
            try:
                return self._adopt_against_current_boundaries(info, checksum, split_dir)
            except RangeloadBoundaryDriftError as error:
                if attempt >= MAX_ADOPT_ATTEMPTS:
                    raise
                _LOGGER.warning(
                    "boundary_drift_retry",
                    path=str(info.path),
                    attempt=attempt,
                    error=str(error),
                )
                attempt += 1

    def _adopt_against_current_boundaries(
        self,
        info: SortedFileInfo,
        checksum: str,
        split_dir: Path,
    ) -> _FileOutcome:
        partitions = self._store.partitions(self._table_name)
        locator = PartitionLocator(partitions)
        first_index = locator.locate(_required(info.first_row))
        last_index = locator.locate(_required(info.last_row))
        if first_index == last_index:
            partition_id = partitions[first_index].partition_id
            if not self._store.adopt_file(self._table_name, partition_id, info.path):
                return _FileOutcome(path=info.path, skipped=(info.path.name,))
            return _FileOutcome(path=info.path, adopted=((info.path.name, partition_id),))
        _LOGGER.info(
            "staged_file_spans_partitions",
            path=str(info.path),
            partition_count=last_index - first_index + 1,
        )
        pieces = split_sorted_file(
            info.path,
            partitions[first_index : last_index + 1],
            split_dir,
            self._block_cells,
        )
        adopted: list[tuple[str, str]] = []
        skipped: list[str] = []
        for partition, piece in pieces:
            if self._store.adopt_file(self._table_name, partition.partition_id, piece.path):
                adopted.append((piece.path.name, partition.partition_id))
            else:
                # Adopted by an earlier, interrupted commit of the same file.
                _remove_staged_file(piece.path)
                skipped.append(piece.path.name)
        self._store.record_adoption(
            self._table_name, checksum, [partition.partition_id for partition, _ in pieces]
        )
        _remove_staged_file(info.path)
        return _FileOutcome(path=info.path, adopted=tuple(adopted), skipped=tuple(skipped))


def discover_staged_files(staging_dir: Path) -> list[Path]:
    """List sorted files of a staging directory, ignoring work directories.

    Args:
        staging_dir: Staging directory root.

    Returns:
        Sorted file paths in name order.
    """
    if not staging_dir.exists():
        return []
    return [
        path
        for path in sorted(staging_dir.rglob(f"*{SORTED_FILE_SUFFIX}"))
        if path.is_file()
        and not any(part.startswith("_") for part in path.relative_to(staging_dir).parts)
    ]


def _required(row_key: bytes | None) -> bytes:
    if row_key is None:
        raise RangeloadFileError("Sorted file footer is missing its row span.")
    return row_key


def _remove_staged_file(path: Path) -> None:
    """Delete a staged file that no longer needs adoption.

    Raises:
        RangeloadCommitError: If the file cannot be removed.
    """
    try:
        path.unlink()
    except OSError as error:
        raise RangeloadCommitError(
            f"Failed to remove staged file {path}: {error}. "
            "Check permissions on the staging directory and rerun the commit."
        ) from error
