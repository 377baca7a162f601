"""Shared typed models.

This module defines immutable data models used by ingest, transforms,
store, and CLI layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class Cell:
    """Atomic unit written to the store.

    Attributes:
        row_key: Row identifier bytes.
        family: Column family bytes.
        qualifier: Column name bytes.
        value: Cell payload bytes.
        timestamp: Write version in epoch milliseconds.
    """

    row_key: bytes
    family: bytes
    qualifier: bytes
    value: bytes
    timestamp: int


@dataclass(frozen=True)
class KeyRange:
    """Half-open byte range ``[start_key, end_key)``.

    Attributes:
        start_key: Inclusive lower bound; ``b""`` is unbounded below.
        end_key: Exclusive upper bound; ``None`` is unbounded above.
    """

    start_key: bytes
    end_key: bytes | None

    def contains(self, key: bytes) -> bool:
        """Return whether a key falls inside this range."""
        if key < self.start_key:
            return False
        return self.end_key is None or key < self.end_key

    def covers(self, first_key: bytes, last_key: bytes) -> bool:
        """Return whether both endpoints of a key span fall inside this range."""
        return self.contains(first_key) and self.contains(last_key)

    def describe(self) -> str:
        """Render a printable form of the range."""
        end = "+inf" if self.end_key is None else self.end_key.hex()
        return f"[{self.start_key.hex() or '-inf'}, {end})"


@dataclass(frozen=True)
class PartitionInfo:
    """One partition of a table.

    Attributes:
        partition_id: Stable partition identifier.
        key_range: Rows owned by this partition.
    """

    partition_id: str
    key_range: KeyRange


@dataclass(frozen=True)
class StageCounts:
    """Per-record counts aggregated for reporting only.

    Attributes:
        records_read: Lines read from the input extract.
        records_rejected: Lines dropped by validation.
        cells_emitted: Cells produced by projection.
    """

    records_read: int = 0
    records_rejected: int = 0
    cells_emitted: int = 0

    @property
    def records_accepted(self) -> int:
        """Number of records that passed validation."""
        return self.records_read - self.records_rejected

    def merge(self, other: "StageCounts") -> "StageCounts":
        """Return the sum of two count values."""
        return StageCounts(
            records_read=self.records_read + other.records_read,
            records_rejected=self.records_rejected + other.records_rejected,
            cells_emitted=self.cells_emitted + other.cells_emitted,
        )


@dataclass(frozen=True)
class SortedFileInfo:
    """Footer metadata of one sorted partition file.

    Attributes:
        path: File location.
        key_range: Declared partition range the file was written for.
        first_row: Smallest row key in the file, ``None`` when empty.
        last_row: Largest row key in the file, ``None`` when empty.
        cell_count: Number of cells in the file.
        block_count: Number of indexed blocks.
        family: Column family of every cell.
    """

    path: Path
    key_range: KeyRange
    first_row: bytes | None
    last_row: bytes | None
    cell_count: int
    block_count: int
    family: bytes

    @property
    def is_empty(self) -> bool:
        """Return whether the file holds no cells."""
        return self.cell_count == 0


@dataclass(frozen=True)
class FileCommitFailure:
    """A staged file that could not be adopted.

    Attributes:
        path: Staged file left behind for a retry.
        reason: Operator-facing failure message.
    """

    path: Path
    reason: str


@dataclass(frozen=True)
class CommitResult:
    """Outcome of one bulk commit pass.

    Attributes:
        adopted: Files newly adopted, as ``(file name, partition id)`` pairs.
        skipped: Staged files or split pieces already adopted, and empty files.
        failed: Files that could not be adopted.
    """

    adopted: tuple[tuple[str, str], ...] = ()
    skipped: tuple[str, ...] = ()
    failed: tuple[FileCommitFailure, ...] = ()

    @property
    def succeeded(self) -> bool:
        """Return whether every staged file was handled."""
        return not self.failed


@dataclass(frozen=True)
class LoadOptions:
    """Bulk load request options.

    Attributes:
        table_name: Target table.
        input_uri: Local path or ``s3://`` prefix of the extract.
        staging_dir: Directory owned by this run for generated files.
        timestamp: Optional fixed write version; job start time when omitted.
        commit: Whether to adopt the generated files once they are written.
    """

    table_name: str
    input_uri: str
    staging_dir: Path
    timestamp: int | None = None
    commit: bool = True


@dataclass(frozen=True)
class LoadResult:
    """Overall result of one bulk load run.

    Attributes:
        counts: Aggregated record and cell counts.
        parallel_succeeded: Whether map, sort and write stages all passed.
        files: Partition files written to staging.
        commit: Commit outcome, ``None`` when the commit was not invoked.
        error: Fatal parallel-stage message when the run failed.
    """

    counts: StageCounts
    parallel_succeeded: bool
    files: tuple[SortedFileInfo, ...] = field(default_factory=tuple)
    commit: CommitResult | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """Return whether every stage that ran passed."""
        return self.parallel_succeeded and (self.commit is None or self.commit.succeeded)
