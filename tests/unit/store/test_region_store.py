"""Unit tests for the range-partitioned region store."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from core.config import RangeloadConfig
from core.errors import RangeloadBoundaryDriftError, RangeloadStoreError
from core.types import Cell, KeyRange
from store.region_store import RegionStore
from store.sorted_file import file_checksum, write_sorted_file

_FAMILY = b"detail"


def _store(tmp_path: Path) -> RegionStore:
    config = replace(RangeloadConfig.from_env(), data_root=tmp_path / "store", block_cells=2)
    return RegionStore(config)


def _staged_file(
    path: Path,
    rows: dict[bytes, bytes],
    timestamp: int = 1,
    key_range: KeyRange = KeyRange(b"", None),
) -> Path:
    cells = [
        Cell(row_key=row_key, family=_FAMILY, qualifier=b"value", value=value, timestamp=timestamp)
        for row_key, value in sorted(rows.items())
    ]
    write_sorted_file(path, cells, key_range, _FAMILY, 2)
    return path


def test_create_table_builds_contiguous_partitions(tmp_path: Path) -> None:
    """Split keys should produce partitions tiling the key space."""
    with _store(tmp_path) as store:
        partitions = store.create_table("logs", "detail", [b"6", b"3"])

    assert [partition.key_range for partition in partitions] == [
        KeyRange(b"", b"3"),
        KeyRange(b"3", b"6"),
        KeyRange(b"6", None),
    ]


def test_create_table_rejects_existing_table(tmp_path: Path) -> None:
    """Creating a table twice should fail."""
    with _store(tmp_path) as store:
        store.create_table("logs", "detail")

        with pytest.raises(RangeloadStoreError):
            store.create_table("logs", "detail")


def test_partitions_raises_for_missing_table(tmp_path: Path) -> None:
    """Reading boundaries of an unknown table should fail."""
    with _store(tmp_path) as store:
        with pytest.raises(RangeloadStoreError):
            store.partitions("missing")


def test_adopt_file_makes_rows_readable(tmp_path: Path) -> None:
    """Adopted rows should be returned by point reads."""
    staged = _staged_file(tmp_path / "a.parquet", {b"1": b"one", b"2": b"two"})
    with _store(tmp_path) as store:
        store.create_table("logs", "detail")
        adopted = store.adopt_file("logs", "p00000", staged)
        row = store.get("logs", b"2")

    assert adopted is True and row == {b"value": b"two"} and not staged.exists()


def test_adopt_file_is_idempotent_by_content(tmp_path: Path) -> None:
    """Adopting identical content twice should register it once."""
    first = _staged_file(tmp_path / "a.parquet", {b"1": b"one"})
    checksum = file_checksum(first)
    copy = tmp_path / "copy.parquet"
    copy.write_bytes(first.read_bytes())
    with _store(tmp_path) as store:
        store.create_table("logs", "detail")
        store.adopt_file("logs", "p00000", first)
        second_result = store.adopt_file("logs", "p00000", copy)
        files = store.partition_files("logs", "p00000")
        adopted = store.is_adopted("logs", checksum)

    assert second_result is False and len(files) == 1 and adopted and copy.exists()


def test_adopt_file_rejects_file_outside_partition(tmp_path: Path) -> None:
    """A file straddling the partition range should be refused as drift."""
    staged = _staged_file(tmp_path / "a.parquet", {b"1": b"one", b"7": b"seven"})
    with _store(tmp_path) as store:
        store.create_table("logs", "detail", [b"5"])

        with pytest.raises(RangeloadBoundaryDriftError):
            store.adopt_file("logs", "p00000", staged)

    assert staged.exists()


def test_adopt_file_rejects_unknown_partition(tmp_path: Path) -> None:
    """Adopting into a partition that no longer exists should be drift."""
    staged = _staged_file(tmp_path / "a.parquet", {b"1": b"one"})
    with _store(tmp_path) as store:
        store.create_table("logs", "detail")

        with pytest.raises(RangeloadBoundaryDriftError):
            store.adopt_file("logs", "p00042", staged)


def test_get_prefers_newest_timestamp(tmp_path: Path) -> None:
    """Reads should resolve the newest version across adopted files."""
    newer = _staged_file(tmp_path / "newer.parquet", {b"1": b"new"}, timestamp=20)
    older = _staged_file(tmp_path / "older.parquet", {b"1": b"old"}, timestamp=10)
    with _store(tmp_path) as store:
        store.create_table("logs", "detail")
        store.adopt_file("logs", "p00000", newer)
        store.adopt_file("logs", "p00000", older)
        row = store.get("logs", b"1")

    assert row == {b"value": b"new"}


def test_get_returns_empty_row_when_absent(tmp_path: Path) -> None:
    """Reads of an unknown row should return no columns."""
    with _store(tmp_path) as store:
        store.create_table("logs", "detail")

        assert store.get("logs", b"404") == {}


def test_split_partition_moves_rows_to_children(tmp_path: Path) -> None:
    """Splitting should keep every adopted row readable under its new partition."""
    staged = _staged_file(tmp_path / "a.parquet", {b"1": b"one", b"4": b"four", b"8": b"eight"})
    with _store(tmp_path) as store:
        store.create_table("logs", "detail")
        store.adopt_file("logs", "p00000", staged)
        lower, upper = store.split_partition("logs", b"5")
        lower_files = store.partition_files("logs", lower.partition_id)
        upper_files = store.partition_files("logs", upper.partition_id)
        rows = dict(store.scan("logs"))

    assert len(lower_files) == 1 and len(upper_files) == 1
    assert rows == {b"1": {b"value": b"one"}, b"4": {b"value": b"four"}, b"8": {b"value": b"eight"}}


def test_split_partition_rejects_existing_boundary(tmp_path: Path) -> None:
    """Splitting at an existing boundary should fail."""
    with _store(tmp_path) as store:
        store.create_table("logs", "detail", [b"5"])

        with pytest.raises(RangeloadStoreError):
            store.split_partition("logs", b"5")


def test_closed_store_rejects_requests(tmp_path: Path) -> None:
    """A closed handle should refuse further calls."""
    store = _store(tmp_path)
    store.create_table("logs", "detail")
    store.close()

    with pytest.raises(RangeloadStoreError):
        store.partitions("logs")
