"""Unit tests for shared typed models and the extract schema."""

from __future__ import annotations

import pytest

from core.errors import RangeloadConfigError
from core.schema import LOGS_SCHEMA, DatasetSchema
from core.types import CommitResult, FileCommitFailure, KeyRange, LoadResult, StageCounts


def test_key_range_is_half_open() -> None:
    """Range should include its start key and exclude its end key."""
    key_range = KeyRange(start_key=b"b", end_key=b"d")

    assert key_range.contains(b"b") and key_range.contains(b"c") and not key_range.contains(b"d")


def test_key_range_without_end_is_unbounded() -> None:
    """Range without an end key should contain every larger key."""
    key_range = KeyRange(start_key=b"m", end_key=None)

    assert key_range.contains(b"zzzz") and not key_range.contains(b"a")


def test_key_range_orders_keys_by_bytes() -> None:
    """Row keys should compare bytewise, not numerically."""
    key_range = KeyRange(start_key=b"", end_key=b"5")

    assert key_range.contains(b"42") and not key_range.contains(b"7")


def test_stage_counts_merge_sums_fields() -> None:
    """Merged counts should add every field."""
    merged = StageCounts(3, 1, 20).merge(StageCounts(2, 0, 20))

    assert merged == StageCounts(5, 1, 40) and merged.records_accepted == 4


def test_load_result_fails_when_commit_fails(tmp_path) -> None:
    """A failed commit should fail the overall load."""
    commit = CommitResult(failed=(FileCommitFailure(path=tmp_path / "a", reason="boom"),))
    result = LoadResult(counts=StageCounts(), parallel_succeeded=True, commit=commit)

    assert result.succeeded is False


def test_load_result_without_commit_reflects_parallel_stage() -> None:
    """A load that skipped the commit should report the parallel stage outcome."""
    result = LoadResult(counts=StageCounts(), parallel_succeeded=True)

    assert result.succeeded is True


def test_logs_schema_has_eleven_fields() -> None:
    """Built-in extract schema should expect eleven fields."""
    assert LOGS_SCHEMA.field_count == 11 and LOGS_SCHEMA.columns[0] == "id"


def test_schema_rejects_duplicate_columns() -> None:
    """Schema should refuse duplicate column names."""
    with pytest.raises(RangeloadConfigError):
        DatasetSchema(table_name="t", columns=("id", "a", "a"), column_family="cf")
