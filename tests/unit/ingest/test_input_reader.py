"""Unit tests for input reader module."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.config import RangeloadConfig
from core.errors import RangeloadDependencyError, RangeloadIngestError
import ingest.input_reader as input_reader
from ingest.input_reader import InputSplit, list_input_splits, read_split_lines
from tests.fixture_paths import fixture_path, log_line


class _FakeBody:
    def __init__(self, payload: bytes) -> None:
        self._payload = payload

    def iter_lines(self, keepends: bool = False):
        return iter(self._payload.splitlines(keepends=keepends))


class _FakePaginator:
    def paginate(self, Bucket: str, Prefix: str):
        return [
            {"Contents": [{"Key": f"{Prefix}/part-00001"}, {"Key": f"{Prefix}/_SUCCESS"}]},
            {"Contents": [{"Key": f"{Prefix}/part-00000"}, {"Key": f"{Prefix}/nested/"}]},
        ]


class _FakeS3Client:
    def __init__(self) -> None:
        self.requested: list[tuple[str, str]] = []

    def get_paginator(self, name: str) -> _FakePaginator:
        return _FakePaginator()

    def get_object(self, Bucket: str, Key: str):
        self.requested.append((Bucket, Key))
        return {"Body": _FakeBody(log_line("42").encode("utf-8") * 2)}


def test_list_input_splits_reads_single_file() -> None:
    """A file input should become one split."""
    config = RangeloadConfig.from_env()

    splits = list_input_splits(str(fixture_path("logs/tbl_logs.tsv")), config)

    assert splits == [InputSplit(index=0, uri=str(fixture_path("logs/tbl_logs.tsv")))]


def test_list_input_splits_skips_marker_files(tmp_path: Path) -> None:
    """Directory listing should ignore hidden and marker files."""
    config = RangeloadConfig.from_env()
    (tmp_path / "part-00001").write_text(log_line("1"), encoding="utf-8")
    (tmp_path / "part-00000").write_text(log_line("2"), encoding="utf-8")
    (tmp_path / "_SUCCESS").write_text("", encoding="utf-8")
    (tmp_path / ".part-00000.crc").write_text("", encoding="utf-8")

    splits = list_input_splits(str(tmp_path), config)

    assert [Path(split.uri).name for split in splits] == ["part-00000", "part-00001"]


def test_list_input_splits_raises_for_missing_path(tmp_path: Path) -> None:
    """Listing should fail when the input path is missing."""
    config = RangeloadConfig.from_env()
    missing_path = tmp_path / "does-not-exist"

    with pytest.raises(RangeloadIngestError):
        list_input_splits(str(missing_path), config)

    assert missing_path.exists() is False


def test_list_input_splits_raises_for_empty_directory(tmp_path: Path) -> None:
    """Listing should fail when a directory holds no input files."""
    config = RangeloadConfig.from_env()

    with pytest.raises(RangeloadIngestError):
        list_input_splits(str(tmp_path), config)


def test_read_split_lines_keeps_terminators() -> None:
    """Local reads should stream every line with its terminator."""
    config = RangeloadConfig.from_env()
    split = InputSplit(index=0, uri=str(fixture_path("logs/tbl_logs.tsv")))

    lines = list(read_split_lines(split, config))

    assert len(lines) == 6 and all(line.endswith("\n") for line in lines)


def test_list_input_splits_lists_s3_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    """S3 listing should sort object keys and skip markers and folders."""
    config = RangeloadConfig.from_env()
    monkeypatch.setattr(input_reader, "_create_s3_client", lambda _config: _FakeS3Client())

    splits = list_input_splits("s3://bucket/extract", config)

    assert [split.uri for split in splits] == [
        "s3://bucket/extract/part-00000",
        "s3://bucket/extract/part-00001",
    ]


def test_read_split_lines_streams_s3_object(monkeypatch: pytest.MonkeyPatch) -> None:
    """S3 reads should decode every object line."""
    config = RangeloadConfig.from_env()
    client = _FakeS3Client()
    monkeypatch.setattr(input_reader, "_create_s3_client", lambda _config: client)
    split = InputSplit(index=0, uri="s3://bucket/extract/part-00000")

    lines = list(read_split_lines(split, config))

    assert lines == [log_line("42")] * 2 and client.requested == [
        ("bucket", "extract/part-00000")
    ]


def test_s3_input_raises_without_boto3(monkeypatch: pytest.MonkeyPatch) -> None:
    """S3 input should fail clearly when boto3 is missing."""
    import builtins

    original_import = builtins.__import__

    def _import(name, *args, **kwargs):
        if name == "boto3":
            raise ImportError("boto3 missing")
        return original_import(name, *args, **kwargs)

    monkeypatch.setattr(builtins, "__import__", _import)

    with pytest.raises(RangeloadDependencyError):
        list_input_splits("s3://bucket/extract", RangeloadConfig.from_env())


def test_read_split_lines_replaces_undecodable_bytes(tmp_path: Path) -> None:
    """A bad byte should be replaced instead of failing the split."""
    source = tmp_path / "input.tsv"
    source.write_bytes(log_line("1").encode("utf-8") + b"2\tlog\xff\tx\n")
    split = InputSplit(index=0, uri=str(source))

    lines = list(read_split_lines(split, RangeloadConfig.from_env()))

    assert lines == [log_line("1"), "2\tlog\ufffd\tx\n"]


def test_read_split_lines_ends_lines_at_lone_carriage_return(tmp_path: Path) -> None:
    """A bare CR should end a line like LF does."""
    source = tmp_path / "input.tsv"
    source.write_bytes(log_line("1").replace("\n", "\r").encode("utf-8") + log_line("2").encode())
    split = InputSplit(index=0, uri=str(source))

    lines = list(read_split_lines(split, RangeloadConfig.from_env()))

    assert lines == [log_line("1").replace("\n", "\r"), log_line("2")]


def test_read_split_lines_replaces_undecodable_s3_bytes(monkeypatch: pytest.MonkeyPatch) -> None:
    """S3 reads should replace bad bytes rather than fail."""

    class _BadBytesClient(_FakeS3Client):
        def get_object(self, Bucket: str, Key: str):
            return {"Body": _FakeBody(b"7\tlog\xfe\n")}

    monkeypatch.setattr(input_reader, "_create_s3_client", lambda _config: _BadBytesClient())
    split = InputSplit(index=0, uri="s3://bucket/extract/part-00000")

    lines = list(read_split_lines(split, RangeloadConfig.from_env()))

    assert lines == ["7\tlog\ufffd\n"]
