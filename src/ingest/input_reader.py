"""Input split discovery and line reading.

This module lists the files of the extract as independent input splits
and streams their lines from local storage or S3.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from core.config import RangeloadConfig
from core.errors import RangeloadDependencyError, RangeloadIngestError
from core.s3_uri import S3Location, is_s3_uri, parse_s3_uri


@dataclass(frozen=True)
class InputSplit:
    """One independently processed piece of the extract.

    Attributes:
        index: Position of the split in input order.
        uri: Local file path or ``s3://`` object URI.
    """

    index: int
    uri: str


def list_input_splits(input_uri: str, config: RangeloadConfig) -> list[InputSplit]:
    """List input splits under a local path or S3 prefix.

    Args:
        input_uri: Local file, local directory, or ``s3://`` prefix.
        config: Runtime configuration for S3 session defaults.

    Returns:
        Splits ordered by location, indexed from zero.

    Raises:
        RangeloadIngestError: If the location is missing or holds no files.
    """
    if is_s3_uri(input_uri):
        uris = _list_s3_uris(input_uri, config)
    else:
        uris = _list_local_uris(Path(input_uri).expanduser())
    if not uris:
        raise RangeloadIngestError(
            f"No input files found under {input_uri}. "
            "Point the input location at a non-empty extract."
        )
    return [InputSplit(index=index, uri=uri) for index, uri in enumerate(uris)]


def read_split_lines(split: InputSplit, config: RangeloadConfig) -> Iterator[str]:
    """Stream decoded text lines of one split.

    Args:
        split: Split to read.
        config: Runtime configuration for S3 session defaults.

    Yields:
        Lines including their terminators, split at LF, CRLF, or a lone CR.
        Undecodable bytes are replaced with U+FFFD.

    Raises:
        RangeloadIngestError: If the split cannot be read.
    """
    if is_s3_uri(split.uri):
        yield from _read_s3_lines(split.uri, config)
        return
    try:
        with open(split.uri, encoding="utf-8", errors="replace", newline="") as handle:
            yield from handle
    except OSError as error:
        raise RangeloadIngestError(
            f"Failed to read input split {split.uri}: {error}. "
            "Check file permissions on the input location."
        ) from error


def _list_local_uris(source_path: Path) -> list[str]:
    """List readable files of a local extract.

    Args:
        source_path: Input file or directory.

    Returns:
        Sorted file paths.

    Raises:
        RangeloadIngestError: If path does not exist.
    """
    if not source_path.exists():
        raise RangeloadIngestError(
            f"Failed to read input at {source_path}: path does not exist. "
            "Provide an existing file or directory."
        )
    if source_path.is_file():
        return [str(source_path)]
    return [
        str(file_path)
        for file_path in sorted(source_path.rglob("*"))
        if file_path.is_file() and not _is_hidden_name(file_path.name)
    ]


def _list_s3_uris(input_uri: str, config: RangeloadConfig) -> list[str]:
    """List object URIs under an S3 prefix."""
    location = parse_s3_uri(input_uri)
    s3_client = _create_s3_client(config)
    paginator = s3_client.get_paginator("list_objects_v2")
    pages = paginator.paginate(Bucket=location.bucket, Prefix=location.prefix)
    keys: list[str] = []
    for page in pages:
        for obj in page.get("Contents", []):
            key = obj["Key"]
            if not key.endswith("/") and not _is_hidden_name(Path(key).name):
                keys.append(key)
    return [f"s3://{location.bucket}/{key}" for key in sorted(keys)]


def _read_s3_lines(uri: str, config: RangeloadConfig) -> Iterator[str]:
    """Stream lines of one S3 object."""
    location = parse_s3_uri(uri)
    s3_client = _create_s3_client(config)
    try:
        body = s3_client.get_object(Bucket=location.bucket, Key=location.prefix)["Body"]
        for raw_line in body.iter_lines(keepends=True):
            yield raw_line.decode("utf-8", errors="replace")
    except Exception as error:
        raise RangeloadIngestError(
            f"Failed to read input object {_describe(location)}: {error}. "
            "Check AWS credentials and object permissions."
        ) from error


def _create_s3_client(config: RangeloadConfig) -> Any:
    """Create a boto3 S3 client.

    Args:
        config: Runtime config containing optional profile/region.

    Returns:
        Boto3 S3 client.

    Raises:
        RangeloadDependencyError: If boto3 is missing.
    """
    try:
        import boto3
    except ImportError as error:
        raise RangeloadDependencyError(
            "S3 input requires boto3, but it is not installed. "
            "Install boto3 to load from s3:// sources."
        ) from error
    session_kwargs: dict[str, str] = {}
    if config.s3_profile:
        session_kwargs["profile_name"] = config.s3_profile
    if config.s3_region:
        session_kwargs["region_name"] = config.s3_region
    session = boto3.session.Session(**session_kwargs)
    return session.client("s3")


def _is_hidden_name(name: str) -> bool:
    """Return whether a file name is a marker or hidden file."""
    return name.startswith((".", "_"))


def _describe(location: S3Location) -> str:
    return f"s3://{location.bucket}/{location.prefix}"
