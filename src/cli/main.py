"""Rangeload CLI entry points.

This module exposes table provisioning, bulk load, commit, and read commands.
It maps argparse commands onto pipeline and store calls.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
import sys
from typing import Any, Sequence

from core.config import RangeloadConfig
from core.constants import DEFAULT_COLUMN_FAMILY, DEFAULT_TABLE_NAME
from core.errors import RangeloadError
from core.types import CommitResult, LoadOptions, LoadResult
from ingest.pipeline import commit_staged_files, run_bulk_load
from store.region_store import RegionStore

EXIT_OK = 0
EXIT_PARALLEL_STAGE_FAILED = 1
EXIT_COMMIT_FAILED = 2
EXIT_ROW_NOT_FOUND = 1
EXIT_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="rangeload", description="Rangeload bulk load CLI")
    parser.add_argument("--data-root", help="Override RANGELOAD_DATA_ROOT for this command")
    parser.add_argument("--workers", type=int, help="Override RANGELOAD_WORKERS")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_create_table_command(subparsers)
    _add_load_command(subparsers)
    _add_commit_command(subparsers)
    _add_get_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Rangeload CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    config = _build_config(args)
    try:
        if args.command == "create-table":
            return _run_create_table_command(config, args)
        if args.command == "load":
            return _run_load_command(config, args)
        if args.command == "commit":
            return _run_commit_command(config, args)
        if args.command == "get":
            return _run_get_command(config, args)
    except RangeloadError as error:
        print(f"error: {error}", file=sys.stderr)
        return EXIT_ERROR
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_config(args: argparse.Namespace) -> RangeloadConfig:
    """Build config with optional command-line overrides.

    Args:
        args: Parsed CLI args.

    Returns:
        Runtime configuration.
    """
    config = RangeloadConfig.from_env()
    if args.data_root:
        config = config.with_data_root(Path(args.data_root))
    if args.workers:
        config = replace(config, workers=args.workers)
    return config


def _run_create_table_command(config: RangeloadConfig, args: argparse.Namespace) -> int:
    """Handle create-table command.

    Args:
        config: Runtime configuration.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    split_keys = [key.encode("utf-8") for key in args.split_key]
    with RegionStore(config) as store:
        partitions = store.create_table(args.table, args.family, split_keys)
    for partition in partitions:
        print(f"{partition.partition_id}\t{partition.key_range.describe()}")
    return EXIT_OK


def _run_load_command(config: RangeloadConfig, args: argparse.Namespace) -> int:
    """Handle load command.

    Args:
        config: Runtime configuration.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    options = LoadOptions(
        table_name=args.table,
        input_uri=args.input or config.input_uri,
        staging_dir=_staging_dir(config, args),
        commit=not args.no_commit,
    )
    result = run_bulk_load(options, config)
    _print_load_summary(result)
    if not result.parallel_succeeded:
        return EXIT_PARALLEL_STAGE_FAILED
    if result.commit is None:
        return EXIT_OK
    if not result.commit.succeeded:
        return EXIT_COMMIT_FAILED
    print(f"data is now queryable in table {options.table_name}")
    return EXIT_OK


def _run_commit_command(config: RangeloadConfig, args: argparse.Namespace) -> int:
    """Handle commit command.

    Args:
        config: Runtime configuration.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    with RegionStore(config) as store:
        commit = commit_staged_files(args.table, _staging_dir(config, args), config, store)
    _print_commit_summary(commit)
    if not commit.succeeded:
        return EXIT_COMMIT_FAILED
    print(f"data is now queryable in table {args.table}")
    return EXIT_OK


def _run_get_command(config: RangeloadConfig, args: argparse.Namespace) -> int:
    """Handle get command.

    Args:
        config: Runtime configuration.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    with RegionStore(config) as store:
        row = store.get(args.table, args.row_key.encode("utf-8"))
    for qualifier, value in row.items():
        print(f"{qualifier.decode('utf-8')}\t{value.decode('utf-8')}")
    return EXIT_OK if row else EXIT_ROW_NOT_FOUND


def _staging_dir(config: RangeloadConfig, args: argparse.Namespace) -> Path:
    if args.staging_dir:
        return Path(args.staging_dir).expanduser().resolve()
    return config.staging_dir


def _print_load_summary(result: LoadResult) -> None:
    """Print record counts and per-stage status."""
    counts = result.counts
    print(f"records_read={counts.records_read}")
    print(f"records_accepted={counts.records_accepted}")
    print(f"records_rejected={counts.records_rejected}")
    print(f"cells_emitted={counts.cells_emitted}")
    print(f"parallel_stage={'passed' if result.parallel_succeeded else 'failed'}")
    if result.error:
        print(f"parallel_stage_error={result.error}")
    if result.parallel_succeeded:
        print(f"files_written={len(result.files)}")
    if result.commit is None:
        print("commit=skipped")
        return
    _print_commit_summary(result.commit)


def _print_commit_summary(commit: CommitResult) -> None:
    """Print commit status and any failed files."""
    print(f"commit={'passed' if commit.succeeded else 'failed'}")
    print(f"files_adopted={len(commit.adopted)}")
    print(f"files_skipped={len(commit.skipped)}")
    for failure in commit.failed:
        print(f"failed_file={failure.path}\t{failure.reason}")


def _add_create_table_command(subparsers: Any) -> None:
    """Register create-table subcommand."""
    parser = subparsers.add_parser("create-table", help="Create a pre-split table")
    parser.add_argument("--table", default=DEFAULT_TABLE_NAME, help="Table name")
    parser.add_argument("--family", default=DEFAULT_COLUMN_FAMILY, help="Column family")
    parser.add_argument(
        "--split-key",
        action="append",
        default=[],
        help="Partition boundary row key; repeat for several",
    )


def _add_load_command(subparsers: Any) -> None:
    """Register load subcommand."""
    parser = subparsers.add_parser("load", help="Bulk load the extract and commit it")
    parser.add_argument("--table", default=DEFAULT_TABLE_NAME, help="Target table name")
    parser.add_argument("--input", help="Override RANGELOAD_INPUT_URI")
    parser.add_argument("--staging-dir", help="Override RANGELOAD_STAGING_DIR")
    parser.add_argument(
        "--no-commit",
        action="store_true",
        help="Write partition files to staging without adopting them",
    )


def _add_commit_command(subparsers: Any) -> None:
    """Register commit subcommand."""
    parser = subparsers.add_parser("commit", help="Retry the commit of staged files")
    parser.add_argument("--table", default=DEFAULT_TABLE_NAME, help="Target table name")
    parser.add_argument("--staging-dir", help="Override RANGELOAD_STAGING_DIR")


def _add_get_command(subparsers: Any) -> None:
    """Register get subcommand."""
    parser = subparsers.add_parser("get", help="Print the newest values of one row")
    parser.add_argument("row_key", help="Row key to read")
    parser.add_argument("--table", default=DEFAULT_TABLE_NAME, help="Table name")
