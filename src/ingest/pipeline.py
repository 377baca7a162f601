"""Bulk load orchestration.

This module sequences staging preparation, the parallel map and write
stages, and the bulk commit. The commit only runs when every parallel
task succeeded; otherwise staging is left untouched for inspection.
"""

from __future__ import annotations

from concurrent.futures import Future, ProcessPoolExecutor
from dataclasses import replace
from pathlib import Path
import shutil
import time
from typing import Callable, Sequence, TypeVar

from core.config import RangeloadConfig
from core.constants import SORTED_FILE_SUFFIX, SPILL_DIR_NAME, TABLES_DIR_NAME
from core.errors import RangeloadError, RangeloadStagingError
from core.logging_config import get_logger
from core.schema import LOGS_SCHEMA, DatasetSchema
from core.types import (
    CommitResult,
    LoadOptions,
    LoadResult,
    PartitionInfo,
    SortedFileInfo,
    StageCounts,
)
from ingest.input_reader import list_input_splits
from store.bulk_committer import BulkCommitter
from store.region_store import RegionStore
from transforms.map_task import MapTask, MapTaskResult, run_map_task
from transforms.partition_merge import PartitionWriteTask, run_partition_write_task

_LOGGER = get_logger(__name__)

TaskT = TypeVar("TaskT")
ResultT = TypeVar("ResultT")


class BulkLoadRunner:
    """Runner for one bulk load of an extract into a table."""

    def __init__(
        self,
        options: LoadOptions,
        config: RangeloadConfig,
        store: RegionStore,
        schema: DatasetSchema = LOGS_SCHEMA,
    ) -> None:
        self._options = options
        self._config = config
        self._store = store
        self._schema = schema

    def run(self) -> LoadResult:
        """Execute the load and commit its files when the parallel stage passed.

        Raises:
            RangeloadStagingError: If staging cannot be prepared.
            RangeloadStoreError: If the table cannot be read.
        """
        timestamp = self._options.timestamp
        if timestamp is None:
            timestamp = int(time.time() * 1000)
        prepare_staging(self._options.staging_dir, self._config.data_root)
        partitions = self._store.partitions(self._options.table_name)
        family = self._store.column_family(self._options.table_name).decode("utf-8")
        schema = replace(self._schema, column_family=family)
        _LOGGER.info(
            "load_started",
            table_name=self._options.table_name,
            input_uri=self._options.input_uri,
            staging_dir=str(self._options.staging_dir),
            partition_count=len(partitions),
            timestamp=timestamp,
        )
        counts = StageCounts()
        try:
            map_results = self._run_map_stage(schema, partitions, timestamp)
            for map_result in map_results:
                counts = counts.merge(map_result.counts)
            files = self._run_write_stage(schema, partitions, timestamp, map_results)
        except _ParallelStageError as error:
            _LOGGER.error(
                "parallel_stage_failed",
                table_name=self._options.table_name,
                error=str(error),
                failed_tasks=error.failure_count,
            )
            return LoadResult(
                counts=counts.merge(error.partial_counts),
                parallel_succeeded=False,
                error=str(error),
            )
        shutil.rmtree(self._spill_dir(), ignore_errors=True)
        commit = None
        if self._options.commit:
            commit = commit_staged_files(
                self._options.table_name, self._options.staging_dir, self._config, self._store
            )
        result = LoadResult(counts=counts, parallel_succeeded=True, files=files, commit=commit)
        _log_load_completion(self._options, result)
        return result

    def _run_map_stage(
        self,
        schema: DatasetSchema,
        partitions: tuple[PartitionInfo, ...],
        timestamp: int,
    ) -> list[MapTaskResult]:
        try:
            splits = list_input_splits(self._options.input_uri, self._config)
        except RangeloadError as error:
            raise _ParallelStageError(str(error), 1, StageCounts()) from error
        tasks = [
            MapTask(
                split=split,
                schema=schema,
                partitions=partitions,
                timestamp=timestamp,
                spill_dir=self._spill_dir(),
                config=self._config,
            )
            for split in splits
        ]
        results, errors = _run_tasks(run_map_task, tasks, self._config.workers)
        if errors:
            partial = StageCounts()
            for result in results:
                partial = partial.merge(result.counts)
            raise _ParallelStageError(str(errors[0]), len(errors), partial)
        return results

    def _run_write_stage(
        self,
        schema: DatasetSchema,
        partitions: tuple[PartitionInfo, ...],
        timestamp: int,
        map_results: list[MapTaskResult],
    ) -> tuple[SortedFileInfo, ...]:
        family_dir = self._options.staging_dir / schema.column_family
        tasks = [
            PartitionWriteTask(
                partition=partition,
                run_paths=tuple(
                    run_path
                    for map_result in map_results
                    for run_path in map_result.run_paths.get(index, ())
                ),
                output_path=family_dir / _staged_file_name(index, partition),
                family=schema.family_bytes,
                timestamp=timestamp,
                block_cells=self._config.block_cells,
            )
            for index, partition in enumerate(partitions)
        ]
        results, errors = _run_tasks(run_partition_write_task, tasks, self._config.workers)
        if errors:
            raise _ParallelStageError(str(errors[0]), len(errors), StageCounts())
        return tuple(results)

    def _spill_dir(self) -> Path:
        return self._options.staging_dir / SPILL_DIR_NAME


def run_bulk_load(
    options: LoadOptions,
    config: RangeloadConfig,
    schema: DatasetSchema = LOGS_SCHEMA,
) -> LoadResult:
    """Run a bulk load with a store handle scoped to the run.

    Args:
        options: Load request options.
        config: Runtime configuration.
        schema: Extract schema.

    Returns:
        Overall load result.

    Raises:
        RangeloadStagingError: If staging cannot be prepared.
        RangeloadStoreError: If the table cannot be read.
    """
    with RegionStore(config) as store:
        return BulkLoadRunner(options, config, store, schema).run()


def commit_staged_files(
    table_name: str,
    staging_dir: Path,
    config: RangeloadConfig,
    store: RegionStore,
) -> CommitResult:
    """Adopt every staged file of a finished load into a table.

    Args:
        table_name: Target table.
        staging_dir: Staging directory of the load.
        config: Runtime configuration.
        store: Open store handle.

    Returns:
        Commit outcome per file.
    """
    committer = BulkCommitter(store, table_name, config.block_cells, config.workers)
    return committer.commit(staging_dir)


def prepare_staging(staging_dir: Path, data_root: Path) -> None:
    """Delete and recreate the staging directory of a run.

    Args:
        staging_dir: Directory owned by the run.
        data_root: Store root that staging must never contain.

    Raises:
        RangeloadStagingError: If staging overlaps the store or cannot be reset.
    """
    tables_root = (data_root / TABLES_DIR_NAME).resolve()
    resolved = staging_dir.resolve()
    overlaps = resolved == tables_root or tables_root in resolved.parents
    if overlaps or resolved in tables_root.parents:
        raise RangeloadStagingError(
            f"Staging directory {staging_dir} overlaps the store tables at {tables_root}. "
            "Choose a staging directory outside the store."
        )
    try:
        if resolved.is_dir():
            shutil.rmtree(resolved)
        elif resolved.exists():
            resolved.unlink()
        resolved.mkdir(parents=True)
    except OSError as error:
        raise RangeloadStagingError(
            f"Failed to reset staging directory {staging_dir}: {error}. "
            "Check write permissions on the staging location."
        ) from error
    _LOGGER.info("staging_prepared", staging_dir=str(resolved))


class _ParallelStageError(RangeloadError):
    """Aggregated failure of map or write tasks."""

    def __init__(self, message: str, failure_count: int, partial_counts: StageCounts) -> None:
        super().__init__(message)
        self.failure_count = failure_count
        self.partial_counts = partial_counts


def _run_tasks(
    task_fn: Callable[[TaskT], ResultT],
    tasks: Sequence[TaskT],
    workers: int,
) -> tuple[list[ResultT], list[RangeloadError]]:
    """Run independent tasks to completion and collect results and failures.

    Every task runs to its end; failures never cancel sibling tasks.
    """
    results: list[ResultT] = []
    errors: list[RangeloadError] = []
    if workers <= 1 or len(tasks) <= 1:
        for task in tasks:
            try:
                results.append(task_fn(task))
            except RangeloadError as error:
                errors.append(error)
        return results, errors
    with ProcessPoolExecutor(max_workers=workers) as executor:
        futures: list[Future[ResultT]] = [executor.submit(task_fn, task) for task in tasks]
        for future in futures:
            try:
                results.append(future.result())
            except RangeloadError as error:
                errors.append(error)
    return results, errors


def _staged_file_name(index: int, partition: PartitionInfo) -> str:
    return f"{index:05d}-{partition.partition_id}{SORTED_FILE_SUFFIX}"


def _log_load_completion(options: LoadOptions, result: LoadResult) -> None:
    """Log load completion with contextual metadata."""
    commit = result.commit
    _LOGGER.info(
        "load_completed",
        table_name=options.table_name,
        input_uri=options.input_uri,
        records_read=result.counts.records_read,
        records_rejected=result.counts.records_rejected,
        cells_emitted=result.counts.cells_emitted,
        file_count=len(result.files),
        adopted_count=len(commit.adopted) if commit else 0,
        failed_count=len(commit.failed) if commit else 0,
        succeeded=result.succeeded,
    )
