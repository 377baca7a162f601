"""Runtime configuration model for Rangeload.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import os
from pathlib import Path

from core.constants import (
    DEFAULT_BLOCK_CELLS,
    DEFAULT_DATA_ROOT,
    DEFAULT_INPUT_URI,
    DEFAULT_SPILL_THRESHOLD_CELLS,
    DEFAULT_TABLE_NAME,
    DEFAULT_WORKERS,
    STAGING_DIR_NAME,
)
from core.errors import RangeloadConfigError


@dataclass(frozen=True)
class RangeloadConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory of the partitioned store.
        staging_dir: Directory receiving generated partition files.
        input_uri: Local path or ``s3://`` prefix of the input extract.
        workers: Parallel worker count for map and write tasks.
        spill_threshold_cells: Buffered cells per map task before a spill.
        block_cells: Cells per indexed block in partition files.
        s3_region: Optional default AWS region for S3 reads.
        s3_profile: Optional AWS profile for boto3 session initialization.
    """

    data_root: Path
    staging_dir: Path
    input_uri: str
    workers: int
    spill_threshold_cells: int
    block_cells: int
    s3_region: str | None
    s3_profile: str | None

    @classmethod
    def from_env(cls) -> "RangeloadConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            RangeloadConfigError: If environment values are invalid.
        """
        data_root = Path(os.getenv("RANGELOAD_DATA_ROOT", str(DEFAULT_DATA_ROOT)))
        data_root = data_root.expanduser().resolve()
        staging_value = os.getenv("RANGELOAD_STAGING_DIR", str(default_staging_dir(data_root)))
        return cls(
            data_root=data_root,
            staging_dir=Path(staging_value).expanduser().resolve(),
            input_uri=os.getenv("RANGELOAD_INPUT_URI", DEFAULT_INPUT_URI),
            workers=_parse_positive_int("RANGELOAD_WORKERS", DEFAULT_WORKERS),
            spill_threshold_cells=_parse_positive_int(
                "RANGELOAD_SPILL_CELLS", DEFAULT_SPILL_THRESHOLD_CELLS
            ),
            block_cells=_parse_positive_int("RANGELOAD_BLOCK_CELLS", DEFAULT_BLOCK_CELLS),
            s3_region=os.getenv("RANGELOAD_S3_REGION"),
            s3_profile=os.getenv("RANGELOAD_S3_PROFILE"),
        )

    def with_data_root(self, data_root: Path) -> "RangeloadConfig":
        """Return a copy rooted elsewhere.

        The staging directory follows the new root unless
        ``RANGELOAD_STAGING_DIR`` pins it explicitly.

        Args:
            data_root: New store root.

        Returns:
            Config with updated data root and staging directory.
        """
        data_root = data_root.expanduser().resolve()
        staging_dir = self.staging_dir
        if os.getenv("RANGELOAD_STAGING_DIR") is None:
            staging_dir = default_staging_dir(data_root)
        return replace(self, data_root=data_root, staging_dir=staging_dir)


def default_staging_dir(data_root: Path) -> Path:
    """Return the staging directory used when none is configured."""
    return data_root / STAGING_DIR_NAME / DEFAULT_TABLE_NAME


def _parse_positive_int(env_name: str, default: int) -> int:
    """Parse a positive integer environment value.

    Args:
        env_name: Environment variable name.
        default: Value used when the variable is unset.

    Returns:
        Parsed integer value.

    Raises:
        RangeloadConfigError: If value is not a positive integer.
    """
    raw_value = os.getenv(env_name)
    if raw_value is None:
        return default
    try:
        value = int(raw_value)
    except ValueError as error:
        raise RangeloadConfigError(
            f"Invalid {env_name} value: expected integer, got '{raw_value}'. "
            f"Set {env_name} to a positive numeric value."
        ) from error
    if value < 1:
        raise RangeloadConfigError(
            f"Invalid {env_name} value: expected value >= 1, got {value}. "
            f"Set {env_name} to a positive numeric value."
        )
    return value
