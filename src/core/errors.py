"""Rangeload exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each pipeline stage raises a specific error type for debuggability.
"""

from __future__ import annotations


class RangeloadError(Exception):
    """Base exception for all Rangeload failures."""


class RangeloadConfigError(RangeloadError):
    """Raised for invalid runtime configuration."""


class RangeloadIngestError(RangeloadError):
    """Raised when the input extract cannot be listed or read."""


class RangeloadStagingError(RangeloadError):
    """Raised when the staging directory cannot be cleared or written."""


class RangeloadMappingError(RangeloadError):
    """Raised when a row key falls outside every known partition range."""


class RangeloadSortError(RangeloadError):
    """Raised for spill and merge failures in the sort stage."""


class RangeloadFileError(RangeloadError):
    """Raised for sorted partition file write and read failures."""


class RangeloadStoreError(RangeloadError):
    """Raised for table catalog and partition storage failures."""


class RangeloadCommitError(RangeloadError):
    """Raised when a staged file cannot be adopted into the store."""


class RangeloadDependencyError(RangeloadError):
    """Raised when an optional runtime dependency is missing."""


class RangeloadBoundaryDriftError(RangeloadStoreError):
    """Raised when partition boundaries changed under a pending adoption."""
