"""Core constants used across Rangeload modules.

This module centralizes defaults for the logs extract, staging layout,
and store layout. Keeping values here avoids magic literals in pipeline code.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".rangeload")
DEFAULT_INPUT_URI = "data/tbl_logs"
DEFAULT_TABLE_NAME = "tbl_logs"
DEFAULT_COLUMN_FAMILY = "detail"
DEFAULT_FIELD_DELIMITER = "\t"
LOGS_COLUMNS = (
    "id",
    "log_id",
    "remote_ip",
    "site_global_ticket",
    "site_global_session",
    "global_user_id",
    "cookie_text",
    "user_agent",
    "ref_url",
    "loc_url",
    "log_time",
)
DEFAULT_WORKERS = 1
DEFAULT_SPILL_THRESHOLD_CELLS = 200_000
DEFAULT_BLOCK_CELLS = 4096
MERGE_READ_BATCH_SIZE = 8192
STAGING_DIR_NAME = "staging"
SPILL_DIR_NAME = "_spill"
SPLIT_DIR_NAME = "_split"
TABLES_DIR_NAME = "tables"
PARTITIONS_DIR_NAME = "partitions"
CATALOG_FILE_NAME = "catalog.json"
SORTED_FILE_SUFFIX = ".parquet"
SORTED_FILE_METADATA_KEY = "rangeload.sorted_file"
SORTED_FILE_FORMAT_VERSION = 1
HASH_ALGORITHM = "sha256"
