"""Unit tests for core config parsing."""

from __future__ import annotations

import os

import pytest

from core.config import RangeloadConfig
from core.errors import RangeloadConfigError


def test_from_env_reads_data_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should resolve data root from environment."""
    monkeypatch.setenv("RANGELOAD_DATA_ROOT", "./.tmp-rangeload")

    config = RangeloadConfig.from_env()

    assert config.data_root.name == ".tmp-rangeload"


def test_from_env_defaults_staging_under_data_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Default staging directory should live under the data root."""
    monkeypatch.setenv("RANGELOAD_DATA_ROOT", "./.tmp-rangeload")
    monkeypatch.delenv("RANGELOAD_STAGING_DIR", raising=False)

    config = RangeloadConfig.from_env()

    assert config.staging_dir == config.data_root / "staging" / "tbl_logs"


def test_from_env_reads_workers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should parse the worker count."""
    monkeypatch.setenv("RANGELOAD_WORKERS", "4")

    config = RangeloadConfig.from_env()

    assert config.workers == 4


def test_from_env_raises_for_invalid_workers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for non-numeric worker count."""
    monkeypatch.setenv("RANGELOAD_WORKERS", "not-a-number")

    with pytest.raises(RangeloadConfigError):
        RangeloadConfig.from_env()

    assert os.getenv("RANGELOAD_WORKERS") == "not-a-number"


def test_from_env_raises_for_zero_block_cells(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should reject a block size below one cell."""
    monkeypatch.setenv("RANGELOAD_BLOCK_CELLS", "0")

    with pytest.raises(RangeloadConfigError):
        RangeloadConfig.from_env()


def test_with_data_root_moves_default_staging(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Staging should follow a new data root when it is not pinned."""
    monkeypatch.delenv("RANGELOAD_STAGING_DIR", raising=False)

    config = RangeloadConfig.from_env().with_data_root(tmp_path)

    assert config.staging_dir == tmp_path.resolve() / "staging" / "tbl_logs"


def test_with_data_root_keeps_pinned_staging(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """An explicitly configured staging directory should not move."""
    monkeypatch.setenv("RANGELOAD_STAGING_DIR", str(tmp_path / "pinned"))

    config = RangeloadConfig.from_env().with_data_root(tmp_path / "store")

    assert config.staging_dir == (tmp_path / "pinned").resolve()
