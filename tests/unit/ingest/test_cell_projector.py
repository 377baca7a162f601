"""Unit tests for record to cell projection."""

from __future__ import annotations

from core.schema import LOGS_SCHEMA
from ingest.cell_projector import CellProjector
from ingest.record_decoder import RecordDecoder
from tests.fixture_paths import log_line

_SORTED_QUALIFIERS = [
    b"cookie_text",
    b"global_user_id",
    b"loc_url",
    b"log_id",
    b"log_time",
    b"ref_url",
    b"remote_ip",
    b"site_global_session",
    b"site_global_ticket",
    b"user_agent",
]


def _project(line: str):
    fields = RecordDecoder(LOGS_SCHEMA).decode(line)
    assert fields is not None
    return CellProjector(LOGS_SCHEMA, timestamp=1000).project(fields)


def test_project_emits_cells_sorted_by_qualifier() -> None:
    """Projector should emit one cell per value column in byte order."""
    cells = _project(log_line("42"))

    assert [cell.qualifier for cell in cells] == _SORTED_QUALIFIERS


def test_project_uses_field_zero_as_row_key() -> None:
    """Every cell should carry the first field as row key."""
    cells = _project(log_line("42"))

    assert {cell.row_key for cell in cells} == {b"42"}


def test_project_maps_values_to_their_columns() -> None:
    """Cell values should come from the matching field position."""
    cells = {cell.qualifier: cell.value for cell in _project(log_line("42", suffix="v"))}

    assert cells[b"log_id"] == b"f1-v" and cells[b"log_time"] == b"f10-v"


def test_project_stamps_family_and_timestamp() -> None:
    """Cells should share the schema family and run timestamp."""
    cells = _project(log_line("42"))

    assert all(cell.family == b"detail" and cell.timestamp == 1000 for cell in cells)


def test_project_keeps_empty_values() -> None:
    """Empty fields should still produce cells."""
    cells = _project("42" + "\t" * 10 + "\n")

    assert len(cells) == 10 and all(cell.value == b"" for cell in cells)
