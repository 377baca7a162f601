"""Unit tests for delimited record decoding."""

from __future__ import annotations

from core.schema import LOGS_SCHEMA
from ingest.record_decoder import RecordDecoder
from tests.fixture_paths import log_line


def test_decode_returns_eleven_fields() -> None:
    """Decoder should split a full line into eleven fields."""
    decoder = RecordDecoder(LOGS_SCHEMA)

    fields = decoder.decode(log_line("42"))

    assert fields is not None and len(fields) == 11 and fields[0] == "42"


def test_decode_strips_line_terminator() -> None:
    """Decoder should not keep the newline in the last field."""
    decoder = RecordDecoder(LOGS_SCHEMA)

    fields = decoder.decode(log_line("42").replace("\n", "\r\n"))

    assert fields is not None and fields[-1] == "f10-x"


def test_decode_rejects_short_line() -> None:
    """Decoder should drop and count a line with too few fields."""
    decoder = RecordDecoder(LOGS_SCHEMA)

    fields = decoder.decode(log_line("42", field_count=9))

    assert fields is None and decoder.rejected == 1


def test_decode_keeps_surplus_delimiters_in_last_field() -> None:
    """Decoder should fold extra delimiters into the final field."""
    decoder = RecordDecoder(LOGS_SCHEMA)

    fields = decoder.decode(log_line("42", field_count=12))

    assert fields is not None and fields[-1] == "f10-x\tf11-x"


def test_decode_preserves_empty_value_fields() -> None:
    """Decoder should accept empty non-key fields."""
    decoder = RecordDecoder(LOGS_SCHEMA)

    fields = decoder.decode("42" + "\t" * 10 + "\n")

    assert fields == ("42",) + ("",) * 10 and decoder.rejected == 0


def test_decode_accepts_empty_row_key() -> None:
    """A full-arity record with an empty first field should still be valid."""
    decoder = RecordDecoder(LOGS_SCHEMA)

    fields = decoder.decode(log_line(""))

    assert fields is not None and fields[0] == "" and decoder.rejected == 0


def test_decode_strips_lone_carriage_return() -> None:
    """A line ended by a bare CR should not keep it in the last field."""
    decoder = RecordDecoder(LOGS_SCHEMA)

    fields = decoder.decode(log_line("42").replace("\n", "\r"))

    assert fields is not None and fields[-1] == "f10-x"
