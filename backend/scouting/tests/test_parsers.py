from datetime import datetime

import pandas as pd
import pytest

from scouting.errors import ParseError
from scouting.parsers import coerce_cell, detect_file_type, parse_file, preview


def test_csv_cells_are_coerced_to_python_types():
    content = b"date,hits,at_bats,starter,note\n2024-05-01,2,4,TRUE,good\n2024-05-02, 3 ,5.5,false,\n"

    table = parse_file(content, "csv")

    assert table.headers == ["date", "hits", "at_bats", "starter", "note"]
    assert table.rows[0] == {"date": "2024-05-01", "hits": 2, "at_bats": 4, "starter": True, "note": "good"}
    assert table.rows[1] == {"date": "2024-05-02", "hits": 3, "at_bats": 5.5, "starter": False, "note": None}
    assert table.warnings == []


def test_csv_headers_are_stripped_and_blank_lines_skipped():
    table = parse_file(b" name , score \nAnn,10\n\nBo,12\n", "csv")

    assert table.headers == ["name", "score"]
    assert [r["name"] for r in table.rows] == ["Ann", "Bo"]


def test_csv_row_with_too_many_fields_is_truncated_with_warning():
    table = parse_file(b"a,b\n1,2\n3,4,5\n", "csv")

    assert table.rows == [{"a": 1, "b": 2}, {"a": 3, "b": 4}]
    assert table.warnings == ["Row 3: Too many fields: expected 2, saw 3; extra values dropped"]


def test_csv_first_data_row_too_long_does_not_become_an_index():
    table = parse_file(b"a,b\n1,2,3\n4,5\n", "csv")

    assert table.headers == ["a", "b"]
    assert table.rows == [{"a": 1, "b": 2}, {"a": 4, "b": 5}]
    assert table.warnings == ["Row 2: Too many fields: expected 2, saw 3; extra values dropped"]


def test_csv_quoted_fields_keep_separators():
    table = parse_file(b'player,note\n"Lee, Ann","said ""ok"""\n', "csv")

    assert table.rows == [{"player": "Lee, Ann", "note": 'said "ok"'}]
    assert table.warnings == []


def test_latin1_csv_is_decoded_with_warning():
    table = parse_file("player,hits\nJosé,2\n".encode("latin-1"), "csv")

    assert table.rows == [{"player": "José", "hits": 2}]
    assert table.warnings == ["File is not valid UTF-8; decoded as Latin-1"]


def test_utf8_bom_is_not_part_of_first_header():
    table = parse_file("\ufeffdate,hits\n2024-05-01,2\n".encode("utf-8"), "csv")

    assert table.headers == ["date", "hits"]


def test_csv_row_with_too_few_fields_is_padded_with_null():
    table = parse_file(b"a,b,c\n1,2,3\n4,5\n", "csv")

    assert table.rows[1] == {"a": 4, "b": 5, "c": None}
    assert table.warnings == ["Row 3: Too few fields; missing values set to null"]


def test_empty_csv_raises_parse_error():
    with pytest.raises(ParseError):
        parse_file(b"", "csv")


def test_unsupported_kind_raises_parse_error():
    with pytest.raises(ParseError):
        parse_file(b"a,b\n1,2\n", "json")


def test_parse_is_deterministic_for_identical_bytes(xlsx):
    csv_bytes = b"player,avg,ops\nAnn,.301,0.850\nBo,.250,0.700\n"
    assert parse_file(csv_bytes, "csv") == parse_file(csv_bytes, "csv")

    book = xlsx({"Home": pd.DataFrame({"A": [1, 2], "B": ["x", "y"]})})
    assert parse_file(book, "xlsx") == parse_file(book, "xlsx")


def test_two_sheet_workbook_unions_headers_with_sheet_column_first(xlsx):
    book = xlsx({
        "Home": pd.DataFrame({"A": [1, 2], "B": [3, 4]}),
        "Away": pd.DataFrame({"B": [5], "C": ["late"]}),
    })

    table = parse_file(book, "xlsx")

    assert table.headers == ["_sheet", "A", "B", "C"]
    assert len(table.rows) == 3
    home_row = table.rows[0]
    assert home_row["_sheet"] == "Home"
    assert home_row["C"] is None
    away_row = table.rows[2]
    assert away_row == {"_sheet": "Away", "A": None, "B": 5, "C": "late"}
    assert all(set(r) == set(table.headers) for r in table.rows)


def test_single_sheet_and_csv_have_no_sheet_column(xlsx):
    book = xlsx({"Only": pd.DataFrame({"A": [1], "B": [2]})})
    assert "_sheet" not in parse_file(book, "xlsx").headers
    assert "_sheet" not in parse_file(b"A,B\n1,2\n", "csv").headers


def test_sheets_without_data_rows_do_not_count_as_contributing(xlsx):
    book = xlsx({
        "Empty": pd.DataFrame({"A": [], "B": []}),
        "Data": pd.DataFrame({"A": [1], "B": [2]}),
    })

    table = parse_file(book, "xlsx")

    assert table.headers == ["A", "B"]
    assert table.rows == [{"A": 1, "B": 2}]


def test_unreadable_workbook_raises_parse_error():
    with pytest.raises(ParseError):
        parse_file(b"definitely not a zip file", "xlsx")


def test_coerce_cell_rules():
    assert coerce_cell(None) is None
    assert coerce_cell(float("nan")) is None
    assert coerce_cell(float("inf")) is None
    assert coerce_cell("") is None
    assert coerce_cell("   ") is None
    assert coerce_cell(" 42 ") == 42
    assert coerce_cell("-1.5e2") == -150.0
    assert coerce_cell("True") is True
    assert coerce_cell("FALSE") is False
    assert coerce_cell("yes") == "yes"
    assert coerce_cell(datetime(2024, 5, 1)) == "2024-05-01"
    assert coerce_cell(datetime(2024, 5, 1, 13, 30)) == "2024-05-01T13:30:00"
    assert coerce_cell(True) is True
    assert isinstance(coerce_cell(3.0), float)


def test_detect_file_type_prefers_mime_then_extension():
    assert detect_file_type("text/csv", "upload.bin") == "csv"
    assert detect_file_type(None, "stats.XLSX") == "xlsx"
    assert detect_file_type("application/octet-stream", "old.xls") == "xls"
    assert detect_file_type("application/octet-stream", "notes.txt") is None


def test_preview_truncates_rows_only():
    table = parse_file(b"a\n1\n2\n3\n", "csv")
    short = preview(table, max_rows=2)
    assert short.headers == ["a"]
    assert len(short.rows) == 2
    assert table.row_count == 3
