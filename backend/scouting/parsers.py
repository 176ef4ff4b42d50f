"""
Table parser: turns uploaded CSV / Excel bytes into a ParsedTable.

Every cell is resolved exactly once here to a bool, int, float, str or None,
so later stages can pattern-match on the Python type instead of guessing.
Malformed rows produce warnings, never exceptions; only an unreadable file
raises ParseError.
"""
from __future__ import annotations

import csv
import io
import logging
import math
import re
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from scouting.errors import ParseError
from scouting.schemas import SHEET_COLUMN, Cell, ParsedTable, Row

logger = logging.getLogger(__name__)

# Extension → file kind
_EXT_MAP = {
    ".csv": "csv",
    ".xlsx": "xlsx",
    ".xls": "xls",
}

_MIME_MAP = {
    "text/csv": "csv",
    "application/csv": "csv",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-excel": "xls",
}

SUPPORTED_EXTENSIONS = set(_EXT_MAP.keys())
SUPPORTED_FILE_TYPES = set(_EXT_MAP.values())

_EXCEL_ENGINES = {"xlsx": "openpyxl", "xls": "xlrd"}

_INT_RE = re.compile(r"^[+-]?\d+$")
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


def detect_file_type(mime_type: Optional[str], file_name: str) -> Optional[str]:
    """MIME type first, then extension. None when unsupported."""
    kind = _MIME_MAP.get((mime_type or "").lower())
    if kind:
        return kind
    return _EXT_MAP.get(Path(file_name or "").suffix.lower())


def coerce_cell(value: Any) -> Cell:
    """Resolve a raw cell value to bool / int / float / str / None."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        f = float(value)
        return f if math.isfinite(f) else None
    if isinstance(value, datetime):
        if value.time() == time(0, 0) and value.tzinfo is None:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    if not isinstance(value, str):
        return str(value)

    stripped = value.strip()
    if stripped == "":
        return None
    if _INT_RE.match(stripped):
        return int(stripped)
    if _NUMBER_RE.match(stripped):
        f = float(stripped)
        return f if math.isfinite(f) else value
    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return value


def _clean_headers(columns) -> List[str]:
    """Strip whitespace; deduplicate names that collide after stripping."""
    seen: Dict[str, int] = {}
    cleaned = []
    for col in columns:
        c = str(col).strip()
        if c in seen:
            seen[c] += 1
            cleaned.append(f"{c}_{seen[c]}")
        else:
            seen[c] = 0
            cleaned.append(c)
    return cleaned


def _decode(content: bytes, warnings: List[str]) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Latin-1 maps every byte, so legacy spreadsheet exports still load
        warnings.append("File is not valid UTF-8; decoded as Latin-1")
        return content.decode("latin-1")


def _is_blank(fields: List[str]) -> bool:
    return not fields or (len(fields) == 1 and not fields[0].strip())


def _parse_csv(content: bytes, warnings: List[str]) -> ParsedTable:
    text = _decode(content, warnings)
    sample = text[:4096]
    sep = "\t" if "\t" in sample and "," not in sample else ","

    records = [fields for fields in csv.reader(io.StringIO(text), delimiter=sep) if not _is_blank(fields)]
    if not records:
        raise ParseError("CSV file has no header row")

    headers = _clean_headers(name.strip() or f"Unnamed: {i}" for i, name in enumerate(records[0]))
    expected = len(headers)

    rows: List[Row] = []
    for position, fields in enumerate(records[1:]):
        # +2: one for the header line, one for 1-based numbering
        row_number = position + 2
        if len(fields) > expected:
            warnings.append(
                f"Row {row_number}: Too many fields: expected {expected}, saw {len(fields)}; extra values dropped"
            )
            fields = fields[:expected]
        elif len(fields) < expected:
            warnings.append(f"Row {row_number}: Too few fields; missing values set to null")
            fields = fields + [None] * (expected - len(fields))
        rows.append({h: coerce_cell(v) for h, v in zip(headers, fields)})

    return ParsedTable(headers=headers, rows=rows, warnings=warnings)


def _parse_excel(content: bytes, file_type: str, warnings: List[str]) -> ParsedTable:
    try:
        sheets = pd.read_excel(
            io.BytesIO(content),
            sheet_name=None,
            engine=_EXCEL_ENGINES[file_type],
            dtype=object,
        )
    except Exception as e:
        raise ParseError(f"Failed to parse Excel file: {e}") from e

    if not sheets:
        raise ParseError("No sheets found in Excel file")

    all_headers: List[str] = []
    sheet_rows: List[tuple[str, List[Row]]] = []

    for sheet_name, df in sheets.items():
        headers = _clean_headers(df.columns)
        rows = []
        for record in df.itertuples(index=False, name=None):
            row = {h: coerce_cell(v) for h, v in zip(headers, record)}
            if all(v is None for v in row.values()):
                continue
            rows.append(row)
        if not rows:
            logger.debug(f"Sheet '{sheet_name}' has no data rows; skipped")
            continue
        for h in headers:
            if h not in all_headers:
                all_headers.append(h)
        sheet_rows.append((str(sheet_name), rows))

    multi_sheet = len(sheet_rows) > 1
    if multi_sheet and SHEET_COLUMN not in all_headers:
        all_headers = [SHEET_COLUMN] + all_headers

    merged: List[Row] = []
    for sheet_name, rows in sheet_rows:
        for row in rows:
            full = {h: row.get(h) for h in all_headers}
            if multi_sheet:
                full[SHEET_COLUMN] = sheet_name
            merged.append(full)

    return ParsedTable(headers=all_headers, rows=merged, warnings=warnings)


def parse_file(content: bytes, file_type: str) -> ParsedTable:
    """
    Parse CSV / XLSX / XLS bytes into a ParsedTable.

    Raises ParseError only when the file cannot be read at all; row-level
    problems are reported in ParsedTable.warnings.
    """
    kind = (file_type or "").lower()
    if kind not in SUPPORTED_FILE_TYPES:
        raise ParseError(
            f"Unsupported file type '{file_type}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_FILE_TYPES))}"
        )

    warnings: List[str] = []
    try:
        if kind == "csv":
            table = _parse_csv(content, warnings)
        else:
            table = _parse_excel(content, kind, warnings)
    except ParseError:
        raise
    except Exception as e:
        raise ParseError(f"Failed to parse {kind} file: {e}") from e

    logger.info(
        f"Parsed {kind}: {table.row_count} rows × {len(table.headers)} cols ({len(table.warnings)} warnings)"
    )
    return table


def preview(table: ParsedTable, max_rows: int = 10) -> ParsedTable:
    """First `max_rows` rows of a table; headers and warnings unchanged."""
    return ParsedTable(headers=list(table.headers), rows=table.rows[:max_rows], warnings=list(table.warnings))
