"""
Raw content parser for lab export files.

Turns CSV text or a spreadsheet workbook into an ordered header list and a
list of row dicts keyed by the original header text. Every cell comes out as
a trimmed string so the transform engine never has to special-case numeric
vs. textual cells. No business semantics live here.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from io import BytesIO, StringIO
from typing import Any, Optional, Union
import structlog

import pandas as pd

from exceptions import ParseError, DuplicateHeaderError

logger = structlog.get_logger(__name__)

SPREADSHEET_EXTENSIONS = (".xlsx", ".xlsm", ".xls")
CANDIDATE_DELIMITERS = (",", ";", "\t")


class SourceFormat(str, Enum):
    """Structural format of an uploaded file."""
    DELIMITED = "delimited"
    SPREADSHEET = "spreadsheet"


@dataclass
class RawContent:
    """Parsed file: headers in file order and one dict per data row."""
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)


def detect_source_format(filename: str) -> SourceFormat:
    """Spreadsheet for Excel extensions, delimited text otherwise."""
    if filename.lower().endswith(SPREADSHEET_EXTENSIONS):
        return SourceFormat.SPREADSHEET
    return SourceFormat.DELIMITED


def parse_raw_content(
    content: Union[bytes, str],
    source_format: SourceFormat,
) -> RawContent:
    """
    Parse file content into headers and row dicts.

    Args:
        content: Raw bytes (either format) or decoded CSV text
        source_format: DELIMITED or SPREADSHEET

    Returns:
        RawContent with trimmed headers and stringified, trimmed cells

    Raises:
        ParseError: If the file cannot be read or has no data rows
        DuplicateHeaderError: If two columns share a header
    """
    logger.info(
        "parsing_raw_content",
        source_format=source_format.value,
        size=len(content)
    )

    parsed = _grid_to_rows(read_grid(content, source_format))

    logger.info(
        "raw_content_parsed",
        headers=len(parsed.headers),
        rows=len(parsed.rows)
    )
    return parsed


# ===================
# READERS
# ===================

def read_grid(
    content: Union[bytes, str],
    source_format: SourceFormat,
    prefer_sheet: Optional[str] = None,
) -> list[list[str]]:
    """
    Read every cell as trimmed text, without header handling.

    Args:
        content: Raw bytes or decoded CSV text
        source_format: DELIMITED or SPREADSHEET
        prefer_sheet: For workbooks, read the first sheet whose name contains
                      this text (case-insensitive) instead of the first sheet
    """
    if source_format == SourceFormat.SPREADSHEET:
        return _read_spreadsheet(content, prefer_sheet)
    return _read_delimited(content)


def _read_delimited(content: Union[bytes, str]) -> list[list[str]]:
    text = _decode(content) if isinstance(content, bytes) else content
    if not text.strip():
        raise ParseError("File is empty")

    delimiter = _detect_delimiter(text)
    try:
        df = pd.read_csv(
            StringIO(text),
            sep=delimiter,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except Exception as e:
        logger.error("csv_read_failed", error=str(e))
        raise ParseError(
            message=f"Failed to read CSV file: {e}",
            details={"original_error": str(e)}
        )

    return [[_cell_to_text(v) for v in row] for row in df.itertuples(index=False, name=None)]


def _read_spreadsheet(
    content: Union[bytes, str],
    prefer_sheet: Optional[str] = None,
) -> list[list[str]]:
    if isinstance(content, str):
        raise ParseError("Spreadsheet content must be binary")

    try:
        excel = pd.ExcelFile(BytesIO(content), engine="openpyxl")
        sheet_name = excel.sheet_names[0]
        if prefer_sheet:
            sheet_name = next(
                (n for n in excel.sheet_names if prefer_sheet.lower() in n.lower()),
                sheet_name
            )
        df = excel.parse(sheet_name, header=None, dtype=object)
    except Exception as e:
        logger.error("excel_read_failed", error=str(e))
        raise ParseError(
            message="Failed to read spreadsheet (expected an .xlsx workbook)",
            details={"original_error": str(e)}
        )

    return [[_cell_to_text(v) for v in row] for row in df.itertuples(index=False, name=None)]


def _decode(content: bytes) -> str:
    """UTF-8 (BOM stripped), falling back to Latin-1 for older lab exports."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("csv_decode_fallback", encoding="latin-1")
        return content.decode("latin-1")


def _detect_delimiter(text: str) -> str:
    """Pick the most frequent candidate delimiter on the header line."""
    first_line = text.lstrip().splitlines()[0] if text.strip() else ""
    counts = {d: first_line.count(d) for d in CANDIDATE_DELIMITERS}
    best = max(CANDIDATE_DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] > 0 else ","


# ===================
# HELPERS
# ===================

def _cell_to_text(value: Any) -> str:
    """
    Stringify a cell.

    "6.8" -> "6.8", 7.0 -> "7", datetime(2024, 3, 1) -> "2024-03-01",
    None/NaN -> "".
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass

    if isinstance(value, datetime):
        if value.hour == 0 and value.minute == 0 and value.second == 0 and value.microsecond == 0:
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _grid_to_rows(grid: list[list[str]]) -> RawContent:
    """Split a cell grid into headers and non-empty row dicts."""
    # Skip blank lines above the header
    start = 0
    while start < len(grid) and not any(grid[start]):
        start += 1
    if start >= len(grid):
        raise ParseError("No header row found in file")

    header_cells = grid[start]
    data = grid[start + 1:]

    keep: list[int] = []
    for idx, header in enumerate(header_cells):
        if header:
            keep.append(idx)
            continue
        if any(idx < len(row) and row[idx] for row in data):
            raise ParseError(
                message=f"Column {idx + 1} has values but no header",
                details={"column_index": idx + 1}
            )

    headers = [header_cells[idx] for idx in keep]
    _check_duplicate_headers(headers)

    rows: list[dict[str, str]] = []
    for row in data:
        record = {
            headers[pos]: (row[idx] if idx < len(row) else "")
            for pos, idx in enumerate(keep)
        }
        if any(record.values()):
            rows.append(record)

    if not rows:
        raise ParseError("No data rows found in file")

    return RawContent(headers=headers, rows=rows)


def _check_duplicate_headers(headers: list[str]) -> None:
    """Headers are matched case-insensitively, so duplicates are ambiguous."""
    seen: set[str] = set()
    duplicates: list[str] = []
    for header in headers:
        key = header.strip().lower()
        if key in seen and header not in duplicates:
            duplicates.append(header)
        seen.add(key)

    if duplicates:
        raise DuplicateHeaderError(duplicates)
