"""
Cell value helpers shared by the transform engine and the trial summary parser.

Lab files are Australian, so ambiguous slash dates are read day-first:
"03/04/2024" is 3 April 2024.
"""

import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
DAY_FIRST_DATE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})$")
EXTRA_DATE_FORMATS = ("%Y/%m/%d", "%d %b %Y", "%d %B %Y", "%d-%b-%Y", "%d-%b-%y")

# Excel serial dates count days from 1899-12-30 (Lotus 1-2-3 leap year bug)
EXCEL_EPOCH = date(1899, 12, 30)


def to_text(value: Any) -> str:
    """Trimmed string, "" for None."""
    if value is None:
        return ""
    return str(value).strip()


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a numeric cell.

    Returns None for empty, non-numeric, NaN or infinite values:
    "6.8" -> 6.8, " 7 " -> 7.0, "<0.1" -> None, "" -> None.
    """
    text = to_text(value)
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a date cell: ISO first, then day-first, then a few spelled formats.

    Returns None when nothing matches.
    """
    text = to_text(value)
    if not text:
        return None

    match = ISO_DATE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _safe_date(year, month, day)

    match = DAY_FIRST_DATE.match(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        return _safe_date(year, month, day)

    for fmt in EXTRA_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_excel_serial_date(value: Any) -> Optional[date]:
    """Convert an Excel serial day number ("45352") to a date."""
    number = parse_number(value)
    if number is None or not (1 < number < 200000):
        return None
    return EXCEL_EPOCH + timedelta(days=int(number))


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None
