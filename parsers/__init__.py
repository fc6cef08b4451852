"""
File parsers and the column map registry.
"""

from parsers.raw_content import (
    SourceFormat,
    RawContent,
    detect_source_format,
    parse_raw_content,
    read_grid,
)
from parsers.classify import classify_file
from parsers.column_maps import (
    COLUMN_MAPS,
    get_column_map,
    get_known_aliases,
    get_target_fields,
    extract_trial_id,
    normalize_header,
)
from parsers.trial_summary import parse_trial_summary

__all__ = [
    "SourceFormat",
    "RawContent",
    "detect_source_format",
    "parse_raw_content",
    "read_grid",
    "classify_file",
    "COLUMN_MAPS",
    "get_column_map",
    "get_known_aliases",
    "get_target_fields",
    "extract_trial_id",
    "normalize_header",
    "parse_trial_summary",
]
