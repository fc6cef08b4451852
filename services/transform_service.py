"""
Transform engine.

Turns parsed raw rows into canonical rows for a destination table, driven
entirely by a ColumnMapConfig:

- resolve_headers: pure header -> field resolution (first alias match wins,
  user overrides applied last)
- transform: direct row mapping or wide-to-long metric pivot
- validate_overrides: reject override targets the config does not know

Nothing here touches the database.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional
import structlog

from models.column_map import ColumnAlias, ColumnMapConfig, ValueType, SKIP, METRIC
from parsers.column_maps import get_known_aliases, get_target_fields, normalize_header
from utils.value_utils import parse_date, parse_number, to_text
from exceptions import ValidationError

logger = structlog.get_logger(__name__)

UNIT_ANNOTATION = re.compile(r"\s*\([^)]+\)\s*")


@dataclass(frozen=True)
class TransformResult:
    """Canonical rows plus the mapping that produced them."""
    rows: list[dict[str, Any]] = field(default_factory=list)
    headers: list[str] = field(default_factory=list)
    unmapped_columns: list[str] = field(default_factory=list)
    applied_map: dict[str, str] = field(default_factory=dict)


# ===================
# HEADER RESOLUTION
# ===================

def resolve_headers(
    headers: list[str],
    config: ColumnMapConfig,
    overrides: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """
    Resolve file headers to canonical fields.

    Identity columns bind first, in config order, then value columns (direct
    mode only). For each column the first header in file order whose
    normalized text is one of its aliases wins. Extra identity aliases are
    marked __skip__ in pivot mode. Overrides are applied last and replace
    anything bound before them.

    Args:
        headers: Original headers in file order
        config: Column map for the data type
        overrides: Header -> field (or __skip__ / __metric__); keys are matched
                   case-insensitively and keys naming no header are ignored

    Returns:
        Original header -> field for every header that resolved
    """
    mapping: dict[str, str] = {}

    for col in config.mapped_columns:
        aliases = {normalize_header(a) for a in col.aliases}
        for header in headers:
            if header in mapping:
                continue
            if normalize_header(header) in aliases:
                mapping[header] = col.field
                break

    if config.is_pivot and config.extra_identity_aliases:
        extras = {normalize_header(a) for a in config.extra_identity_aliases}
        for header in headers:
            if header not in mapping and normalize_header(header) in extras:
                mapping[header] = SKIP

    if overrides:
        by_normalized = {normalize_header(h): h for h in headers}
        for source, target in overrides.items():
            header = by_normalized.get(normalize_header(source))
            if header is None:
                continue
            if target not in (SKIP, METRIC):
                # A field binds to exactly one header
                for other, bound in list(mapping.items()):
                    if bound == target and other != header:
                        del mapping[other]
            mapping[header] = target

    return mapping


def validate_overrides(config: ColumnMapConfig, overrides: dict[str, str]) -> None:
    """
    Check every override target is a field this data type knows.

    Raises:
        ValidationError: On an unknown target, or __metric__ in direct mode
    """
    valid = set(get_target_fields(config))
    invalid = {h: t for h, t in overrides.items() if t not in valid}
    if invalid:
        raise ValidationError(
            message=(
                f"Unknown target field(s) for {config.file_type.value}: "
                f"{', '.join(sorted(set(invalid.values())))}"
            ),
            code="INVALID_COLUMN_OVERRIDE",
            details={"invalid": invalid, "valid_fields": sorted(valid)}
        )


# ===================
# TRANSFORM
# ===================

def transform(
    raw_rows: list[dict[str, Any]],
    headers: list[str],
    config: ColumnMapConfig,
    overrides: Optional[dict[str, str]] = None,
    extra_defaults: Optional[dict[str, Any]] = None,
) -> TransformResult:
    """
    Transform raw rows into canonical rows for config.target_table.

    Direct mode yields one row per source row (rows with every mapped field
    empty are dropped). Pivot mode yields one row per numeric metric cell.
    The owning trial_id is added by the loader, not here.

    Args:
        raw_rows: Row dicts keyed by original header
        headers: Original headers in file order
        config: Column map for the data type
        overrides: Column overrides from review
        extra_defaults: Values applied to every row (e.g. assay_type)

    Returns:
        TransformResult
    """
    applied_map = resolve_headers(headers, config, overrides)

    if config.is_pivot:
        rows = [
            out
            for raw in raw_rows
            for out in _pivot_row(raw, headers, applied_map, config, extra_defaults)
        ]
        unmapped: list[str] = []
    else:
        rows = [
            out
            for out in (
                _direct_row(raw, applied_map, config, extra_defaults) for raw in raw_rows
            )
            if out is not None
        ]
        known = get_known_aliases(config)
        unmapped = [
            h for h in headers
            if h not in applied_map and normalize_header(h) not in known
        ]

    logger.info(
        "rows_transformed",
        target_table=config.target_table,
        source_rows=len(raw_rows),
        canonical_rows=len(rows),
        unmapped=len(unmapped)
    )

    return TransformResult(
        rows=rows,
        headers=list(headers),
        unmapped_columns=unmapped,
        applied_map=applied_map,
    )


def _direct_row(
    raw: dict[str, Any],
    applied_map: dict[str, str],
    config: ColumnMapConfig,
    extra_defaults: Optional[dict[str, Any]],
) -> Optional[dict[str, Any]]:
    """Map one source row; None when every mapped field came out empty."""
    out: dict[str, Any] = dict(extra_defaults or {})
    has_value = False

    for col in config.mapped_columns:
        value = _field_value(raw, applied_map, col)
        if _is_empty(value):
            out.setdefault(col.field, value)
            continue
        out[col.field] = value
        has_value = True

    if not has_value:
        return None

    out["raw_data"] = raw
    return out


def _pivot_row(
    raw: dict[str, Any],
    headers: list[str],
    applied_map: dict[str, str],
    config: ColumnMapConfig,
    extra_defaults: Optional[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Emit one row per metric column with a finite numeric value."""
    identity: dict[str, Any] = dict(extra_defaults or {})
    for col in config.identity_columns:
        value = _field_value(raw, applied_map, col)
        if not _is_empty(value) or col.field not in identity:
            identity[col.field] = value

    rows = []
    for header in _metric_headers(headers, applied_map, config):
        value = parse_number(raw.get(header))
        if value is None:
            continue

        metric, unit = split_unit(header, config.unit_pattern)
        rows.append({
            **identity,
            "metric": metric,
            "value": value,
            "unit": unit,
            "raw_data": raw,
        })
    return rows


def _metric_headers(
    headers: list[str],
    applied_map: dict[str, str],
    config: ColumnMapConfig,
) -> list[str]:
    """Headers that pivot into metrics, in file order."""
    excluded = {
        normalize_header(a)
        for col in config.identity_columns
        for a in col.aliases
    }
    excluded.update(normalize_header(a) for a in config.extra_identity_aliases)

    metrics = []
    for header in headers:
        bound = applied_map.get(header)
        if bound == METRIC:
            metrics.append(header)
        elif bound is None and normalize_header(header) not in excluded:
            metrics.append(header)
    return metrics


def split_unit(header: str, unit_pattern: re.Pattern) -> tuple[str, str]:
    """
    Split a header into metric name and unit.

    "Nitrogen (mg/kg)" -> ("Nitrogen", "mg/kg"), "pH" -> ("pH", "").
    """
    match = unit_pattern.search(header)
    unit = match.group(1).strip() if match else ""
    metric = UNIT_ANNOTATION.sub(" ", header, count=1).strip()
    return metric, unit


# ===================
# VALUE COERCION
# ===================

def _field_value(raw: dict[str, Any], applied_map: dict[str, str], col: ColumnAlias) -> Any:
    for header, bound in applied_map.items():
        if bound == col.field:
            return coerce_value(raw.get(header), col.value_type)
    return coerce_value(None, col.value_type)


def coerce_value(value: Any, value_type: ValueType) -> Any:
    """
    Coerce a cell to the field's type.

    string -> trimmed text ("" when empty); number -> float or None;
    date -> ISO YYYY-MM-DD when parseable, else the original text.
    """
    text = to_text(value)

    if value_type == ValueType.NUMBER:
        return parse_number(text)

    if value_type == ValueType.DATE:
        if not text:
            return None
        parsed = parse_date(text)
        return parsed.isoformat() if parsed else text

    return text


def _is_empty(value: Any) -> bool:
    return value is None or value == ""
