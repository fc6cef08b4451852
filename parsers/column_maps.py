"""
Declarative column mapping registry.

Each data type defines:
- identity_columns: columns that identify the row (sample_no, date, etc.)
  Each maps a canonical field name to the header aliases labs use for it.
- pivot_mode: DIRECT for row mapping, WIDE_TO_LONG for metric pivoting
- value_columns (DIRECT only): fixed measurement columns with aliases
- extra_identity_aliases (WIDE_TO_LONG only): headers to skip during pivot
- natural_key_fields: must match the destination table's unique constraint
- target_table / file_type: destination table and coverage flag

To support a new column name from a different lab, add the alias to the
relevant tuple. No parser code changes needed.
"""

from typing import Any, Optional, Union

from models.column_map import (
    ColumnAlias,
    ColumnMapConfig,
    FileType,
    PivotMode,
    ValueType,
    SKIP,
    METRIC,
)
from exceptions import UnknownFileTypeError

# ===================
# SHARED ALIASES
# ===================

SAMPLE_NO = ColumnAlias(
    "sample_no",
    ("sampleno", "sample_no", "sample no", "sample", "sample id", "sampleid"),
)
SAMPLE_DATE = ColumnAlias(
    "date",
    ("date", "sample_date", "sample date", "collection_date", "sampling_date"),
    ValueType.DATE,
)
BARCODE = ColumnAlias("barcode", ("barcode", "bar_code", "bar code"))

TRIAL_ID_ALIASES = (
    "trial", "trial id", "trial_id", "trial no", "trial no.", "trial number", "trial code",
)

# Sample point coordinates are captured with soil health samples
LOCATION_ALIASES = ("latitude", "lat", "longitude", "lng", "lon", "long")


COLUMN_MAPS: dict[FileType, ColumnMapConfig] = {
    FileType.SOIL_HEALTH: ColumnMapConfig(
        target_table="soil_health_samples",
        file_type=FileType.SOIL_HEALTH,
        pivot_mode=PivotMode.DIRECT,
        identity_columns=(
            SAMPLE_NO,
            SAMPLE_DATE,
            ColumnAlias("property", ("property", "farm", "site")),
            ColumnAlias("block", ("block", "paddock", "zone")),
            BARCODE,
            ColumnAlias("latitude", ("latitude", "lat"), ValueType.NUMBER),
            ColumnAlias("longitude", ("longitude", "lng", "lon", "long"), ValueType.NUMBER),
        ),
        natural_key_fields=("sample_no", "date", "property", "block"),
        trial_id_aliases=TRIAL_ID_ALIASES,
    ),

    FileType.SOIL_CHEMISTRY: ColumnMapConfig(
        target_table="soil_chemistry",
        file_type=FileType.SOIL_CHEMISTRY,
        pivot_mode=PivotMode.WIDE_TO_LONG,
        identity_columns=(
            BARCODE,
            SAMPLE_NO,
            SAMPLE_DATE,
            ColumnAlias("block", ("block", "property", "paddock", "zone")),
        ),
        extra_identity_aliases=LOCATION_ALIASES + TRIAL_ID_ALIASES,
        natural_key_fields=("barcode", "sample_no", "date", "metric"),
        trial_id_aliases=TRIAL_ID_ALIASES,
    ),

    FileType.PLOT_DATA: ColumnMapConfig(
        target_table="plot_data",
        file_type=FileType.PLOT_DATA,
        pivot_mode=PivotMode.DIRECT,
        identity_columns=(
            ColumnAlias("plot", ("plot", "plot no", "plot_no", "plotno", "plot number")),
            ColumnAlias(
                "trt_number",
                ("trt", "treatment", "trt_number", "trt_no", "treatment_number", "treatment number"),
                ValueType.NUMBER,
            ),
            ColumnAlias("rep", ("rep", "replicate", "rep_no", "replication"), ValueType.NUMBER),
        ),
        value_columns=(
            ColumnAlias(
                "yield_t_ha",
                ("yield", "yield_t_ha", "yield t/ha", "yield_tha", "yield (t/ha)"),
                ValueType.NUMBER,
            ),
            ColumnAlias(
                "plant_count",
                ("plant_count", "plant count", "plants", "plantcount", "plant_no", "plant no"),
                ValueType.NUMBER,
            ),
            ColumnAlias("vigour", ("vigour", "vigor", "vigour_score", "vigor_score"), ValueType.NUMBER),
            ColumnAlias(
                "disease_score",
                ("disease", "disease_score", "disease score", "diseasescore"),
                ValueType.NUMBER,
            ),
        ),
        natural_key_fields=("plot", "trt_number", "rep"),
        trial_id_aliases=TRIAL_ID_ALIASES,
    ),

    FileType.TISSUE_CHEMISTRY: ColumnMapConfig(
        target_table="tissue_chemistry",
        file_type=FileType.TISSUE_CHEMISTRY,
        pivot_mode=PivotMode.WIDE_TO_LONG,
        identity_columns=(
            BARCODE,
            SAMPLE_NO,
            SAMPLE_DATE,
            ColumnAlias(
                "tissue_type",
                ("tissue", "tissue_type", "tissue type", "tissuetype", "plant_part", "plant part"),
            ),
        ),
        extra_identity_aliases=TRIAL_ID_ALIASES,
        natural_key_fields=("barcode", "sample_no", "date", "tissue_type", "metric"),
        trial_id_aliases=TRIAL_ID_ALIASES,
    ),

    FileType.SAMPLE_METADATA: ColumnMapConfig(
        target_table="sample_metadata",
        file_type=FileType.SAMPLE_METADATA,
        pivot_mode=PivotMode.WIDE_TO_LONG,
        identity_columns=(
            BARCODE,
            SAMPLE_NO,
            SAMPLE_DATE,
            ColumnAlias("block", ("block", "property", "paddock", "zone")),
            ColumnAlias("treatment", ("treatment", "trt", "trt_number", "trt_no"), ValueType.NUMBER),
            ColumnAlias("assay_type", ("assay_type", "assay", "assaytype", "assay type")),
        ),
        extra_identity_aliases=("rep", "replicate") + TRIAL_ID_ALIASES,
        natural_key_fields=("assay_type", "barcode", "sample_no", "date", "metric"),
        trial_id_aliases=TRIAL_ID_ALIASES,
    ),

    # Treatment definitions from the trial summary workbook. Rows are built by
    # the trial summary parser, so this config only feeds the loader.
    FileType.TRIAL_SUMMARY: ColumnMapConfig(
        target_table="treatments",
        file_type=FileType.TRIAL_SUMMARY,
        pivot_mode=PivotMode.DIRECT,
        identity_columns=(
            ColumnAlias("trt_number", ("trt", "treatment", "trt_number", "trt no"), ValueType.NUMBER),
        ),
        value_columns=(
            ColumnAlias("application", ("application",)),
            ColumnAlias("fertiliser", ("fertiliser", "fertilizer")),
            ColumnAlias("product", ("product",)),
            ColumnAlias("rate", ("rate",)),
            ColumnAlias("timing", ("timing",)),
        ),
        natural_key_fields=("trt_number",),
    ),
}


def get_column_map(file_type: Union[FileType, str]) -> ColumnMapConfig:
    """
    Look up the column map for a file type.

    Raises:
        UnknownFileTypeError: If no map is registered
    """
    try:
        key = FileType(file_type)
    except ValueError:
        raise UnknownFileTypeError(str(file_type))

    config = COLUMN_MAPS.get(key)
    if config is None:
        raise UnknownFileTypeError(key.value)
    return config


def normalize_header(header: Any) -> str:
    """Lower-cased, trimmed header text used for alias matching."""
    return str(header).strip().lower()


def get_known_aliases(config: ColumnMapConfig) -> frozenset[str]:
    """
    All aliases the config knows about (identity + value + extra + trial id).

    Used by the transform engine to tell "known but not mapped to a field"
    apart from "genuinely unknown".
    """
    known = set()
    for col in config.identity_columns + config.value_columns:
        known.update(normalize_header(a) for a in col.aliases)
    known.update(normalize_header(a) for a in config.extra_identity_aliases)
    known.update(normalize_header(a) for a in config.trial_id_aliases)
    return frozenset(known)


def get_target_fields(config: ColumnMapConfig) -> list[str]:
    """Canonical fields a user may map a header to, plus the special targets."""
    fields = [col.field for col in config.mapped_columns]
    fields.append(SKIP)
    if config.is_pivot:
        fields.append(METRIC)
    return fields


def extract_trial_id(rows: list[dict[str, Any]], config: ColumnMapConfig) -> Optional[str]:
    """
    Infer the owning trial from the data itself.

    Returns the first non-empty value found under any trial id header,
    scanning rows in order and headers in file order.
    """
    aliases = {normalize_header(a) for a in config.trial_id_aliases}
    if not aliases:
        return None

    for row in rows:
        for header, value in row.items():
            if normalize_header(header) in aliases:
                text = str(value).strip() if value is not None else ""
                if text:
                    return text
    return None
