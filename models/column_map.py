"""
Column map configuration types.

A ColumnMapConfig describes one lab data type: which headers identify a
row, which hold values, how unknown headers are treated, and the natural key
the destination table deduplicates on. Configs are static; the registry in
parsers/column_maps.py holds one per FileType.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FileType(str, Enum):
    """Classification of an uploaded file."""
    TRIAL_SUMMARY = "trialSummary"
    SOIL_HEALTH = "soilHealth"
    SOIL_CHEMISTRY = "soilChemistry"
    PLOT_DATA = "plotData"
    TISSUE_CHEMISTRY = "tissueChemistry"
    SAMPLE_METADATA = "sampleMetadata"
    PHOTO = "photo"
    UNKNOWN = "unknown"

    @property
    def is_data_file(self) -> bool:
        """True for lab data files that need an established trial."""
        return self not in (FileType.TRIAL_SUMMARY, FileType.PHOTO, FileType.UNKNOWN)


class PivotMode(str, Enum):
    DIRECT = "direct"              # 1 source row -> 1 canonical row
    WIDE_TO_LONG = "wide_to_long"  # 1 source row -> 1 canonical row per metric


class ValueType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"


# Override targets with special meaning
SKIP = "__skip__"
METRIC = "__metric__"

DEFAULT_UNIT_PATTERN = re.compile(r"\(([^)]+)\)")


@dataclass(frozen=True)
class ColumnAlias:
    """Canonical field and the header spellings that resolve to it."""
    field: str
    aliases: tuple[str, ...]
    value_type: ValueType = ValueType.STRING


@dataclass(frozen=True)
class ColumnMapConfig:
    """Declarative mapping for one data type."""
    target_table: str
    file_type: FileType
    pivot_mode: PivotMode
    identity_columns: tuple[ColumnAlias, ...]
    natural_key_fields: tuple[str, ...]
    value_columns: tuple[ColumnAlias, ...] = ()
    extra_identity_aliases: tuple[str, ...] = ()
    unit_pattern: re.Pattern = DEFAULT_UNIT_PATTERN
    trial_id_aliases: tuple[str, ...] = ()

    @property
    def is_pivot(self) -> bool:
        return self.pivot_mode == PivotMode.WIDE_TO_LONG

    @property
    def mapped_columns(self) -> tuple[ColumnAlias, ...]:
        """Identity columns, then value columns (direct mode only)."""
        if self.is_pivot:
            return self.identity_columns
        return self.identity_columns + self.value_columns

    def column_for(self, field_name: str) -> Optional[ColumnAlias]:
        for col in self.mapped_columns:
            if col.field == field_name:
                return col
        return None
