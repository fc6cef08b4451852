"""
Unit tests for the column map registry.

Run: pytest tests/unit/test_column_maps.py -v
"""

import pytest

from models.column_map import FileType, PivotMode, SKIP, METRIC
from parsers.column_maps import (
    COLUMN_MAPS,
    get_column_map,
    get_known_aliases,
    get_target_fields,
    extract_trial_id,
    normalize_header,
)
from exceptions import UnknownFileTypeError


class TestRegistry:
    """Tests for COLUMN_MAPS contents."""

    @pytest.mark.parametrize("file_type,table,mode,natural_key", [
        (FileType.SOIL_HEALTH, "soil_health_samples", PivotMode.DIRECT,
         ("sample_no", "date", "property", "block")),
        (FileType.SOIL_CHEMISTRY, "soil_chemistry", PivotMode.WIDE_TO_LONG,
         ("barcode", "sample_no", "date", "metric")),
        (FileType.PLOT_DATA, "plot_data", PivotMode.DIRECT,
         ("plot", "trt_number", "rep")),
        (FileType.TISSUE_CHEMISTRY, "tissue_chemistry", PivotMode.WIDE_TO_LONG,
         ("barcode", "sample_no", "date", "tissue_type", "metric")),
        (FileType.SAMPLE_METADATA, "sample_metadata", PivotMode.WIDE_TO_LONG,
         ("assay_type", "barcode", "sample_no", "date", "metric")),
        (FileType.TRIAL_SUMMARY, "treatments", PivotMode.DIRECT, ("trt_number",)),
    ])
    def test_registered_types(self, file_type, table, mode, natural_key):
        config = COLUMN_MAPS[file_type]

        assert config.target_table == table
        assert config.pivot_mode == mode
        assert config.natural_key_fields == natural_key
        assert config.file_type == file_type

    def test_natural_keys_resolve_to_produced_fields(self):
        """Every natural key field is a field the transform emits."""
        for config in COLUMN_MAPS.values():
            produced = {col.field for col in config.mapped_columns}
            if config.is_pivot:
                produced.add("metric")
            assert set(config.natural_key_fields) <= produced, config.file_type

    def test_aliases_are_lower_case(self):
        """Aliases are compared against normalized headers."""
        for config in COLUMN_MAPS.values():
            for col in config.identity_columns + config.value_columns:
                for alias in col.aliases:
                    assert alias == normalize_header(alias)


class TestGetColumnMap:
    """Tests for get_column_map()"""

    def test_accepts_enum(self):
        assert get_column_map(FileType.PLOT_DATA).target_table == "plot_data"

    def test_accepts_string_value(self):
        assert get_column_map("soilChemistry").target_table == "soil_chemistry"

    def test_unknown_string_raises(self):
        with pytest.raises(UnknownFileTypeError) as exc_info:
            get_column_map("weatherData")

        assert exc_info.value.code == "UNKNOWN_FILE_TYPE"
        assert exc_info.value.status_code == 422

    def test_non_data_type_raises(self):
        with pytest.raises(UnknownFileTypeError):
            get_column_map(FileType.PHOTO)


class TestAliasesAndTargets:
    """Tests for get_known_aliases() and get_target_fields()"""

    def test_known_aliases_cover_all_groups(self):
        aliases = get_known_aliases(get_column_map(FileType.SOIL_CHEMISTRY))

        assert "sampleno" in aliases
        assert "barcode" in aliases
        assert "latitude" in aliases
        assert "trial id" in aliases

    def test_direct_targets_have_skip_but_not_metric(self):
        fields = get_target_fields(get_column_map(FileType.PLOT_DATA))

        assert "yield_t_ha" in fields
        assert "plot" in fields
        assert SKIP in fields
        assert METRIC not in fields

    def test_pivot_targets_include_metric(self):
        fields = get_target_fields(get_column_map(FileType.TISSUE_CHEMISTRY))

        assert "tissue_type" in fields
        assert METRIC in fields


class TestExtractTrialId:
    """Tests for extract_trial_id()"""

    def test_first_non_empty_value(self):
        config = get_column_map(FileType.SOIL_CHEMISTRY)
        rows = [
            {"Trial ID": "", "Sample No": "S1"},
            {"Trial ID": " T24-017 ", "Sample No": "S2"},
            {"Trial ID": "T24-099", "Sample No": "S3"},
        ]

        assert extract_trial_id(rows, config) == "T24-017"

    def test_header_match_is_case_insensitive(self):
        config = get_column_map(FileType.PLOT_DATA)

        assert extract_trial_id([{"TRIAL": "T1", "Plot": "101"}], config) == "T1"

    def test_no_trial_column(self):
        config = get_column_map(FileType.PLOT_DATA)

        assert extract_trial_id([{"Plot": "101"}], config) is None
