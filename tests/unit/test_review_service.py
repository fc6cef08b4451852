"""
Unit tests for ReviewService.

Run: pytest tests/unit/test_review_service.py -v
"""

import pytest

from models.column_map import FileType, SKIP
from models.upload import PipelineStatus, RawUploadStatus
from parsers.raw_content import SourceFormat
from exceptions import RawUploadNotFoundError, ValidationError
from tests.factories import RawUploadFactory, csv_bytes


PLOT_HEADERS = ["Plot", "Trt", "Rep", "Grain yield"]
PLOT_ROWS = [
    ["101", "1", "1", "4.2"],
    ["102", "2", "1", "4.9"],
    ["201", "1", "2", "4.4"],
]


def stage_plot_file(services) -> str:
    """Run a plot data file with one unknown column; returns the raw upload id."""
    result = services.pipeline.run_pipeline(
        "T1", FileType.PLOT_DATA, "plots.csv",
        csv_bytes(PLOT_HEADERS, PLOT_ROWS), SourceFormat.DELIMITED,
    )
    assert result.status == PipelineStatus.NEEDS_REVIEW
    return result.raw_upload_id


class TestReviewRoundTrip:
    """Stage -> review -> reprocess."""

    def test_reprocess_loads_every_source_row(self, services):
        raw_upload_id = stage_plot_file(services)

        result = services.review.reprocess(raw_upload_id, {"Grain yield": "yield_t_ha"})

        assert result.status == PipelineStatus.SUCCESS
        assert result.records == len(PLOT_ROWS)
        stored = services.db.rows("plot_data")
        assert sorted(r["yield_t_ha"] for r in stored) == [4.2, 4.4, 4.9]

    def test_reprocess_marks_upload_loaded(self, services):
        raw_upload_id = stage_plot_file(services)

        services.review.reprocess(raw_upload_id, {"Grain yield": "yield_t_ha"})

        upload = services.staging.get_by_id(raw_upload_id)
        assert upload.status == RawUploadStatus.LOADED
        assert upload.column_map["Grain yield"] == "yield_t_ha"
        assert upload.unmapped_columns == []

    def test_columns_left_out_of_overrides_are_skipped(self, services):
        raw_upload_id = stage_plot_file(services)

        result = services.review.reprocess(raw_upload_id, {})

        assert result.status == PipelineStatus.SUCCESS
        upload = services.staging.get_by_id(raw_upload_id)
        assert upload.column_map["Grain yield"] == SKIP

    def test_reprocess_twice_is_idempotent(self, services):
        raw_upload_id = stage_plot_file(services)

        services.review.reprocess(raw_upload_id, {"Grain yield": "yield_t_ha"})
        services.review.reprocess(raw_upload_id, {"Grain yield": "yield_t_ha"})

        assert len(services.db.rows("plot_data")) == len(PLOT_ROWS)

    def test_override_keys_case_insensitive(self, services):
        raw_upload_id = stage_plot_file(services)

        services.review.reprocess(raw_upload_id, {"GRAIN YIELD": "yield_t_ha"})

        assert all(r["yield_t_ha"] is not None for r in services.db.rows("plot_data"))

    def test_failed_load_can_be_retried(self, services):
        raw_upload_id = stage_plot_file(services)
        services.db.fail_on("plot_data", "upsert")

        failed = services.review.reprocess(raw_upload_id, {"Grain yield": "yield_t_ha"})

        assert failed.status == PipelineStatus.ERROR
        assert failed.raw_upload_id == raw_upload_id
        assert "simulated database failure" in failed.detail
        assert services.staging.get_by_id(raw_upload_id).status == RawUploadStatus.ERROR
        assert services.db.rows("plot_data") == []

        services.db.failures.clear()
        result = services.review.reprocess(raw_upload_id, {})

        assert result.status == PipelineStatus.SUCCESS
        assert all(r["yield_t_ha"] is not None for r in services.db.rows("plot_data"))


class TestReprocessErrors:

    def test_unknown_upload(self, services):
        with pytest.raises(RawUploadNotFoundError):
            services.review.reprocess("nope", {})

    def test_invalid_override_target(self, services):
        raw_upload_id = stage_plot_file(services)

        with pytest.raises(ValidationError):
            services.review.reprocess(raw_upload_id, {"Grain yield": "grain"})

        assert services.staging.get_by_id(raw_upload_id).status == RawUploadStatus.PENDING

    def test_mapping_everything_away_is_error_result(self, services):
        upload = RawUploadFactory.create(
            headers=["Notes"],
            raw_rows=[{"Notes": "wet"}],
            unmapped_columns=["Notes"],
            status="pending",
        )
        services.db.set_table_data("raw_uploads", [upload])

        result = services.review.reprocess(upload["id"], {"Notes": SKIP})

        assert result.status == PipelineStatus.ERROR
        assert result.detail == "No valid records after re-mapping"
        assert result.raw_upload_id == upload["id"]
        stored = services.staging.get_by_id(upload["id"])
        assert stored.status == RawUploadStatus.ERROR
        assert stored.error_detail == "No valid records after re-mapping"


class TestGetReview:

    def test_review_payload(self, services):
        raw_upload_id = stage_plot_file(services)

        review = services.review.get_review(raw_upload_id)

        assert review.status == RawUploadStatus.PENDING
        assert review.unmapped_columns == ["Grain yield"]
        assert review.sample_values["Trt"] == ["1", "2"]
        assert "yield_t_ha" in review.available_fields
        assert SKIP in review.available_fields

    def test_sample_values_limited(self, services):
        upload = RawUploadFactory.create(
            headers=["Plot"],
            raw_rows=[{"Plot": str(n)} for n in range(20)],
        )
        services.db.set_table_data("raw_uploads", [upload])

        review = services.review.get_review(upload["id"])

        assert review.sample_values["Plot"] == ["0", "1", "2", "3", "4"]
