"""
Review resolver.

A staged upload with unmapped columns is shown on the review screen with
sample values per column; the user maps each column to a field (or skips
it) and the stored rows are transformed and loaded again. The same path
retries an upload whose load failed: submit it with no overrides.
"""

from typing import Optional
import structlog

from config import settings
from models.column_map import SKIP
from models.upload import PipelineResult, PipelineStatus, RawUpload, ReviewData
from parsers.column_maps import get_column_map, get_target_fields, normalize_header
from services.loader_service import LoaderService, get_loader_service
from services.staging_service import StagingService, get_staging_service
from services.transform_service import transform, validate_overrides
from exceptions import LoadError

logger = structlog.get_logger(__name__)

NO_RECORDS_DETAIL = "No valid records after re-mapping"


class ReviewService:
    """
    Review and reprocess staged uploads.
    """

    def __init__(
        self,
        staging: Optional[StagingService] = None,
        loader: Optional[LoaderService] = None,
    ):
        self.staging = staging or get_staging_service()
        self.loader = loader or get_loader_service()

    def get_review(self, raw_upload_id: str) -> ReviewData:
        """
        Build the review screen payload for a staged upload.

        Raises:
            RawUploadNotFoundError: If the upload does not exist
        """
        upload = self.staging.get_by_id(raw_upload_id)
        config = get_column_map(upload.file_type)

        return ReviewData(
            raw_upload_id=upload.id,
            trial_id=upload.trial_id,
            filename=upload.filename,
            file_type=upload.file_type,
            status=upload.status,
            headers=upload.headers,
            unmapped_columns=upload.unmapped_columns,
            column_map=upload.column_map,
            sample_values=sample_values(upload, settings.review_sample_size),
            available_fields=get_target_fields(config),
            error_detail=upload.error_detail,
        )

    def reprocess(self, raw_upload_id: str, overrides: dict[str, str]) -> PipelineResult:
        """
        Apply overrides to a staged upload, transform its stored rows, load.

        Overrides are merged over the stored column map. Unmapped columns the
        overrides leave out are skipped. Loading is idempotent, so reprocessing
        an already loaded upload rewrites the same records.

        Returns:
            PipelineResult; status error when the mapping yields no records
            or the load fails (the upload is left in error status)

        Raises:
            RawUploadNotFoundError: If the upload does not exist
            ValidationError: If an override targets an unknown field
        """
        upload = self.staging.get_by_id(raw_upload_id)
        config = get_column_map(upload.file_type)
        validate_overrides(config, overrides)

        merged = merge_column_map(upload, overrides)
        self.staging.apply_overrides(raw_upload_id, merged)

        logger.info(
            "reprocessing_upload",
            raw_upload_id=raw_upload_id,
            previous_status=upload.status.value,
            overrides=len(overrides)
        )

        result = transform(
            upload.raw_rows,
            upload.headers,
            config,
            overrides=merged,
            extra_defaults=upload.extra_defaults,
        )
        if not result.rows:
            logger.warning("reprocess_no_records", raw_upload_id=raw_upload_id)
            self.staging.mark_error(raw_upload_id, NO_RECORDS_DETAIL)
            return _error_result(raw_upload_id, NO_RECORDS_DETAIL)

        try:
            loaded = self.loader.load(
                config.target_table,
                upload.trial_id,
                config.file_type,
                upload.filename,
                result.rows,
                raw_upload_id=raw_upload_id,
            )
        except LoadError as e:
            # The loader has already marked the upload and logged the failure
            return _error_result(raw_upload_id, e.message)

        return PipelineResult(
            status=PipelineStatus.SUCCESS,
            records=loaded.records_written,
            detail=loaded.detail,
            raw_upload_id=raw_upload_id,
        )


def _error_result(raw_upload_id: str, detail: str) -> PipelineResult:
    return PipelineResult(
        status=PipelineStatus.ERROR,
        detail=detail,
        raw_upload_id=raw_upload_id,
    )


def merge_column_map(upload: RawUpload, overrides: dict[str, str]) -> dict[str, str]:
    """
    Stored column map + overrides, keyed by the file's own header text.

    Unmapped columns without an override are marked __skip__.
    """
    by_normalized = {normalize_header(h): h for h in upload.headers}
    resolved = {
        by_normalized.get(normalize_header(source), source): target
        for source, target in overrides.items()
    }

    # Overrides go last so they win when resolved in order
    merged = {h: t for h, t in upload.column_map.items() if h not in resolved}
    for header in upload.unmapped_columns:
        if header not in resolved:
            merged.setdefault(header, SKIP)
    merged.update(resolved)
    return merged


def sample_values(upload: RawUpload, limit: int) -> dict[str, list[str]]:
    """Up to `limit` distinct non-empty values per header, in row order."""
    samples: dict[str, list[str]] = {h: [] for h in upload.headers}
    for row in upload.raw_rows:
        for header in upload.headers:
            values = samples[header]
            if len(values) >= limit:
                continue
            text = str(row.get(header) or "").strip()
            if text and text not in values:
                values.append(text)
    return samples


_review_service: Optional[ReviewService] = None


def get_review_service() -> ReviewService:
    """Get or create review service instance."""
    global _review_service
    if _review_service is None:
        _review_service = ReviewService()
    return _review_service
