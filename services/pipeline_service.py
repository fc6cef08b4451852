"""
Upload pipeline orchestrator.

Runs each data file through parse -> transform -> stage -> load, pausing at
'needs_review' when a direct-mode file has columns nothing could match.

Batches (folder uploads) process trial summary files first: the summary
establishes which trial every following data file belongs to. Each file's
outcome is independent; one failing file never stops its siblings.
"""

from typing import Any, Optional, Union
import structlog

from config import settings
from models.column_map import FileType
from models.upload import BatchResult, FileResult, PipelineResult, PipelineStatus
from parsers.classify import classify_file
from parsers.column_maps import extract_trial_id, get_column_map
from parsers.raw_content import SourceFormat, detect_source_format, parse_raw_content
from parsers.trial_summary import parse_trial_summary
from services.loader_service import LoaderService, get_loader_service
from services.staging_service import StagingService, get_staging_service
from services.trial_service import TrialService, get_trial_service
from services.transform_service import transform, validate_overrides
from services.upload_log_service import UploadLogService, get_upload_log_service
from exceptions import AppError, ContextError, LoadError, MappingError

logger = structlog.get_logger(__name__)

PASTE_FILENAME = "paste-import"


class PipelineService:
    """
    Orchestrates single-file, batch and paste ingestion.
    """

    def __init__(
        self,
        staging: Optional[StagingService] = None,
        loader: Optional[LoaderService] = None,
        upload_log: Optional[UploadLogService] = None,
        trial_service: Optional[TrialService] = None,
    ):
        self.staging = staging or get_staging_service()
        self.loader = loader or get_loader_service()
        self.upload_log = upload_log or get_upload_log_service()
        self.trial_service = trial_service or get_trial_service()

    # ===================
    # SINGLE DATA FILE
    # ===================

    def run_pipeline(
        self,
        trial_id: str,
        file_type: Union[FileType, str],
        filename: str,
        content: Union[bytes, str],
        source_format: SourceFormat,
        overrides: Optional[dict[str, str]] = None,
        extra_defaults: Optional[dict[str, Any]] = None,
    ) -> PipelineResult:
        """
        Run one data file through the pipeline.

        Args:
            trial_id: Owning trial
            file_type: Data type (must have a column map)
            filename: Source filename
            content: File bytes or CSV text
            source_format: DELIMITED or SPREADSHEET
            overrides: Column overrides known up front; skips the review pause
            extra_defaults: Values applied to every row

        Returns:
            PipelineResult with status success, needs_review or error
        """
        raw_upload_id: Optional[str] = None
        try:
            config = get_column_map(file_type)
            if overrides:
                validate_overrides(config, overrides)

            raw = parse_raw_content(content, source_format)
            result = transform(raw.rows, raw.headers, config, overrides, extra_defaults)

            needs_review = (
                bool(result.unmapped_columns) and not config.is_pivot and not overrides
            )
            if not result.rows and not needs_review:
                raise MappingError(details={"filename": filename})

            raw_upload_id = self.staging.stage(
                trial_id,
                filename,
                config.file_type,
                raw.rows,
                raw.headers,
                result.applied_map,
                result.unmapped_columns,
                is_pivot=config.is_pivot,
                extra_defaults=extra_defaults,
            )

            if needs_review:
                detail = f"{len(result.unmapped_columns)} column(s) could not be auto-matched"
                logger.info(
                    "upload_needs_review",
                    filename=filename,
                    raw_upload_id=raw_upload_id,
                    unmapped=result.unmapped_columns
                )
                self.upload_log.record(
                    trial_id, filename, config.file_type.value, "needs_review", detail
                )
                return PipelineResult(
                    status=PipelineStatus.NEEDS_REVIEW,
                    detail=detail,
                    raw_upload_id=raw_upload_id,
                    unmapped_columns=result.unmapped_columns,
                )

            loaded = self.loader.load(
                config.target_table,
                trial_id,
                config.file_type,
                filename,
                result.rows,
                raw_upload_id=raw_upload_id,
            )

        except LoadError as e:
            # The loader has already marked the upload and logged the failure
            return PipelineResult(
                status=PipelineStatus.ERROR,
                detail=e.message,
                raw_upload_id=raw_upload_id,
            )
        except AppError as e:
            logger.warning("pipeline_failed", filename=filename, code=e.code, error=e.message)
            self.upload_log.record(trial_id, filename, _value(file_type), "error", e.message)
            return PipelineResult(
                status=PipelineStatus.ERROR,
                detail=e.message,
                raw_upload_id=raw_upload_id,
            )
        except Exception as e:
            detail = _unexpected(e)
            logger.error("pipeline_crashed", filename=filename, error=str(e), type=type(e).__name__)
            self.upload_log.record(trial_id, filename, _value(file_type), "error", detail)
            return PipelineResult(
                status=PipelineStatus.ERROR,
                detail=detail,
                raw_upload_id=raw_upload_id,
            )

        return PipelineResult(
            status=PipelineStatus.SUCCESS,
            records=loaded.records_written,
            detail=loaded.detail,
            raw_upload_id=raw_upload_id,
        )

    # ===================
    # BATCH / FOLDER
    # ===================

    def process_batch(
        self,
        files: list[tuple[str, bytes]],
        trial_id: Optional[str] = None,
    ) -> BatchResult:
        """
        Process a folder of files.

        Trial summaries are processed first (stable order otherwise); each
        establishes the trial context for the files after it. Data files with
        no context fail with a missing trial context error.

        Args:
            files: (filename, content) pairs
            trial_id: Existing trial to use when the batch has no summary

        Returns:
            BatchResult with one FileResult per file, in processing order
        """
        ordered = sorted(
            files,
            key=lambda f: classify_file(f[0]) != FileType.TRIAL_SUMMARY
        )

        logger.info("processing_batch", files=len(files), trial_id=trial_id)

        results: list[FileResult] = []
        for filename, content in ordered:
            file_result, trial_id = self.process_file(filename, content, trial_id)
            results.append(file_result)

        batch = BatchResult(results=results, trial_id=trial_id)
        logger.info(
            "batch_processed",
            files=len(results),
            succeeded=batch.succeeded,
            trial_id=trial_id
        )
        return batch

    def process_file(
        self,
        filename: str,
        content: bytes,
        trial_id: Optional[str],
        file_type: Optional[FileType] = None,
    ) -> tuple[FileResult, Optional[str]]:
        """
        Process one uploaded file.

        Args:
            filename: Source filename
            content: File bytes
            trial_id: Current trial context (may be None)
            file_type: Explicit type; classified from the filename when None

        Returns:
            (FileResult, trial context after this file)
        """
        file_type = file_type or classify_file(filename)
        source_format = detect_source_format(filename)

        try:
            if file_type == FileType.TRIAL_SUMMARY:
                summary = parse_trial_summary(content, source_format)
                loaded = self.trial_service.save_summary(summary, filename)
                trial_id = summary.metadata.id
                return FileResult(
                    filename=filename,
                    file_type=file_type,
                    status=PipelineStatus.SUCCESS,
                    records=loaded.records_written,
                    detail=f"Trial {trial_id} created/updated",
                ), trial_id

            if file_type == FileType.PHOTO:
                return _skipped(filename, file_type, "Skipped (photo storage not configured)"), trial_id

            if file_type == FileType.UNKNOWN:
                return _skipped(filename, file_type, "Skipped: not a recognised data file"), trial_id

            if not trial_id:
                raise ContextError(filename)

        except LoadError as e:
            return _failed(filename, file_type, e.message), trial_id
        except AppError as e:
            logger.warning("file_failed", filename=filename, code=e.code, error=e.message)
            self.upload_log.record(trial_id, filename, file_type.value, "error", e.message)
            return _failed(filename, file_type, e.message), trial_id
        except Exception as e:
            detail = _unexpected(e)
            logger.error("file_crashed", filename=filename, error=str(e), type=type(e).__name__)
            self.upload_log.record(trial_id, filename, file_type.value, "error", detail)
            return _failed(filename, file_type, detail), trial_id

        result = self.run_pipeline(trial_id, file_type, filename, content, source_format)
        return FileResult(
            filename=filename,
            file_type=file_type,
            status=result.status,
            records=result.records,
            detail=result.detail,
            raw_upload_id=result.raw_upload_id,
            unmapped_columns=result.unmapped_columns,
        ), trial_id

    # ===================
    # PASTE
    # ===================

    def ingest_paste(
        self,
        data_type: FileType,
        csv_text: str,
        trial_id: Optional[str] = None,
        assay_type: Optional[str] = None,
    ) -> PipelineResult:
        """
        Ingest CSV text pasted into the upload screen.

        When no trial is chosen, the trial id is read from a trial column in
        the data and a bare trial is created for it if needed.

        Raises:
            UnknownFileTypeError: If data_type has no column map
            ParseError: If the text cannot be parsed while inferring the trial
            ContextError: If no trial id was given or found
        """
        config = get_column_map(data_type)

        if not trial_id:
            raw = parse_raw_content(csv_text, SourceFormat.DELIMITED)
            detected = extract_trial_id(raw.rows, config)
            if detected:
                logger.info("trial_id_detected", trial_id=detected, data_type=config.file_type.value)
                self.trial_service.ensure_exists(detected)
                trial_id = detected

        if not trial_id:
            raise ContextError(
                PASTE_FILENAME,
                "Missing trial ID: select a trial or include a trial column in the data"
            )

        extra_defaults: dict[str, Any] = {}
        if config.file_type == FileType.SAMPLE_METADATA:
            extra_defaults["assay_type"] = assay_type or settings.default_assay_type

        return self.run_pipeline(
            trial_id,
            config.file_type,
            PASTE_FILENAME,
            csv_text,
            SourceFormat.DELIMITED,
            extra_defaults=extra_defaults,
        )


def _skipped(filename: str, file_type: FileType, detail: str) -> FileResult:
    return FileResult(
        filename=filename,
        file_type=file_type,
        status=PipelineStatus.SUCCESS,
        detail=detail,
    )


def _failed(filename: str, file_type: FileType, detail: str) -> FileResult:
    return FileResult(
        filename=filename,
        file_type=file_type,
        status=PipelineStatus.ERROR,
        detail=detail,
    )


def _unexpected(error: Exception) -> str:
    return f"Unexpected error: {type(error).__name__}: {error}"


def _value(file_type: Union[FileType, str]) -> str:
    return file_type.value if isinstance(file_type, FileType) else file_type


_pipeline_service: Optional[PipelineService] = None


def get_pipeline_service() -> PipelineService:
    """Get or create pipeline service instance."""
    global _pipeline_service
    if _pipeline_service is None:
        _pipeline_service = PipelineService()
    return _pipeline_service
