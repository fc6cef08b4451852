"""
Upload routes.

Folder, single-file and pasted-CSV ingestion, the column mapping review
screen, and per-trial data coverage.
"""

from fastapi import APIRouter, Query, UploadFile, File, Form
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from config import settings
from models.column_map import FileType
from models.upload import (
    BatchResult,
    CoverageResponse,
    FileResult,
    PasteUploadRequest,
    PipelineResult,
    ReviewData,
    ReviewSubmitRequest,
)
from services.loader_service import get_loader_service
from services.pipeline_service import get_pipeline_service
from services.review_service import get_review_service
from exceptions import AppError, UnknownFileTypeError, ValidationError

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api/upload", tags=["Upload"])

AUTO_FILE_TYPE = "auto"


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


async def _read_upload(file: UploadFile) -> bytes:
    """Read an uploaded file, rejecting anything over the size limit."""
    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise AppError(
            code="FILE_TOO_LARGE",
            message=f"{file.filename} exceeds the {settings.max_upload_mb} MB upload limit",
            status_code=413,
            details={"filename": file.filename, "size": len(content)}
        )
    return content


# ===================
# FILE UPLOADS
# ===================

@router.post("/folder", response_model=BatchResult)
async def upload_folder(
    files: list[UploadFile] = File(..., description="All files from a trial folder"),
    trial_id: Optional[str] = Form(None, description="Existing trial, when no summary is included"),
):
    """
    Upload a trial folder.

    Trial summary files are processed first and set the trial for the other
    files. Each file gets its own result; failures do not stop the batch.
    """
    logger.info("folder_upload_started", files=len(files), trial_id=trial_id)

    try:
        contents = [(f.filename or "unnamed", await _read_upload(f)) for f in files]
        return get_pipeline_service().process_batch(contents, trial_id=trial_id)

    except Exception as e:
        return handle_error(e)


@router.post("/single", response_model=FileResult)
async def upload_single(
    file: UploadFile = File(...),
    trial_id: Optional[str] = Form(None),
    file_type: str = Form(AUTO_FILE_TYPE, description="File type, or 'auto' to classify by filename"),
):
    """
    Upload one file into a trial.

    Raises:
        422: Unknown file type
    """
    filename = file.filename or "unnamed"
    logger.info("single_upload_started", filename=filename, trial_id=trial_id, file_type=file_type)

    try:
        resolved = None
        if file_type != AUTO_FILE_TYPE:
            try:
                resolved = FileType(file_type)
            except ValueError:
                raise UnknownFileTypeError(file_type)

        content = await _read_upload(file)
        result, _ = get_pipeline_service().process_file(
            filename, content, trial_id, file_type=resolved
        )
        return result

    except Exception as e:
        return handle_error(e)


@router.post("/paste", response_model=PipelineResult)
async def upload_paste(data: PasteUploadRequest):
    """
    Ingest pasted CSV text.

    The trial is taken from the request or detected from a trial column.

    Raises:
        422: Unknown data type or no trial context
    """
    try:
        return get_pipeline_service().ingest_paste(
            data.data_type,
            data.csv_text,
            trial_id=data.trial_id,
            assay_type=data.assay_type,
        )

    except Exception as e:
        return handle_error(e)


# ===================
# REVIEW
# ===================

@router.get("/review/{raw_upload_id}", response_model=ReviewData)
async def get_review(raw_upload_id: str):
    """
    Get a staged upload for column mapping review.

    Raises:
        404: Raw upload not found
    """
    try:
        return get_review_service().get_review(raw_upload_id)

    except Exception as e:
        return handle_error(e)


@router.post("/review/{raw_upload_id}", response_model=PipelineResult)
async def submit_review(raw_upload_id: str, data: ReviewSubmitRequest):
    """
    Apply column overrides to a staged upload and load it.

    Submit an empty override map to retry a failed load. A mapping that
    yields no records or a failed load comes back as status "error".

    Raises:
        404: Raw upload not found
        422: Invalid override target
    """
    try:
        return get_review_service().reprocess(raw_upload_id, data.column_overrides)

    except Exception as e:
        return handle_error(e)


# ===================
# COVERAGE
# ===================

@router.get("/check-existing", response_model=CoverageResponse)
async def check_existing(
    trial_id: str = Query(..., min_length=1, description="Trial to check")
):
    """List the file types that already have data for a trial."""
    try:
        file_types = get_loader_service().get_coverage(trial_id)
        return CoverageResponse(trial_id=trial_id, file_types=file_types)

    except Exception as e:
        return handle_error(e)
