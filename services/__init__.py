"""
Business logic services.

Each service handles one step of the ingestion pipeline.
"""

from services.transform_service import (
    TransformResult,
    resolve_headers,
    transform,
    validate_overrides,
)
from services.staging_service import StagingService, get_staging_service
from services.upload_log_service import UploadLogService, get_upload_log_service
from services.loader_service import LoaderService, LoadResult, get_loader_service
from services.trial_service import TrialService, get_trial_service
from services.review_service import ReviewService, get_review_service
from services.pipeline_service import PipelineService, get_pipeline_service

__all__ = [
    "TransformResult",
    "resolve_headers",
    "transform",
    "validate_overrides",
    "StagingService",
    "get_staging_service",
    "UploadLogService",
    "get_upload_log_service",
    "LoaderService",
    "LoadResult",
    "get_loader_service",
    "TrialService",
    "get_trial_service",
    "ReviewService",
    "get_review_service",
    "PipelineService",
    "get_pipeline_service",
]
