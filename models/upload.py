"""
Upload pipeline models.

RawUpload is the staged record kept in the raw_uploads table: the parsed
rows exactly as read, the headers, the mapping applied and the columns that
still need review. The result models are what the upload UI consumes.
"""

from typing import Any, Optional
from enum import Enum
from pydantic import Field

from models.base import BaseSchema, TimestampMixin
from models.column_map import FileType


class RawUploadStatus(str, Enum):
    """Lifecycle of a staged upload."""
    PENDING = "pending"   # Unmapped columns, waiting for review
    MAPPED = "mapped"     # Fully resolved, eligible to load
    LOADED = "loaded"     # Loaded into the destination table
    ERROR = "error"       # Load attempted and failed


class PipelineStatus(str, Enum):
    """Outcome of processing one file."""
    SUCCESS = "success"
    NEEDS_REVIEW = "needs_review"
    ERROR = "error"


class RawUpload(BaseSchema, TimestampMixin):
    """Staged upload as stored in raw_uploads."""

    id: str
    trial_id: str
    filename: str
    file_type: FileType
    raw_rows: list[dict[str, Any]] = Field(default_factory=list)
    headers: list[str] = Field(default_factory=list)
    column_map: dict[str, str] = Field(
        default_factory=dict,
        description="Header -> canonical field (or __skip__/__metric__) applied"
    )
    unmapped_columns: list[str] = Field(default_factory=list)
    extra_defaults: dict[str, Any] = Field(
        default_factory=dict,
        description="Values applied to every row on (re)transform, e.g. assay_type"
    )
    status: RawUploadStatus = RawUploadStatus.MAPPED
    error_detail: Optional[str] = None
    records_loaded: Optional[int] = None


class PipelineResult(BaseSchema):
    """Result of running one data file through the pipeline."""

    status: PipelineStatus
    records: Optional[int] = None
    detail: Optional[str] = None
    raw_upload_id: Optional[str] = None
    unmapped_columns: list[str] = Field(default_factory=list)


class FileResult(BaseSchema):
    """Per-file entry in a batch upload response."""

    filename: str
    file_type: FileType
    status: PipelineStatus
    records: Optional[int] = None
    detail: Optional[str] = None
    raw_upload_id: Optional[str] = None
    unmapped_columns: list[str] = Field(default_factory=list)


class BatchResult(BaseSchema):
    """Batch upload response."""

    results: list[FileResult] = Field(default_factory=list)
    trial_id: Optional[str] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.status == PipelineStatus.SUCCESS)


class ReviewData(BaseSchema):
    """Everything the mapping review screen needs for one staged upload."""

    raw_upload_id: str
    trial_id: str
    filename: str
    file_type: FileType
    status: RawUploadStatus
    headers: list[str]
    unmapped_columns: list[str]
    column_map: dict[str, str]
    sample_values: dict[str, list[str]] = Field(
        description="Up to N distinct non-empty values per header"
    )
    available_fields: list[str] = Field(
        description="Valid override targets, including __skip__"
    )
    error_detail: Optional[str] = None


class ReviewSubmitRequest(BaseSchema):
    """Column overrides chosen on the review screen."""

    column_overrides: dict[str, str] = Field(
        default_factory=dict,
        description='Header -> field, e.g. {"my_yield_col": "yield_t_ha", "notes": "__skip__"}'
    )


class PasteUploadRequest(BaseSchema):
    """CSV text pasted directly into the upload screen."""

    data_type: FileType
    csv_text: str = Field(min_length=1)
    trial_id: Optional[str] = None
    assay_type: Optional[str] = None


class CoverageResponse(BaseSchema):
    """File types with loaded data for a trial."""

    trial_id: str
    file_types: list[str] = Field(default_factory=list)
