"""
Pydantic models and static config types.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
)
from models.column_map import (
    FileType,
    PivotMode,
    ValueType,
    ColumnAlias,
    ColumnMapConfig,
    SKIP,
    METRIC,
)
from models.upload import (
    RawUploadStatus,
    PipelineStatus,
    RawUpload,
    PipelineResult,
    FileResult,
    BatchResult,
    ReviewData,
    ReviewSubmitRequest,
    PasteUploadRequest,
    CoverageResponse,
)
from models.trial import (
    TrialMetadata,
    Treatment,
    TrialSummary,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",

    # Column maps
    "FileType",
    "PivotMode",
    "ValueType",
    "ColumnAlias",
    "ColumnMapConfig",
    "SKIP",
    "METRIC",

    # Uploads
    "RawUploadStatus",
    "PipelineStatus",
    "RawUpload",
    "PipelineResult",
    "FileResult",
    "BatchResult",
    "ReviewData",
    "ReviewSubmitRequest",
    "PasteUploadRequest",
    "CoverageResponse",

    # Trials
    "TrialMetadata",
    "Treatment",
    "TrialSummary",
]
