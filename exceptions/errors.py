"""
Custom exception classes for the application.

Every pipeline failure carries a human-readable message: the upload UI shows
it verbatim so the user can fix a column name or re-upload.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "PARSE_ERROR")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=f"{resource} not found: {identifier}",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# PARSE ERRORS
# ===================

class ParseError(ValidationError):
    """File unreadable or yields zero data rows."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        code: str = "PARSE_ERROR"
    ):
        super().__init__(
            code=code,
            message=message,
            details=details
        )


class DuplicateHeaderError(ParseError):
    """Two columns share the same header text."""

    def __init__(self, duplicates: list[str]):
        super().__init__(
            code="DUPLICATE_HEADERS",
            message=(
                f"Duplicate column header(s): {', '.join(duplicates)}. "
                "Rename or remove the repeated columns and upload again"
            ),
            details={"duplicates": duplicates}
        )


class UnknownFileTypeError(ValidationError):
    """No column map is registered for this file type."""

    def __init__(self, file_type: str):
        super().__init__(
            code="UNKNOWN_FILE_TYPE",
            message=f"Unknown file type: {file_type}",
            details={"file_type": file_type}
        )


# ===================
# PIPELINE ERRORS
# ===================

class MappingError(ValidationError):
    """Transform produced zero canonical rows from a non-empty file."""

    def __init__(
        self,
        message: str = "No valid records after transformation (check column mapping)",
        details: Optional[dict] = None
    ):
        super().__init__(
            code="MAPPING_ERROR",
            message=message,
            details=details
        )


class ContextError(ValidationError):
    """Data file arrived before any trial identity was established."""

    def __init__(self, filename: str, message: Optional[str] = None):
        super().__init__(
            code="MISSING_TRIAL_CONTEXT",
            message=message or (
                "No trial context: include a trial summary file in the upload "
                "or choose an existing trial"
            ),
            details={"filename": filename}
        )


class LoadError(AppError):
    """Atomic upsert into the destination table failed."""

    def __init__(
        self,
        table_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="LOAD_ERROR",
            message=message,
            status_code=500,
            details={"table": table_name, **(details or {})}
        )


class LoggingError(AppError):
    """Best-effort audit write failed. Never surfaced to callers."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="UPLOAD_LOG_ERROR",
            message=message,
            status_code=500,
            details=details
        )


# ===================
# STAGING ERRORS
# ===================

class RawUploadNotFoundError(NotFoundError):
    """Staged upload not found."""

    def __init__(self, raw_upload_id: str):
        super().__init__(
            resource="Raw upload",
            identifier=raw_upload_id,
            code="RAW_UPLOAD_NOT_FOUND"
        )
