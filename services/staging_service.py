"""
Staging store for raw uploads.

Every data file is written to raw_uploads before loading, with the parsed
rows exactly as read. A staged upload with unmapped columns waits in
'pending' until the review screen supplies overrides; the stored rows let
the transform run again without a re-upload. Staged records are never
deleted by the pipeline.
"""

from typing import Any, Optional
import structlog

from config import get_supabase_client
from models.column_map import FileType
from models.upload import RawUpload, RawUploadStatus
from exceptions import DatabaseError, RawUploadNotFoundError

logger = structlog.get_logger(__name__)


class StagingService:
    """Reads and writes the raw_uploads table."""

    def __init__(self, db=None):
        self.db = db or get_supabase_client()
        self.table = "raw_uploads"

    def stage(
        self,
        trial_id: str,
        filename: str,
        file_type: FileType,
        raw_rows: list[dict[str, Any]],
        headers: list[str],
        column_map: dict[str, str],
        unmapped_columns: list[str],
        is_pivot: bool = False,
        extra_defaults: Optional[dict[str, Any]] = None,
    ) -> str:
        """
        Stage a parsed file.

        Status is 'pending' when a direct-mode file has unmapped columns,
        otherwise 'mapped'.

        Returns:
            The new raw upload id

        Raises:
            DatabaseError: If the insert fails
        """
        needs_review = bool(unmapped_columns) and not is_pivot
        status = RawUploadStatus.PENDING if needs_review else RawUploadStatus.MAPPED

        try:
            result = self.db.table(self.table).insert({
                "trial_id": trial_id,
                "filename": filename,
                "file_type": FileType(file_type).value,
                "raw_rows": raw_rows,
                "headers": headers,
                "column_map": column_map,
                "unmapped_columns": unmapped_columns,
                "extra_defaults": extra_defaults or {},
                "status": status.value,
            }).execute()
        except Exception as e:
            logger.error("stage_upload_failed", filename=filename, error=str(e))
            raise DatabaseError("insert", str(e), {"table": self.table})

        raw_upload_id = result.data[0]["id"]
        logger.info(
            "upload_staged",
            raw_upload_id=raw_upload_id,
            trial_id=trial_id,
            filename=filename,
            status=status.value,
            rows=len(raw_rows),
            unmapped=len(unmapped_columns)
        )
        return raw_upload_id

    def get_by_id(self, raw_upload_id: str) -> RawUpload:
        """
        Fetch a staged upload.

        Raises:
            RawUploadNotFoundError: If no record has this id
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", raw_upload_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_raw_upload_failed", raw_upload_id=raw_upload_id, error=str(e))
            raise DatabaseError("select", str(e), {"table": self.table})

        if not result.data:
            raise RawUploadNotFoundError(raw_upload_id)
        return RawUpload.model_validate(result.data[0])

    def apply_overrides(self, raw_upload_id: str, column_map: dict[str, str]) -> None:
        """Store the merged column map, clear unmapped columns, mark 'mapped'."""
        self._update(raw_upload_id, {
            "column_map": column_map,
            "unmapped_columns": [],
            "status": RawUploadStatus.MAPPED.value,
            "error_detail": None,
        })
        logger.info("overrides_applied", raw_upload_id=raw_upload_id, columns=len(column_map))

    def mark_error(self, raw_upload_id: str, detail: str) -> None:
        self._update(raw_upload_id, {
            "status": RawUploadStatus.ERROR.value,
            "error_detail": detail,
        })
        logger.warning("raw_upload_marked_error", raw_upload_id=raw_upload_id, detail=detail)

    def mark_loaded(self, raw_upload_id: str, records: int) -> None:
        self._update(raw_upload_id, {
            "status": RawUploadStatus.LOADED.value,
            "records_loaded": records,
            "error_detail": None,
        })

    def _update(self, raw_upload_id: str, data: dict[str, Any]) -> None:
        try:
            self.db.table(self.table).update(data).eq("id", raw_upload_id).execute()
        except Exception as e:
            logger.error("update_raw_upload_failed", raw_upload_id=raw_upload_id, error=str(e))
            raise DatabaseError("update", str(e), {"table": self.table})


_staging_service: Optional[StagingService] = None


def get_staging_service() -> StagingService:
    """Get or create staging service instance."""
    global _staging_service
    if _staging_service is None:
        _staging_service = StagingService()
    return _staging_service
