"""
Upload audit log.

One entry per processed file in upload_log. Writes are best-effort: a failed
audit write is logged and never breaks the upload response.
"""
import structlog
from typing import Optional

from config import get_supabase_client, settings
from exceptions import LoggingError

logger = structlog.get_logger(__name__)


class UploadLogService:
    def __init__(self, db=None):
        self.db = db or get_supabase_client()
        self.table = "upload_log"

    def record(
        self,
        trial_id: Optional[str],
        filename: str,
        file_type: str,
        status: str,
        detail: Optional[str] = None,
        records_imported: int = 0,
    ) -> None:
        """Record the outcome of one file. Never raises."""
        try:
            self._write(trial_id, filename, file_type, status, detail, records_imported)
        except LoggingError as log_err:
            logger.warning(
                "failed_to_record_upload_log",
                filename=filename,
                status=status,
                log_error=log_err.message,
            )

    def _write(
        self,
        trial_id: Optional[str],
        filename: str,
        file_type: str,
        status: str,
        detail: Optional[str],
        records_imported: int,
    ) -> None:
        max_chars = settings.upload_log_detail_max_chars
        truncated = detail[:max_chars] if detail else None
        try:
            self.db.table(self.table).insert({
                "trial_id": trial_id,
                "filename": filename or "unknown",
                "file_type": file_type,
                "status": status,
                "detail": truncated,
                "records_imported": records_imported,
            }).execute()
        except Exception as e:
            raise LoggingError(f"Upload log write failed: {e}", {"filename": filename})

        logger.info(
            "upload_logged",
            trial_id=trial_id,
            filename=filename,
            status=status,
            records=records_imported,
        )


_service: Optional[UploadLogService] = None


def get_upload_log_service() -> UploadLogService:
    global _service
    if _service is None:
        _service = UploadLogService()
    return _service
