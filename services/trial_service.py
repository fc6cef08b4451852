"""
Trial service.

Creates or updates trials from a parsed trial summary and loads its
treatment table. Data files can also create a bare trial when the trial id
is inferred from their own rows (paste uploads).
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.column_map import FileType
from models.trial import TrialMetadata, TrialSummary
from parsers.column_maps import get_column_map
from services.loader_service import LoaderService, LoadResult, get_loader_service
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


class TrialService:
    """
    Trial management service.
    """

    def __init__(self, db=None, loader: Optional[LoaderService] = None):
        self.db = db or get_supabase_client()
        self.loader = loader or get_loader_service()
        self.table = "trials"

    def save_summary(self, summary: TrialSummary, filename: str) -> LoadResult:
        """
        Upsert the trial and its treatments.

        Treatments upsert on (trial_id, trt_number), so re-uploading a summary
        updates treatments in place.

        Returns:
            LoadResult for the treatment load

        Raises:
            DatabaseError: If the trial upsert fails
            LoadError: If the treatment load fails
        """
        self.upsert_trial(summary.metadata)

        rows = [
            {**t.model_dump(), "sort_order": i + 1}
            for i, t in enumerate(summary.treatments)
        ]
        config = get_column_map(FileType.TRIAL_SUMMARY)
        result = self.loader.load(
            config.target_table,
            summary.metadata.id,
            FileType.TRIAL_SUMMARY,
            filename,
            rows,
        )

        logger.info(
            "trial_summary_saved",
            trial_id=summary.metadata.id,
            treatments=result.records_written
        )
        return result

    def upsert_trial(self, metadata: TrialMetadata) -> None:
        try:
            self.db.table(self.table).upsert(metadata.to_record(), on_conflict="id").execute()
        except Exception as e:
            logger.error("upsert_trial_failed", trial_id=metadata.id, error=str(e))
            raise DatabaseError("upsert", str(e), {"table": self.table})

        logger.info("trial_upserted", trial_id=metadata.id)

    def ensure_exists(self, trial_id: str) -> None:
        """Create a bare trial if none exists; existing trials are left untouched."""
        try:
            self.db.table(self.table).upsert(
                TrialMetadata(id=trial_id).to_record(),
                on_conflict="id",
                ignore_duplicates=True,
            ).execute()
        except Exception as e:
            logger.error("ensure_trial_failed", trial_id=trial_id, error=str(e))
            raise DatabaseError("upsert", str(e), {"table": self.table})


_trial_service: Optional[TrialService] = None


def get_trial_service() -> TrialService:
    """Get or create trial service instance."""
    global _trial_service
    if _trial_service is None:
        _trial_service = TrialService()
    return _trial_service
