"""
Atomic loader.

Writes canonical rows into their destination table and flags the trial's
coverage for the file type in one database call (the load_and_track
function, see supabase/migrations). The upsert targets the table's
natural-key constraint, declared NULLS NOT DISTINCT, so reloading the same
file updates rows in place even when a key field such as date is empty.

Rows that share a natural key within one batch are collapsed first (last
write wins), since Postgres rejects an ON CONFLICT statement that touches
the same row twice.
"""

from dataclasses import dataclass
from typing import Any, Hashable, Optional
import structlog

from config import get_supabase_client
from models.column_map import ColumnMapConfig, FileType
from parsers.column_maps import get_column_map
from services.staging_service import StagingService, get_staging_service
from services.upload_log_service import UploadLogService, get_upload_log_service
from exceptions import AppError, LoadError

logger = structlog.get_logger(__name__)

COVERAGE_TABLE = "trial_data_files"
LOAD_FUNCTION = "load_and_track"


@dataclass(frozen=True)
class LoadResult:
    status: str
    records_written: int
    detail: str


class LoaderService:
    """
    Loads canonical rows and tracks per-trial data coverage.
    """

    def __init__(
        self,
        db=None,
        staging: Optional[StagingService] = None,
        upload_log: Optional[UploadLogService] = None,
    ):
        self.db = db or get_supabase_client()
        self.staging = staging or get_staging_service()
        self.upload_log = upload_log or get_upload_log_service()

    def load(
        self,
        table_name: str,
        trial_id: str,
        file_type: FileType,
        filename: str,
        rows: list[dict[str, Any]],
        raw_upload_id: Optional[str] = None,
    ) -> LoadResult:
        """
        Upsert rows into table_name for one trial.

        Records and the coverage flag are written in one transaction. Marking
        the staged upload loaded happens afterwards and is best-effort: the
        records are already committed at that point.

        Args:
            table_name: Destination table; must match the registry for file_type
            trial_id: Owning trial, added to every row
            file_type: Data type being loaded (coverage key)
            filename: Source filename, for the audit log
            rows: Canonical rows from the transform engine
            raw_upload_id: Staged upload to mark loaded / error

        Returns:
            LoadResult with the number of distinct records written

        Raises:
            LoadError: If the upsert or coverage update fails
        """
        config = get_column_map(file_type)
        if config.target_table != table_name:
            raise LoadError(
                table_name,
                f"Table {table_name} does not match {config.file_type.value} "
                f"(expected {config.target_table})"
            )

        records = collapse_duplicates(rows, trial_id, config)
        conflict_columns = ["trial_id", *config.natural_key_fields]

        logger.info(
            "loading_rows",
            table=table_name,
            trial_id=trial_id,
            rows=len(rows),
            distinct=len(records),
            conflict_columns=conflict_columns
        )

        try:
            self.db.rpc(
                LOAD_FUNCTION,
                {
                    "p_table_name": table_name,
                    "p_trial_id": trial_id,
                    "p_file_type": config.file_type.value,
                    "p_rows": records,
                    "p_conflict_columns": conflict_columns,
                },
            ).execute()
        except Exception as e:
            detail = str(e)
            logger.error(
                "load_failed",
                table=table_name,
                trial_id=trial_id,
                filename=filename,
                error=detail
            )
            self._record_failure(trial_id, config.file_type, filename, raw_upload_id, detail)
            raise LoadError(
                table_name,
                f"Failed to load {filename} into {table_name}: {detail}",
                {"raw_upload_id": raw_upload_id}
            )

        if raw_upload_id:
            self._mark_loaded(raw_upload_id, len(records))

        detail = f"Upserted {len(records)} records into {table_name}"
        logger.info("rows_loaded", table=table_name, trial_id=trial_id, records=len(records))
        self.upload_log.record(
            trial_id, filename, config.file_type.value, "success", detail, len(records)
        )
        return LoadResult(status="success", records_written=len(records), detail=detail)

    def get_coverage(self, trial_id: str) -> list[str]:
        """File types that have loaded data for a trial."""
        try:
            result = (
                self.db.table(COVERAGE_TABLE)
                .select("file_type, has_data")
                .eq("trial_id", trial_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_coverage_failed", trial_id=trial_id, error=str(e))
            raise LoadError(COVERAGE_TABLE, f"Failed to read coverage: {e}")

        return sorted(row["file_type"] for row in result.data if row.get("has_data"))

    def _mark_loaded(self, raw_upload_id: str, records: int) -> None:
        try:
            self.staging.mark_loaded(raw_upload_id, records)
        except AppError as e:
            logger.warning(
                "mark_loaded_failed",
                raw_upload_id=raw_upload_id,
                error=e.message
            )

    def _record_failure(
        self,
        trial_id: str,
        file_type: FileType,
        filename: str,
        raw_upload_id: Optional[str],
        detail: str,
    ) -> None:
        if raw_upload_id:
            try:
                self.staging.mark_error(raw_upload_id, detail)
            except AppError as e:
                logger.warning(
                    "mark_error_failed",
                    raw_upload_id=raw_upload_id,
                    error=e.message
                )
        self.upload_log.record(trial_id, filename, file_type.value, "error", detail)


def collapse_duplicates(
    rows: list[dict[str, Any]],
    trial_id: str,
    config: ColumnMapConfig,
) -> list[dict[str, Any]]:
    """
    Collapse rows sharing (trial_id, *natural key) and add trial_id.

    The last row for a key wins and takes the position of the first. Null
    key values compare equal, matching the NULLS NOT DISTINCT constraint.
    """
    collapsed: dict[Hashable, dict[str, Any]] = {}
    for row in rows:
        record = {**row, "trial_id": trial_id}
        key = (trial_id,) + tuple(record.get(f) for f in config.natural_key_fields)
        collapsed[key] = record
    return list(collapsed.values())


_loader_service: Optional[LoaderService] = None


def get_loader_service() -> LoaderService:
    """Get or create loader service instance."""
    global _loader_service
    if _loader_service is None:
        _loader_service = LoaderService()
    return _loader_service
