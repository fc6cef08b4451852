"""
Trial summary parser.

The "START HERE / Trial Summary" workbook has a key/value block at the top
(Trial, Grower, Crop, Planting, ...) followed by a treatment table whose
header row starts with "Treatment". The trial id found here establishes the
trial context for every other file in the batch.
"""

from datetime import date
from typing import Optional, Union
from pydantic import ValidationError as ModelValidationError
import structlog

from models.trial import TrialMetadata, Treatment, TrialSummary
from parsers.raw_content import SourceFormat, read_grid
from utils.value_utils import parse_date, parse_excel_serial_date, parse_number
from exceptions import ParseError

logger = structlog.get_logger(__name__)

# Row label (lower-cased, trailing colons removed) -> metadata key
METADATA_LABELS = {
    "trial": "id",
    "trial id": "id",
    "trial no": "id",
    "trial no.": "id",
    "trial number": "id",
    "trial code": "id",
    "name": "name",
    "grower": "grower",
    "location": "location",
    "gps": "gps",
    "crop": "crop",
    "trial type": "trial_type",
    "contact": "contact",
    "planting": "planting_date",
    "planting date": "planting_date",
    "harvest": "harvest_date",
    "harvest date": "harvest_date",
    "treatments": "num_treatments",
    "reps": "reps",
}

TREATMENT_HEADER = "treatment"
TREATMENT_FIELDS = ("application", "fertiliser", "product", "rate", "timing")


def parse_trial_summary(
    content: Union[bytes, str],
    source_format: SourceFormat = SourceFormat.SPREADSHEET,
) -> TrialSummary:
    """
    Parse a trial summary file.

    Args:
        content: Workbook bytes (or CSV export of the same sheet)
        source_format: SPREADSHEET or DELIMITED

    Returns:
        TrialSummary with metadata and treatments

    Raises:
        ParseError: If the file cannot be read or carries no trial id
    """
    grid = read_grid(content, source_format, prefer_sheet="treatment")

    metadata: dict[str, str] = {}
    treatment_start: Optional[int] = None

    for i, row in enumerate(grid):
        if not row or not any(row):
            continue

        label = row[0].strip().lower().rstrip(":").strip()
        value = row[1].strip() if len(row) > 1 else ""

        key = METADATA_LABELS.get(label)
        if key and key not in metadata:
            metadata[key] = value

        if label == TREATMENT_HEADER and sum(1 for cell in row if cell) >= 3:
            treatment_start = i + 1
            break

    if not metadata.get("id"):
        raise ParseError(
            "Trial summary has no trial ID (expected a 'Trial' or 'Trial ID' row)"
        )

    treatments = _parse_treatments(grid, treatment_start) if treatment_start else []

    try:
        metadata_model = TrialMetadata(
            id=metadata["id"],
            name=metadata.get("name", ""),
            grower=metadata.get("grower") or metadata.get("name", ""),
            location=metadata.get("location", ""),
            gps=metadata.get("gps", ""),
            crop=metadata.get("crop", ""),
            trial_type=metadata.get("trial_type", ""),
            contact=metadata.get("contact", ""),
            planting_date=_summary_date(metadata.get("planting_date")),
            harvest_date=_summary_date(metadata.get("harvest_date")),
            num_treatments=_whole_number(metadata.get("num_treatments")) or len(treatments),
            reps=_whole_number(metadata.get("reps")) or 1,
        )
    except ModelValidationError as e:
        raise ParseError(
            message=f"Invalid trial summary for {metadata['id']}: {_describe(e)}",
            details={"trial_id": metadata["id"]}
        )

    summary = TrialSummary(metadata=metadata_model, treatments=treatments)

    logger.info(
        "trial_summary_parsed",
        trial_id=summary.metadata.id,
        treatments=len(treatments)
    )
    return summary


def _parse_treatments(grid: list[list[str]], start: int) -> list[Treatment]:
    """Read treatment rows until the first blank or non-numeric first cell."""
    treatments: list[Treatment] = []
    for row in grid[start:]:
        if not row or not row[0]:
            break
        trt_number = _whole_number(row[0])
        if trt_number is None:
            break

        values = {
            name: (row[pos + 1].strip() if pos + 1 < len(row) else "")
            for pos, name in enumerate(TREATMENT_FIELDS)
        }
        treatments.append(Treatment(trt_number=trt_number, **values))
    return treatments


def _summary_date(value: Optional[str]) -> Optional[date]:
    """Dates may be real date cells, Excel serials, ISO or DD/MM/YYYY text."""
    if not value:
        return None
    return parse_excel_serial_date(value) or parse_date(value)


def _whole_number(value: Optional[str]) -> Optional[int]:
    number = parse_number(value)
    if number is None:
        return None
    return int(number)


def _describe(error: ModelValidationError) -> str:
    """'reps: Input should be greater than or equal to 0; ...'"""
    return "; ".join(
        f"{'.'.join(str(p) for p in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )
