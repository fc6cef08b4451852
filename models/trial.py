"""
Trial summary models.

A trial summary workbook establishes the trial identity for a batch and
carries the treatment definitions.
"""

from typing import Optional
from datetime import date
from pydantic import Field

from models.base import BaseSchema


class TrialMetadata(BaseSchema):
    """Key/value block at the top of a trial summary sheet."""

    id: str = Field(min_length=1, description="Trial code, e.g. 'T24-017'")
    name: str = ""
    grower: str = ""
    location: str = ""
    gps: str = ""
    crop: str = ""
    trial_type: str = ""
    contact: str = ""
    planting_date: Optional[date] = None
    harvest_date: Optional[date] = None
    num_treatments: int = Field(default=0, ge=0)
    reps: int = Field(default=1, ge=0)

    def to_record(self) -> dict:
        """Row for the trials table."""
        return {
            "id": self.id,
            "name": self.name or f"Trial {self.id}",
            "grower": self.grower,
            "location": self.location,
            "gps": self.gps,
            "crop": self.crop,
            "trial_type": self.trial_type,
            "contact": self.contact,
            "planting_date": self.planting_date.isoformat() if self.planting_date else None,
            "harvest_date": self.harvest_date.isoformat() if self.harvest_date else None,
            "num_treatments": self.num_treatments,
            "reps": self.reps,
        }


class Treatment(BaseSchema):
    """One row of the treatment table."""

    trt_number: int
    application: str = ""
    fertiliser: str = ""
    product: str = ""
    rate: str = ""
    timing: str = ""


class TrialSummary(BaseSchema):
    """Parsed trial summary workbook."""

    metadata: TrialMetadata
    treatments: list[Treatment] = Field(default_factory=list)
