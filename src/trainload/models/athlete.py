from datetime import date
from typing import Literal

from pydantic import BaseModel, Field

from trainload.models.sport import SportMode


ThresholdKind = Literal["lt2", "vt2", "cp_test", "cp_lab", "ftp"]


class ThresholdRecord(BaseModel):
    """
    Dated reference threshold for one sport.

    Power sports store watts, pace sports store seconds per kilometre.
    """
    sport: SportMode
    kind: ThresholdKind = Field(..., description="Where the value comes from")
    value: float
    effective_date: date = Field(..., description="Test or measurement date")


class ResolvedThreshold(BaseModel):
    """Threshold chosen for one activity date."""
    value: float
    source: str
