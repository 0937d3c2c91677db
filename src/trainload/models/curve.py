"""
Mean-maximal curve models.
"""
from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, computed_field

from trainload.models.sport import Objective


def duration_label(seconds: int) -> str:
    """Compact label for a duration bucket, e.g. 5s, 1m, 1m30s, 1h30m, 24h."""
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return "".join(parts)


class CurvePoint(BaseModel):
    """Best average for one duration bucket."""
    duration_seconds: int
    value: float | None = None
    offset_seconds: int | None = Field(None, description="Start offset of the best window within its activity")
    activity_id: str | None = Field(None, description="Activity the value comes from (aggregate curves)")
    activity_date: date | None = None

    @computed_field
    @property
    def label(self) -> str:
        return duration_label(self.duration_seconds)


class MeanMaximalCurve(BaseModel):
    """Mean-maximal curve for one activity or one aggregate window."""
    metric: Literal["power", "pace"]
    objective: Objective
    bucket_version: str
    points: list[CurvePoint] = Field(default_factory=list)

    def value_at(self, duration_seconds: int) -> float | None:
        """Value for a bucket, None if absent or not part of the bucket set."""
        for point in self.points:
            if point.duration_seconds == duration_seconds:
                return point.value
        return None

    @property
    def is_empty(self) -> bool:
        return all(point.value is None for point in self.points)


class CriticalPowerFit(BaseModel):
    """Two-parameter critical power model P(t) = CP + W'/t fitted to best efforts."""
    protocol: str
    cp_watts: float
    w_prime_joules: float
    r_squared: float | None = Field(None, description="None when every effort has the same power")
    efforts_used: list[CurvePoint] = Field(default_factory=list)
    efforts_rejected: list[CurvePoint] = Field(default_factory=list)
