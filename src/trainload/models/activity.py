import hashlib
import json
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, computed_field, field_validator

from trainload.models.curve import MeanMaximalCurve
from trainload.models.sport import SportMode, normalize_sport_mode


class Sample(BaseModel):
    """Single recorded sample, offset in seconds from the activity start."""
    offset_seconds: float
    power: float | None = None
    heart_rate: float | None = None
    cadence: float | None = None
    speed_mps: float | None = None
    altitude_m: float | None = None
    temperature_c: float | None = None


class CacheTag(BaseModel):
    """Inputs a cached DerivedFields value was computed from."""
    series_revision: int
    bucket_version: str
    threshold: float | None = None
    engine_version: str

    @computed_field
    @property
    def fingerprint(self) -> str:
        """
        SHA-256 of the tagged inputs.

        Sorted-key JSON gives the same hash for the same inputs, so a changed
        threshold, series revision or bucket set yields a different fingerprint.
        """
        relevant_data = {
            "series_revision": self.series_revision,
            "bucket_version": self.bucket_version,
            "threshold": self.threshold,
            "engine_version": self.engine_version,
        }
        json_str = json.dumps(relevant_data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()


class DerivedFields(BaseModel):
    """Engine outputs cached on an activity. None means absent, never zero."""
    avg_power: float | None = None
    max_power: float | None = None
    normalized_power: float | None = None
    normalized_graded_speed: float | None = Field(None, description="Pace-sport analogue of NP (m/s)")
    intensity_factor: float | None = None
    tss: float | None = None
    variability_index: float | None = None
    distance_m: float | None = None
    avg_speed_mps: float | None = None
    avg_pace_s_per_km: float | None = None
    avg_heart_rate: float | None = None
    max_heart_rate: float | None = None
    elevation_gain_m: float | None = None
    mean_maximal_curve: MeanMaximalCurve | None = None
    threshold: float | None = None
    threshold_source: str | None = None
    missing_inputs: list[str] = Field(default_factory=list)
    cache_tag: CacheTag

    def is_current(self, tag: CacheTag) -> bool:
        return self.cache_tag.fingerprint == tag.fingerprint


class Activity(BaseModel):
    """Deduplicated activity with its cached derived fields."""
    activity_id: str = Field(..., description="Activity identifier")
    athlete_id: str = Field(..., description="Athlete who owns this activity")
    name: str | None = None
    sport: str = Field(..., description="Sport label as delivered by the source")
    recorded_at: datetime
    duration_seconds: float | None = Field(None, description="Elapsed duration used for TSS")
    series_revision: int = Field(default=1, description="Bumped whenever the sample series changes")
    derived: DerivedFields | None = None

    @field_validator("recorded_at", mode="before")
    @classmethod
    def parse_recorded_at(cls, v):
        if isinstance(v, str) and v.endswith("Z"):
            return datetime.fromisoformat(v.replace("Z", "+00:00"))
        return v

    @property
    def sport_mode(self) -> SportMode:
        return normalize_sport_mode(self.sport)

    @property
    def activity_date(self) -> date:
        return self.recorded_at.date()


def samples_from_track_points(points: list[dict[str, Any]]) -> list[Sample]:
    """
    Convert pre-decoded track points into Samples.

    Points carry either an ``offset``/``offset_seconds`` or a ``timestamp``
    (datetime or ISO string); offsets are taken relative to the first timestamp.
    Field names follow the common decoder spellings (``power``/``watts``,
    ``heart_rate``/``heartrate``/``hr``, ``speed``/``enhanced_speed``,
    ``altitude``/``enhanced_altitude``/``elevation``, ``temperature``/``temp``).
    Wrapped values of the form ``{"value": x}`` are unwrapped.
    """
    aliases = {
        "power": ("power", "watts"),
        "heart_rate": ("heart_rate", "heartrate", "hr"),
        "cadence": ("cadence",),
        "speed_mps": ("speed_mps", "enhanced_speed", "speed", "velocity_smooth"),
        "altitude_m": ("altitude_m", "enhanced_altitude", "altitude", "elevation"),
        "temperature_c": ("temperature_c", "temperature", "temp"),
    }

    def _unwrap(value):
        if isinstance(value, dict) and "value" in value:
            return value["value"]
        return value

    def _first(point, names):
        for name in names:
            value = _unwrap(point.get(name))
            if value is not None:
                try:
                    return float(value)
                except (TypeError, ValueError):
                    return None
        return None

    start: datetime | None = None
    samples = []
    for point in points:
        offset = _unwrap(point.get("offset_seconds", point.get("offset")))
        if offset is None:
            ts = _unwrap(point.get("timestamp"))
            if ts is None:
                continue
            if isinstance(ts, str):
                ts = datetime.fromisoformat(ts.replace("Z", "+00:00"))
            if start is None:
                start = ts
            offset = (ts - start).total_seconds()
        samples.append(Sample(
            offset_seconds=float(offset),
            **{field: _first(point, names) for field, names in aliases.items()},
        ))
    return samples
