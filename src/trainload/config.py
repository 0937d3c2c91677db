import hashlib
import json
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from trainload.errors import InvalidConfigurationError
from trainload.models.sport import Objective, SportMode


DEFAULT_BUCKETS: tuple[int, ...] = (
    1, 2, 3, 5, 10, 15, 20, 30, 45,
    60, 90, 120, 180, 240, 300, 360, 420, 480, 600, 720, 900,
    1200, 1500, 1800, 2400, 2700, 3600, 4500, 5400, 7200, 9000,
    10800, 14400, 18000, 21600, 28800, 36000, 43200, 57600, 72000, 86400,
)

# Bumped whenever the numerical semantics of the engine change, so that cached
# fields computed by an older engine are considered stale.
ENGINE_VERSION = "2"


def _default_objectives() -> dict[SportMode, Objective]:
    return {
        SportMode.CYCLING: Objective.MAXIMIZE,
        SportMode.RUNNING: Objective.MINIMIZE,
        SportMode.SWIMMING: Objective.MINIMIZE,
    }


class EngineConfig(BaseModel):
    """Numerical configuration of the analytics engine."""

    buckets: tuple[int, ...] = Field(default=DEFAULT_BUCKETS, description="Duration buckets in seconds")
    bucket_label: str | None = Field(None, description="Explicit bucket-set version label; derived from buckets if unset")
    gap_threshold_seconds: float = Field(default=10.0, description="A gap longer than this starts a new segment")
    ctl_days: float = Field(default=42.0, description="Chronic training load time constant")
    atl_days: float = Field(default=7.0, description="Acute training load time constant")
    optimization_threshold: int = Field(default=2000, description="Segment length above which the vectorized curve pass is used")
    rolling_window_days: int = Field(default=90, description="Window for rolling aggregate curves")
    np_window_seconds: int = Field(default=30, description="Rolling window for NP / NGS")
    pace_floor_speed_mps: float = Field(default=0.5, description="Speed floor used when converting speed to pace")
    objectives: dict[SportMode, Objective] = Field(default_factory=_default_objectives)
    backfill_concurrency: int = Field(default=4, description="Concurrent activities during backfill")

    @field_validator("buckets", mode="before")
    @classmethod
    def parse_buckets(cls, v):
        if isinstance(v, str):
            v = [part for part in v.replace(";", ",").split(",") if part.strip()]
        if v is None:
            return v
        return tuple(sorted({int(b) for b in v}))

    @model_validator(mode="after")
    def check_values(self) -> "EngineConfig":
        if not self.buckets:
            raise ValueError("bucket set must not be empty")
        if self.buckets[0] <= 0:
            raise ValueError("duration buckets must be positive")
        if self.ctl_days <= 0 or self.atl_days <= 0:
            raise ValueError("CTL/ATL time constants must be positive")
        if self.gap_threshold_seconds <= 0:
            raise ValueError("gap threshold must be positive")
        if self.np_window_seconds <= 0:
            raise ValueError("NP window must be positive")
        if self.pace_floor_speed_mps <= 0:
            raise ValueError("pace floor speed must be positive")
        if self.rolling_window_days <= 0:
            raise ValueError("rolling window must be positive")
        if self.optimization_threshold < 0:
            raise ValueError("optimization threshold must not be negative")
        if self.backfill_concurrency <= 0:
            raise ValueError("backfill concurrency must be positive")
        return self

    @property
    def bucket_version(self) -> str:
        """Version tag of the bucket set."""
        if self.bucket_label:
            return self.bucket_label
        digest = hashlib.sha256(json.dumps(list(self.buckets)).encode()).hexdigest()
        return digest[:12]

    def objective_for(self, sport: SportMode) -> Objective:
        return self.objectives.get(sport, Objective.MAXIMIZE)


def build_engine_config(**values) -> EngineConfig:
    """
    Construct an EngineConfig, converting validation failures into
    InvalidConfigurationError.
    """
    try:
        return EngineConfig(**values)
    except ValidationError as e:
        raise InvalidConfigurationError(str(e)) from e


def load_engine_config(path: str | Path) -> EngineConfig:
    """Load engine configuration from a YAML file (keys may use dashes)."""
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise InvalidConfigurationError(f"Engine configuration in {path} must be a mapping")
    return build_engine_config(**{str(k).replace("-", "_"): v for k, v in data.items()})


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "trainload"
    environment: str = "development"
    log_level: str = "INFO"
    engine_config_file: str | None = None

    # Engine overrides
    gap_threshold_seconds: float = 10.0
    ctl_days: float = 42.0
    atl_days: float = 7.0
    optimization_threshold: int = 2000
    rolling_window_days: int = 90
    backfill_concurrency: int = 4

    model_config = SettingsConfigDict(
        env_prefix="TRAINLOAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def engine_config(self) -> EngineConfig:
        """Engine configuration: YAML file if configured, environment overrides otherwise."""
        if self.engine_config_file:
            return load_engine_config(self.engine_config_file)
        return build_engine_config(
            gap_threshold_seconds=self.gap_threshold_seconds,
            ctl_days=self.ctl_days,
            atl_days=self.atl_days,
            optimization_threshold=self.optimization_threshold,
            rolling_window_days=self.rolling_window_days,
            backfill_concurrency=self.backfill_concurrency,
        )


settings = Settings()
