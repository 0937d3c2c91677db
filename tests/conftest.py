from datetime import datetime, timedelta, timezone

import pytest

from trainload.config import EngineConfig
from trainload.database.memory import InMemoryRepository
from trainload.models.activity import Activity, CacheTag, DerivedFields, Sample

BASE_TIME = datetime(2026, 3, 2, 7, 0, tzinfo=timezone.utc)


@pytest.fixture
def config() -> EngineConfig:
    """Engine configuration with a short bucket set."""
    return EngineConfig(
        buckets=(1, 5, 30, 60, 300, 600, 1200, 3600, 4500),
        bucket_label="test-buckets",
        backfill_concurrency=2,
    )


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def constant_samples():
    """Factory for 1 Hz samples with constant values."""

    def _samples(seconds: int, start: int = 0, **values) -> list[Sample]:
        return [Sample(offset_seconds=start + i, **values) for i in range(seconds)]

    return _samples


@pytest.fixture
def make_activity():
    """Factory for activities recorded `day` days after BASE_TIME."""

    def _activity(
        activity_id: str,
        day: int = 0,
        sport: str = "Ride",
        athlete_id: str = "athlete-1",
        hour: int = 0,
        duration_seconds: float | None = None,
        tss: float | None = None,
    ) -> Activity:
        derived = None
        if tss is not None:
            derived = DerivedFields(
                tss=tss,
                cache_tag=CacheTag(series_revision=1, bucket_version="preset", engine_version="0"),
            )
        return Activity(
            activity_id=activity_id,
            athlete_id=athlete_id,
            name=f"Activity {activity_id}",
            sport=sport,
            recorded_at=BASE_TIME + timedelta(days=day, hours=hour),
            duration_seconds=duration_seconds,
            derived=derived,
        )

    return _activity
