from abc import ABC, abstractmethod
from datetime import date

from trainload.models.activity import Activity, DerivedFields, Sample
from trainload.models.athlete import ThresholdRecord
from trainload.models.sport import SportMode
from trainload.models.trend import DailyLoad, TrendPoint


class AnalyticsRepository(ABC):
    """
    Persisted state the engine reads and writes.

    The engine owns no storage: activities and sample series are written by the
    ingestion side, derived fields and trend series are written back here.
    """

    @abstractmethod
    async def get_activity(self, activity_id: str) -> Activity | None:
        """Get an activity with its cached derived fields."""

    @abstractmethod
    async def list_activities(self, athlete_id: str, sport: SportMode | None = None) -> list[Activity]:
        """All activities of an athlete ordered by recording time, optionally one sport mode."""

    @abstractmethod
    async def get_series(self, activity_id: str) -> list[Sample] | None:
        """Sample series of an activity, None if it has none."""

    @abstractmethod
    async def put_derived_fields(self, activity_id: str, fields: DerivedFields) -> bool:
        """Write derived fields onto an activity."""

    @abstractmethod
    async def get_daily_loads(
        self,
        athlete_id: str,
        start: date,
        end: date,
        sport: SportMode | None = None
    ) -> list[DailyLoad]:
        """
        Daily TSS sums for the dates in [start, end] that have activities.

        Dates without activities are omitted; callers gap-fill.
        """

    @abstractmethod
    async def put_trend(self, athlete_id: str, points: list[TrendPoint], sport: SportMode | None = None) -> bool:
        """Replace the stored trend series of an athlete (combined if sport is None)."""

    @abstractmethod
    async def get_trend(self, athlete_id: str, sport: SportMode | None = None) -> list[TrendPoint]:
        """Stored trend series ordered by date, empty if none."""

    @abstractmethod
    async def get_threshold_records(self, athlete_id: str, sport: SportMode | None = None) -> list[ThresholdRecord]:
        """Dated threshold records of an athlete."""


def trend_key(sport: SportMode | None) -> str:
    """Storage key of a trend series."""
    return sport.value if sport else "all"
