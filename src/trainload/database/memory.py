import asyncio
from datetime import date

from trainload.analysis.trend import LoadEntry, build_daily_loads
from trainload.database.repository import AnalyticsRepository, trend_key
from trainload.models.activity import Activity, DerivedFields, Sample
from trainload.models.athlete import ThresholdRecord
from trainload.models.sport import SportMode
from trainload.models.trend import DailyLoad, TrendPoint


class InMemoryRepository(AnalyticsRepository):
    """Process-local repository, used for embedding and tests."""

    def __init__(self):
        self.activities: dict[str, Activity] = {}
        self.series: dict[str, list[Sample]] = {}
        self.trends: dict[tuple[str, str], list[TrendPoint]] = {}
        self.thresholds: dict[str, list[ThresholdRecord]] = {}
        self.derived_writes = 0
        self._lock = asyncio.Lock()

    # Ingestion side
    def add_activity(self, activity: Activity, samples: list[Sample] | None = None) -> None:
        self.activities[activity.activity_id] = activity.model_copy(deep=True)
        if samples is not None:
            self.series[activity.activity_id] = list(samples)

    def replace_series(self, activity_id: str, samples: list[Sample]) -> None:
        """Swap the sample series and bump the activity's series revision."""
        activity = self.activities[activity_id]
        self.series[activity_id] = list(samples)
        self.activities[activity_id] = activity.model_copy(update={"series_revision": activity.series_revision + 1})

    def add_threshold(self, athlete_id: str, record: ThresholdRecord) -> None:
        self.thresholds.setdefault(athlete_id, []).append(record)

    # AnalyticsRepository
    async def get_activity(self, activity_id: str) -> Activity | None:
        activity = self.activities.get(activity_id)
        return activity.model_copy(deep=True) if activity else None

    async def list_activities(self, athlete_id: str, sport: SportMode | None = None) -> list[Activity]:
        activities = [
            a.model_copy(deep=True) for a in self.activities.values()
            if a.athlete_id == athlete_id and (sport is None or a.sport_mode == sport)
        ]
        return sorted(activities, key=lambda a: (a.recorded_at, a.activity_id))

    async def get_series(self, activity_id: str) -> list[Sample] | None:
        samples = self.series.get(activity_id)
        return list(samples) if samples is not None else None

    async def put_derived_fields(self, activity_id: str, fields: DerivedFields) -> bool:
        async with self._lock:
            activity = self.activities.get(activity_id)
            if activity is None:
                return False
            self.activities[activity_id] = activity.model_copy(update={"derived": fields.model_copy(deep=True)})
            self.derived_writes += 1
            return True

    async def get_daily_loads(
        self,
        athlete_id: str,
        start: date,
        end: date,
        sport: SportMode | None = None
    ) -> list[DailyLoad]:
        entries = [
            LoadEntry(
                date=a.activity_date,
                sport=a.sport_mode,
                tss=a.derived.tss if a.derived else None,
            )
            for a in await self.list_activities(athlete_id, sport)
        ]
        loads = build_daily_loads(entries, start, end, sport=sport)
        return [load for load in loads if load.activity_count > 0]

    async def put_trend(self, athlete_id: str, points: list[TrendPoint], sport: SportMode | None = None) -> bool:
        self.trends[(athlete_id, trend_key(sport))] = [p.model_copy() for p in points]
        return True

    async def get_trend(self, athlete_id: str, sport: SportMode | None = None) -> list[TrendPoint]:
        return [p.model_copy() for p in self.trends.get((athlete_id, trend_key(sport)), [])]

    async def get_threshold_records(self, athlete_id: str, sport: SportMode | None = None) -> list[ThresholdRecord]:
        return [
            r for r in self.thresholds.get(athlete_id, [])
            if sport is None or r.sport == sport
        ]
