import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import AsyncIterator

from trainload.analysis.trend import compute_trend, extend_trend, fill_daily_loads, recompute_from
from trainload.config import EngineConfig
from trainload.database.repository import AnalyticsRepository, trend_key
from trainload.models.sport import SportMode
from trainload.models.trend import TrendPoint

logger = logging.getLogger(__name__)


class AthleteLocks:
    """One asyncio.Lock per athlete and event loop: a single writer per athlete trend."""

    def __init__(self):
        self._locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]] = (
            weakref.WeakKeyDictionary()
        )

    @asynccontextmanager
    async def hold(self, athlete_id: str) -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()
        locks = self._locks.setdefault(loop, {})
        lock = locks.setdefault(athlete_id, asyncio.Lock())
        async with lock:
            yield


# Global lock registry shared by every TrendService in the process
athlete_locks = AthleteLocks()


class TrendService:
    """Maintains the stored fitness/fatigue/form series of athletes."""

    def __init__(self, repo: AnalyticsRepository, config: EngineConfig, locks: AthleteLocks | None = None):
        self.repo = repo
        self.config = config
        self.locks = locks or athlete_locks

    async def _first_activity_date(self, athlete_id: str, sport: SportMode | None) -> date | None:
        activities = await self.repo.list_activities(athlete_id, sport)
        if not activities:
            return None
        return min(a.activity_date for a in activities)

    async def _loads(self, athlete_id: str, start: date, end: date, sport: SportMode | None):
        loads = await self.repo.get_daily_loads(athlete_id, start, end, sport)
        unscored = sum(load.unscored_count for load in loads)
        if unscored:
            logger.info(f"{unscored} unscored activities contribute no load to trend of athlete {athlete_id}")
        return fill_daily_loads(loads, start, end, sport=sport)

    async def _refresh(self, athlete_id: str, sport: SportMode | None, end: date | None) -> list[TrendPoint]:
        start = await self._first_activity_date(athlete_id, sport)
        if start is None:
            await self.repo.put_trend(athlete_id, [], sport)
            return []
        end = end or max(date.today(), start)
        loads = await self._loads(athlete_id, start, end, sport)
        points = compute_trend(loads, ctl_days=self.config.ctl_days, atl_days=self.config.atl_days)
        await self.repo.put_trend(athlete_id, points, sport)
        logger.info(f"Recomputed {trend_key(sport)} trend of athlete {athlete_id}: {start} to {end}")
        return points

    async def refresh(
        self,
        athlete_id: str,
        sport: SportMode | None = None,
        end: date | None = None
    ) -> list[TrendPoint]:
        """
        Recompute the whole trend from the first activity date to `end`.

        Args:
            athlete_id: Athlete identifier
            sport: Sport mode, or None for the combined trend
            end: Last day of the series (default today)

        Returns:
            The stored trend points
        """
        async with self.locks.hold(athlete_id):
            return await self._refresh(athlete_id, sport, end)

    async def update_from(
        self,
        athlete_id: str,
        changed: date,
        sport: SportMode | None = None,
        end: date | None = None
    ) -> list[TrendPoint]:
        """Recompute the stored trend from a changed date forward."""
        async with self.locks.hold(athlete_id):
            stored = await self.repo.get_trend(athlete_id, sport)
            if not stored or changed <= stored[0].date:
                return await self._refresh(athlete_id, sport, end)

            end = end or max(date.today(), stored[-1].date)
            changed = min(changed, stored[-1].date + timedelta(days=1))
            loads = await self._loads(athlete_id, changed, end, sport)
            points = recompute_from(
                stored, loads, changed, ctl_days=self.config.ctl_days, atl_days=self.config.atl_days
            )
            await self.repo.put_trend(athlete_id, points, sport)
            logger.debug(f"Updated {trend_key(sport)} trend of athlete {athlete_id} from {changed}")
            return points

    async def extend_to(
        self,
        athlete_id: str,
        end: date,
        sport: SportMode | None = None
    ) -> list[TrendPoint]:
        """Append days after the last stored point up to `end`."""
        async with self.locks.hold(athlete_id):
            stored = await self.repo.get_trend(athlete_id, sport)
            if not stored:
                return await self._refresh(athlete_id, sport, end)
            if end <= stored[-1].date:
                return stored

            loads = await self._loads(athlete_id, stored[-1].date + timedelta(days=1), end, sport)
            points = extend_trend(stored, loads, ctl_days=self.config.ctl_days, atl_days=self.config.atl_days)
            await self.repo.put_trend(athlete_id, points, sport)
            return points

    async def get_trend(
        self,
        athlete_id: str,
        sport: SportMode | None = None,
        start: date | None = None,
        end: date | None = None
    ) -> list[TrendPoint]:
        """Stored trend within [start, end], extended or computed on demand; end defaults to today."""
        stored = await self.repo.get_trend(athlete_id, sport)
        target = end or date.today()
        if not stored:
            stored = await self.refresh(athlete_id, sport, end)
        elif target > stored[-1].date:
            stored = await self.extend_to(athlete_id, target, sport)

        return [
            p for p in stored
            if (start is None or p.date >= start) and (end is None or p.date <= end)
        ]
