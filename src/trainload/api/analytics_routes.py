import logging
from datetime import date
from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.asynchronous.database import AsyncDatabase

from trainload.config import EngineConfig, settings
from trainload.database.analytics_repository import MongoAnalyticsRepository
from trainload.database.mongodb import get_db
from trainload.database.repository import AnalyticsRepository
from trainload.analysis.critical_power import DEFAULT_PROTOCOL
from trainload.errors import ActivityNotFoundError, InvalidConfigurationError
from trainload.models.activity import DerivedFields
from trainload.models.backfill import BackfillReport
from trainload.models.curve import CriticalPowerFit, MeanMaximalCurve
from trainload.models.sport import normalize_sport_mode
from trainload.models.trend import TrendPoint
from trainload.services.backfill import BackfillCoordinator
from trainload.services.metrics import ActivityMetricsService, CurveService
from trainload.services.trend import TrendService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/athlete", tags=["analytics"])


@lru_cache
def get_engine_config() -> EngineConfig:
    """Dependency to get the engine configuration, built once per process."""
    return settings.engine_config()


def get_repository(db: Annotated[AsyncDatabase, Depends(get_db)]) -> AnalyticsRepository:
    """Dependency to get the analytics repository."""
    return MongoAnalyticsRepository(db)


def get_metrics_service(
    repo: Annotated[AnalyticsRepository, Depends(get_repository)],
    config: Annotated[EngineConfig, Depends(get_engine_config)]
) -> ActivityMetricsService:
    """Dependency to get the activity metrics service."""
    return ActivityMetricsService(repo, config)


def get_curve_service(
    repo: Annotated[AnalyticsRepository, Depends(get_repository)],
    config: Annotated[EngineConfig, Depends(get_engine_config)]
) -> CurveService:
    """Dependency to get the curve service."""
    return CurveService(repo, config)


def get_trend_service(
    repo: Annotated[AnalyticsRepository, Depends(get_repository)],
    config: Annotated[EngineConfig, Depends(get_engine_config)]
) -> TrendService:
    """Dependency to get the trend service."""
    return TrendService(repo, config)


@router.get("/{athlete_id}/activities/{activity_id}/metrics", response_model=DerivedFields)
async def get_activity_metrics(
    athlete_id: str,
    activity_id: str,
    repo: Annotated[AnalyticsRepository, Depends(get_repository)],
    metrics_service: Annotated[ActivityMetricsService, Depends(get_metrics_service)],
    refresh: bool = Query(False, description="Recompute even if the cached fields are current")
) -> DerivedFields:
    """
    Get the derived fields of one activity.

    Cached fields are returned while current; otherwise they are computed from
    the sample series and written back before returning.
    """
    activity = await repo.get_activity(activity_id)
    if activity is None or activity.athlete_id != athlete_id:
        raise HTTPException(status_code=404, detail=f"Activity {activity_id} not found")

    try:
        return await metrics_service.get_metrics(activity_id, force=refresh)
    except ActivityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{athlete_id}/curve", response_model=MeanMaximalCurve)
async def get_curve(
    athlete_id: str,
    curve_service: Annotated[CurveService, Depends(get_curve_service)],
    config: Annotated[EngineConfig, Depends(get_engine_config)],
    sport: str = Query("cycling", description="Sport label, normalized to a sport mode"),
    window_days: int | None = Query(None, ge=0, description="Rolling window in days; 0 means all-time"),
    as_of: date | None = Query(None, description="Last day of the window (YYYY-MM-DD), default today")
) -> MeanMaximalCurve:
    """
    Get the aggregate mean-maximal curve of an athlete.

    Expected URL: /api/v1/athlete/{athlete_id}/curve?sport=cycling&window_days=90
    """
    logger.info(f"GET /athlete/{athlete_id}/curve called with sport={sport}, window_days={window_days}")

    if window_days is None:
        window_days = config.rolling_window_days
    return await curve_service.aggregate(
        athlete_id,
        normalize_sport_mode(sport),
        window_days=window_days or None,
        as_of=as_of or date.today(),
    )


@router.get("/{athlete_id}/critical-power", response_model=CriticalPowerFit)
async def get_critical_power(
    athlete_id: str,
    curve_service: Annotated[CurveService, Depends(get_curve_service)],
    config: Annotated[EngineConfig, Depends(get_engine_config)],
    sport: str = Query("cycling", description="Sport label, normalized to a sport mode"),
    window_days: int | None = Query(None, ge=0, description="Rolling window in days; 0 means all-time"),
    as_of: date | None = Query(None, description="Last day of the window (YYYY-MM-DD), default today"),
    protocol: str = Query(DEFAULT_PROTOCOL, description="mean-maximal, 3min-12min, 5min-20min or 8min-30min")
) -> CriticalPowerFit:
    """Get critical power and W' fitted to the athlete's best efforts."""
    if window_days is None:
        window_days = config.rolling_window_days
    try:
        fit = await curve_service.critical_power(
            athlete_id,
            normalize_sport_mode(sport),
            window_days=window_days or None,
            as_of=as_of or date.today(),
            protocol=protocol,
        )
    except InvalidConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if fit is None:
        raise HTTPException(status_code=404, detail="Not enough valid efforts for a critical power fit")
    return fit


@router.get("/{athlete_id}/trend", response_model=list[TrendPoint])
async def get_trend(
    athlete_id: str,
    trend_service: Annotated[TrendService, Depends(get_trend_service)],
    sport: str | None = Query(None, description="Sport label; omit for the combined trend"),
    start: date | None = Query(None, description="First day (YYYY-MM-DD)"),
    end: date | None = Query(None, description="Last day (YYYY-MM-DD)")
) -> list[TrendPoint]:
    """Get the fitness (CTL), fatigue (ATL) and form (TSB) series of an athlete."""
    if start and end and end < start:
        raise HTTPException(status_code=400, detail="end must not be before start")

    sport_mode = normalize_sport_mode(sport) if sport else None
    return await trend_service.get_trend(athlete_id, sport_mode, start=start, end=end)


@router.post("/{athlete_id}/backfill", response_model=BackfillReport)
async def run_backfill(
    athlete_id: str,
    repo: Annotated[AnalyticsRepository, Depends(get_repository)],
    config: Annotated[EngineConfig, Depends(get_engine_config)],
    force: bool = Query(False, description="Recompute every activity")
) -> BackfillReport:
    """
    Recompute stale derived fields of all activities and refresh the trends.

    One activity failing does not abort the run; see the per-activity outcomes.
    """
    coordinator = BackfillCoordinator(repo, config)
    return await coordinator.run(athlete_id, force=force)
