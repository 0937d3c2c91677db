import asyncio
import logging
from bisect import bisect_left
from dataclasses import dataclass, field
from datetime import date, datetime

from trainload.analysis.critical_power import DEFAULT_PROTOCOL, critical_power_from_curve
from trainload.analysis.curves import CurveEngine, CurveEntry, Metric, aggregate_curves
from trainload.analysis.normalizer import normalize_samples
from trainload.analysis.scoring import score_activity
from trainload.analysis.summary import summarize_series
from trainload.analysis.thresholds import resolve_threshold
from trainload.config import ENGINE_VERSION, EngineConfig
from trainload.database.repository import AnalyticsRepository
from trainload.errors import ActivityNotFoundError, MissingInputError
from trainload.models.activity import Activity, CacheTag, DerivedFields, Sample
from trainload.models.athlete import ResolvedThreshold, ThresholdRecord
from trainload.models.curve import CriticalPowerFit, MeanMaximalCurve
from trainload.models.sport import Objective, SportMode
from trainload.services.trend import TrendService

logger = logging.getLogger(__name__)

FALLBACK_DURATION_SECONDS = 1200


@dataclass
class ThresholdContext:
    """Everything needed to resolve thresholds for one athlete and sport."""
    sport: SportMode
    records: list[ThresholdRecord] = field(default_factory=list)
    # (recorded_at, best 20 minute power) of activities with a current curve, oldest first
    prior_bests: list[tuple[datetime, float]] = field(default_factory=list)

    def best_before(self, recorded_at: datetime) -> float | None:
        """Best 20 minute power of activities recorded strictly before the given time."""
        index = bisect_left(self.prior_bests, recorded_at, key=lambda item: item[0])
        if index == 0:
            return None
        return max(value for _, value in self.prior_bests[:index])

    def resolve(self, activity: Activity) -> ResolvedThreshold | None:
        return resolve_threshold(
            self.records,
            activity.sport_mode,
            activity.activity_date,
            best_20min_power=self.best_before(activity.recorded_at),
        )


class ActivityMetricsService:
    """
    Compute-on-read, cache-on-write access to per-activity derived fields.

    Cached fields are reused while their cache tag matches the current inputs
    (series revision, resolved threshold, bucket set, engine version).
    A computed TSS that differs from the cached one updates the stored trends
    from the activity date forward.
    """

    def __init__(self, repo: AnalyticsRepository, config: EngineConfig, trends: TrendService | None = None):
        self.repo = repo
        self.config = config
        self.trends = trends or TrendService(repo, config)
        self.engine = CurveEngine(
            buckets=config.buckets,
            bucket_version=config.bucket_version,
            optimization_threshold=config.optimization_threshold,
            pace_floor_speed=config.pace_floor_speed_mps,
        )

    def metric_for(self, sport: SportMode) -> tuple[Metric, Objective]:
        """Curve metric and objective of a sport, from configuration."""
        objective = self.config.objective_for(sport)
        metric: Metric = "power" if objective is Objective.MAXIMIZE else "pace"
        return metric, objective

    def cache_tag(self, activity: Activity, threshold: ResolvedThreshold | None) -> CacheTag:
        return CacheTag(
            series_revision=activity.series_revision,
            bucket_version=self.config.bucket_version,
            threshold=threshold.value if threshold else None,
            engine_version=ENGINE_VERSION,
        )

    def has_current_curve(self, activity: Activity) -> bool:
        derived = activity.derived
        return bool(
            derived
            and derived.mean_maximal_curve is not None
            and derived.cache_tag.series_revision == activity.series_revision
            and derived.cache_tag.bucket_version == self.config.bucket_version
            and derived.cache_tag.engine_version == ENGINE_VERSION
        )

    async def threshold_context(
        self,
        athlete_id: str,
        sport: SportMode,
        activities: list[Activity] | None = None
    ) -> ThresholdContext:
        """Load threshold records and prior 20 minute bests for one sport."""
        records = await self.repo.get_threshold_records(athlete_id, sport)
        context = ThresholdContext(sport=sport, records=records)

        metric, _ = self.metric_for(sport)
        if metric != "power":
            return context

        if activities is None:
            activities = await self.repo.list_activities(athlete_id, sport)
        for activity in activities:
            if activity.sport_mode != sport or not self.has_current_curve(activity):
                continue
            value = activity.derived.mean_maximal_curve.value_at(FALLBACK_DURATION_SECONDS)
            if value is not None:
                context.prior_bests.append((activity.recorded_at, value))
        context.prior_bests.sort(key=lambda item: item[0])
        return context

    def compute_derived_fields(
        self,
        activity: Activity,
        samples: list[Sample],
        threshold: ResolvedThreshold | None,
        tag: CacheTag
    ) -> DerivedFields:
        """Pure computation of every derived field of one activity."""
        series = normalize_samples(samples, gap_threshold=self.config.gap_threshold_seconds)
        metric, objective = self.metric_for(activity.sport_mode)

        curve = None if series.empty else self.engine.activity_curve(series, metric, objective)
        scores = score_activity(
            series,
            basis=metric,
            threshold=threshold.value if threshold else None,
            duration_seconds=activity.duration_seconds,
            window=self.config.np_window_seconds,
        )
        summary = summarize_series(series)

        return DerivedFields(
            avg_power=scores.avg_power,
            max_power=scores.max_power,
            normalized_power=scores.normalized_power,
            normalized_graded_speed=scores.normalized_graded_speed,
            intensity_factor=scores.intensity_factor,
            tss=scores.tss,
            variability_index=scores.variability_index,
            distance_m=summary.distance_m,
            avg_speed_mps=summary.avg_speed_mps,
            avg_pace_s_per_km=summary.avg_pace_s_per_km,
            avg_heart_rate=summary.avg_heart_rate,
            max_heart_rate=summary.max_heart_rate,
            elevation_gain_m=summary.elevation_gain_m,
            mean_maximal_curve=curve,
            threshold=threshold.value if threshold else None,
            threshold_source=threshold.source if threshold else None,
            missing_inputs=scores.missing_inputs,
            cache_tag=tag,
        )

    async def _load_samples(self, activity: Activity) -> list[Sample]:
        samples = await self.repo.get_series(activity.activity_id)
        if samples is None:
            raise MissingInputError("series", f"Activity {activity.activity_id} has no sample series")
        return samples

    async def ensure_metrics(
        self,
        activity: Activity,
        context: ThresholdContext | None = None,
        force: bool = False,
        update_trend: bool = True
    ) -> tuple[DerivedFields, bool]:
        """
        Return current derived fields, computing and caching them if missing or stale.

        Args:
            activity: Activity as read from the repository
            context: Threshold context for the activity's sport; loaded if None
            force: Recompute even if the cache is current
            update_trend: Update the stored trends when the TSS changed

        Returns:
            Tuple of (derived fields, True if they were computed now)
        """
        if context is None:
            context = await self.threshold_context(activity.athlete_id, activity.sport_mode)

        threshold = context.resolve(activity)
        tag = self.cache_tag(activity, threshold)

        if not force and activity.derived is not None and activity.derived.is_current(tag):
            logger.debug(f"Derived fields of activity {activity.activity_id} are current")
            return activity.derived, False

        try:
            samples = await self._load_samples(activity)
        except MissingInputError as e:
            logger.info(f"{e}; caching absent fields")
            samples = []

        derived = await asyncio.to_thread(self.compute_derived_fields, activity, samples, threshold, tag)
        if derived.missing_inputs:
            logger.info(f"Activity {activity.activity_id} missing inputs: {', '.join(derived.missing_inputs)}")

        await self.repo.put_derived_fields(activity.activity_id, derived)

        previous_tss = activity.derived.tss if activity.derived else None
        if update_trend and derived.tss != previous_tss:
            await self.update_trends(activity)
        return derived, True

    async def update_trends(self, activity: Activity) -> None:
        """Recompute the combined and the sport trend from the activity date forward."""
        logger.debug(f"TSS of activity {activity.activity_id} changed; updating trends from {activity.activity_date}")
        await self.trends.update_from(activity.athlete_id, activity.activity_date)
        await self.trends.update_from(activity.athlete_id, activity.activity_date, activity.sport_mode)

    async def get_metrics(self, activity_id: str, force: bool = False) -> DerivedFields:
        """Derived fields of one activity (compute-on-read)."""
        activity = await self.repo.get_activity(activity_id)
        if activity is None:
            raise ActivityNotFoundError(activity_id)
        derived, _ = await self.ensure_metrics(activity, force=force)
        return derived


class CurveService:
    """Aggregate mean-maximal curves over an athlete's cached activity curves."""

    def __init__(self, repo: AnalyticsRepository, config: EngineConfig, metrics: ActivityMetricsService | None = None):
        self.repo = repo
        self.config = config
        self.metrics = metrics or ActivityMetricsService(repo, config)

    async def aggregate(
        self,
        athlete_id: str,
        sport: SportMode,
        window_days: int | None = None,
        as_of: date | None = None,
    ) -> MeanMaximalCurve:
        """
        Best-of curve of an athlete over a rolling window (or all-time if window_days is None).

        Activities without a current curve are computed first.
        """
        metric, objective = self.metrics.metric_for(sport)
        activities = await self.repo.list_activities(athlete_id, sport)

        context: ThresholdContext | None = None
        entries = []
        for activity in activities:
            if self.metrics.has_current_curve(activity):
                curve = activity.derived.mean_maximal_curve
            else:
                if context is None:
                    context = await self.metrics.threshold_context(athlete_id, sport, activities)
                derived, _ = await self.metrics.ensure_metrics(activity, context)
                curve = derived.mean_maximal_curve
            if curve is not None:
                entries.append(CurveEntry(activity_id=activity.activity_id, recorded_at=activity.recorded_at, curve=curve))

        return aggregate_curves(
            entries,
            buckets=self.config.buckets,
            metric=metric,
            objective=objective,
            bucket_version=self.config.bucket_version,
            as_of=as_of,
            window_days=window_days,
        )

    async def critical_power(
        self,
        athlete_id: str,
        sport: SportMode = SportMode.CYCLING,
        window_days: int | None = None,
        as_of: date | None = None,
        protocol: str = DEFAULT_PROTOCOL,
    ) -> CriticalPowerFit | None:
        """
        CP and W' fitted to the aggregate power curve of an athlete.

        Returns:
            CriticalPowerFit, or None without enough valid efforts
        """
        curve = await self.aggregate(athlete_id, sport, window_days=window_days, as_of=as_of)
        fit = critical_power_from_curve(curve, protocol=protocol)
        if fit is not None:
            logger.info(
                f"CP of athlete {athlete_id} ({sport.value}, {protocol}): "
                f"{fit.cp_watts:.0f} W, W' {fit.w_prime_joules:.0f} J"
            )
        return fit
