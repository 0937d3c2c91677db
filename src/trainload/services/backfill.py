import asyncio
import logging

from trainload.config import EngineConfig
from trainload.database.repository import AnalyticsRepository
from trainload.models.activity import Activity
from trainload.models.backfill import ActivityOutcome, BackfillReport, OutcomeStatus
from trainload.services.metrics import ActivityMetricsService, ThresholdContext
from trainload.services.trend import TrendService

logger = logging.getLogger(__name__)

# Statuses of a later pass that replace the outcome of an earlier one
_OVERRIDING = (OutcomeStatus.COMPUTED, OutcomeStatus.FAILED)


class BackfillCoordinator:
    """
    Brings every activity of an athlete up to date, then refreshes the trends.

    Each activity is an independent unit: a failing unit is reported and the
    rest continue. Units whose cached fields are current are skipped, so a
    second run over unchanged data writes nothing.
    """

    def __init__(
        self,
        repo: AnalyticsRepository,
        config: EngineConfig,
        metrics: ActivityMetricsService | None = None,
        trends: TrendService | None = None
    ):
        self.repo = repo
        self.config = config
        self.trends = trends or TrendService(repo, config)
        self.metrics = metrics or ActivityMetricsService(repo, config, self.trends)
        self._cancelled = False

    def cancel(self) -> None:
        """Stop starting new units; units already running finish and are kept in the trends."""
        logger.info("Backfill cancellation requested")
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def _process(
        self,
        activity: Activity,
        context: ThresholdContext,
        force: bool,
        semaphore: asyncio.Semaphore
    ) -> ActivityOutcome:
        async with semaphore:
            if self._cancelled:
                return ActivityOutcome(activity_id=activity.activity_id, status=OutcomeStatus.CANCELLED)
            try:
                derived, computed = await self.metrics.ensure_metrics(
                    activity, context, force=force, update_trend=False
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Backfill of activity {activity.activity_id} failed: {str(e)}", exc_info=True)
                return ActivityOutcome(
                    activity_id=activity.activity_id,
                    status=OutcomeStatus.FAILED,
                    error=str(e)
                )
            return ActivityOutcome(
                activity_id=activity.activity_id,
                status=OutcomeStatus.COMPUTED if computed else OutcomeStatus.SKIPPED,
                missing_inputs=derived.missing_inputs,
            )

    async def _pass(self, athlete_id: str, force: bool) -> list[ActivityOutcome]:
        activities = await self.repo.list_activities(athlete_id)
        contexts: dict = {}
        for sport in sorted({a.sport_mode for a in activities}, key=lambda s: s.value):
            contexts[sport] = await self.metrics.threshold_context(
                athlete_id, sport, [a for a in activities if a.sport_mode == sport]
            )

        semaphore = asyncio.Semaphore(self.config.backfill_concurrency)
        return list(await asyncio.gather(*(
            self._process(activity, contexts[activity.sport_mode], force, semaphore)
            for activity in activities
        )))

    async def run(self, athlete_id: str, force: bool = False, refresh_trend: bool = True) -> BackfillReport:
        """
        Backfill derived fields for all activities of an athlete.

        Thresholds can fall back to the best 20 minute power of earlier
        activities, which is only known once their curves exist. A second pass
        therefore re-checks every activity after the first pass computed
        anything; it only recomputes activities whose resolved threshold moved.

        Args:
            athlete_id: Athlete identifier
            force: Recompute every activity even if its cache is current
            refresh_trend: Recompute the combined and per-sport trends afterwards

        Returns:
            BackfillReport with one outcome per activity
        """
        self._cancelled = False
        logger.info(f"Starting backfill for athlete {athlete_id} (force={force})")

        outcomes: dict[str, ActivityOutcome] = {}
        for outcome in await self._pass(athlete_id, force):
            outcomes[outcome.activity_id] = outcome

        if not self._cancelled and any(o.status == OutcomeStatus.COMPUTED for o in outcomes.values()):
            for outcome in await self._pass(athlete_id, force=False):
                if outcome.activity_id not in outcomes or outcome.status in _OVERRIDING:
                    outcomes[outcome.activity_id] = outcome

        report = BackfillReport(athlete_id=athlete_id, outcomes=list(outcomes.values()))

        if refresh_trend and (not self._cancelled or report.computed):
            await self.refresh_trends(athlete_id)
            report.trend_refreshed = True

        logger.info(
            f"Backfill for athlete {athlete_id} done: {report.computed} computed, {report.skipped} skipped, "
            f"{report.failed} failed, {report.cancelled} cancelled, "
            f"{report.missing_input_count} with missing inputs"
        )
        return report

    async def refresh_trends(self, athlete_id: str) -> None:
        """Recompute the combined trend and one trend per sport mode."""
        activities = await self.repo.list_activities(athlete_id)
        await self.trends.refresh(athlete_id)
        for sport in sorted({a.sport_mode for a in activities}, key=lambda s: s.value):
            await self.trends.refresh(athlete_id, sport)
