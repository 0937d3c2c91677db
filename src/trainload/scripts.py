"""CLI scripts for development and operations."""
import argparse
import asyncio
import logging
import sys

import uvicorn

from trainload.config import settings
from trainload.database.analytics_repository import MongoAnalyticsRepository
from trainload.database.mongodb import db_manager
from trainload.errors import TrainloadError
from trainload.services.backfill import BackfillCoordinator


def dev_server():
    """Run development server with auto-reload."""
    uvicorn.run(
        "trainload.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )


async def _run_backfill(athlete_id: str, force: bool, skip_trend: bool) -> int:
    config = settings.engine_config()
    await db_manager.connect()
    try:
        repo = MongoAnalyticsRepository(db_manager.db)
        await repo.ensure_indexes()
        coordinator = BackfillCoordinator(repo, config)
        try:
            report = await coordinator.run(athlete_id, force=force, refresh_trend=not skip_trend)
        except asyncio.CancelledError:
            coordinator.cancel()
            raise
    finally:
        await db_manager.disconnect()

    print(report.model_dump_json(indent=2))
    return 1 if report.failed else 0


def backfill():
    """Backfill derived fields and trends for one athlete."""
    parser = argparse.ArgumentParser(
        description="Recompute stale derived fields of an athlete's activities and refresh the trends"
    )
    parser.add_argument("athlete_id", help="Athlete identifier")
    parser.add_argument("--force", action="store_true", help="Recompute every activity, even if current")
    parser.add_argument("--skip-trend", action="store_true", help="Do not refresh the trend series")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default from settings)")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logging.getLogger("pymongo").setLevel(logging.INFO)

    try:
        exit_code = asyncio.run(_run_backfill(args.athlete_id, args.force, args.skip_trend))
    except KeyboardInterrupt:
        print("\nBackfill interrupted; completed activities are kept", file=sys.stderr)
        sys.exit(130)
    except TrainloadError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    sys.exit(exit_code)


if __name__ == "__main__":
    dev_server()
