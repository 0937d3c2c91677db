import asyncio
from datetime import date, timedelta

import pytest

from trainload.analysis.trend import compute_trend
from trainload.models.sport import SportMode
from trainload.models.trend import DailyLoad
from trainload.services.trend import TrendService

FIRST_DAY = date(2026, 3, 2)


@pytest.fixture
def service(repo, config) -> TrendService:
    return TrendService(repo, config)


@pytest.fixture
def loaded_repo(repo, make_activity):
    repo.add_activity(make_activity("ride-1", day=0, tss=50))
    repo.add_activity(make_activity("run-1", day=0, sport="Run", hour=10, tss=70))
    repo.add_activity(make_activity("ride-2", day=3, tss=90))
    repo.add_activity(make_activity("ride-3", day=3, hour=5, sport="Ride"))
    return repo


async def test_refresh_builds_gap_filled_combined_trend(service, loaded_repo):
    end = FIRST_DAY + timedelta(days=6)
    points = await service.refresh("athlete-1", end=end)

    assert [p.date for p in points] == [FIRST_DAY + timedelta(days=i) for i in range(7)]
    assert [p.tss for p in points] == [120, 0, 0, 90, 0, 0, 0]
    expected = compute_trend(
        [DailyLoad(date=p.date, tss=p.tss) for p in points], ctl_days=42, atl_days=7
    )
    assert [p.ctl for p in points] == pytest.approx([p.ctl for p in expected])
    assert loaded_repo.trends[("athlete-1", "all")] == points


async def test_refresh_single_sport(service, loaded_repo):
    points = await service.refresh("athlete-1", SportMode.RUNNING, end=FIRST_DAY + timedelta(days=2))
    assert [p.tss for p in points] == [70, 0, 0]
    assert ("athlete-1", "running") in loaded_repo.trends


async def test_refresh_without_activities_stores_empty_trend(service, repo):
    assert await service.refresh("nobody") == []
    assert repo.trends[("nobody", "all")] == []


async def test_update_from_matches_full_refresh(service, loaded_repo, make_activity):
    end = FIRST_DAY + timedelta(days=10)
    await service.refresh("athlete-1", end=end)

    loaded_repo.add_activity(make_activity("ride-4", day=5, tss=150))
    updated = await service.update_from("athlete-1", FIRST_DAY + timedelta(days=5), end=end)
    full = await service.refresh("athlete-1", end=end)

    assert [p.tss for p in updated] == [p.tss for p in full]
    assert [p.ctl for p in updated] == pytest.approx([p.ctl for p in full])
    assert [p.tsb for p in updated] == pytest.approx([p.tsb for p in full])


async def test_update_before_first_day_recomputes_everything(service, loaded_repo, make_activity):
    end = FIRST_DAY + timedelta(days=4)
    await service.refresh("athlete-1", end=end)

    loaded_repo.add_activity(make_activity("early", day=-2, tss=40))
    points = await service.update_from("athlete-1", FIRST_DAY - timedelta(days=2), end=end)

    assert points[0].date == FIRST_DAY - timedelta(days=2)
    assert points[0].tss == 40


async def test_extend_to_appends_days(service, loaded_repo):
    await service.refresh("athlete-1", end=FIRST_DAY + timedelta(days=3))
    extended = await service.extend_to("athlete-1", FIRST_DAY + timedelta(days=8))
    full = await service.refresh("athlete-1", end=FIRST_DAY + timedelta(days=8))

    assert len(extended) == 9
    assert [p.ctl for p in extended] == pytest.approx([p.ctl for p in full])


async def test_get_trend_filters_range(service, loaded_repo):
    await service.refresh("athlete-1", end=FIRST_DAY + timedelta(days=6))
    points = await service.get_trend(
        "athlete-1", start=FIRST_DAY + timedelta(days=2), end=FIRST_DAY + timedelta(days=4)
    )
    assert [p.date for p in points] == [FIRST_DAY + timedelta(days=i) for i in (2, 3, 4)]


async def test_concurrent_refreshes_are_serialized(service, loaded_repo):
    end = FIRST_DAY + timedelta(days=6)
    first, second = await asyncio.gather(
        service.refresh("athlete-1", end=end),
        service.refresh("athlete-1", end=end),
    )
    assert first == second


async def test_get_trend_without_end_reaches_today(service, loaded_repo):
    await service.refresh("athlete-1", end=FIRST_DAY + timedelta(days=3))
    points = await service.get_trend("athlete-1")
    assert points[-1].date == max(date.today(), FIRST_DAY + timedelta(days=3))
