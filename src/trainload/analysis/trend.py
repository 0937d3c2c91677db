"""
Fitness-fatigue trend model (Performance Management Chart).

Day-granularity exponentially weighted recurrence over a complete, gap-filled
sequence of daily loads:

    CTL[i] = CTL[i-1] + (TSS[i] - CTL[i-1]) / ctl_days
    ATL[i] = ATL[i-1] + (TSS[i] - ATL[i-1]) / atl_days
    TSB[i] = CTL[i-1] - ATL[i-1]

TSB is form going into the day, before that day's training. The recurrence is
strictly sequential; changing a day means recomputing every later day.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Sequence

from trainload.errors import InvalidConfigurationError, TrendSequenceError
from trainload.models.sport import SportMode
from trainload.models.trend import DailyLoad, TrendPoint


@dataclass(frozen=True)
class LoadEntry:
    """TSS of one activity on one date; tss None means the activity is unscored."""
    date: date
    sport: SportMode
    tss: float | None


def date_range(start: date, end: date) -> list[date]:
    """All dates from start to end inclusive."""
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def build_daily_loads(
    entries: Iterable[LoadEntry],
    start: date,
    end: date,
    sport: SportMode | None = None,
) -> list[DailyLoad]:
    """
    Aggregate activity loads into one DailyLoad per date from start to end.

    Combined-sport mode (sport None) sums TSS across sport modes per date;
    single-sport mode filters first. Days without activities are zero-TSS days.
    """
    by_date: dict[date, DailyLoad] = {
        day: DailyLoad(date=day, sport=sport) for day in date_range(start, end)
    }
    for entry in entries:
        if sport is not None and entry.sport != sport:
            continue
        load = by_date.get(entry.date)
        if load is None:
            continue
        load.activity_count += 1
        if entry.tss is None:
            load.unscored_count += 1
        else:
            load.tss += entry.tss
    return [by_date[day] for day in sorted(by_date)]


def fill_daily_loads(
    loads: Sequence[DailyLoad],
    start: date,
    end: date,
    sport: SportMode | None = None,
) -> list[DailyLoad]:
    """Gap-fill already aggregated daily loads with zero-TSS days."""
    by_date = {load.date: load for load in loads}
    return [by_date.get(day, DailyLoad(date=day, sport=sport)) for day in date_range(start, end)]


def _check_constants(ctl_days: float, atl_days: float) -> None:
    if ctl_days <= 0 or atl_days <= 0:
        raise InvalidConfigurationError("CTL/ATL time constants must be positive")


def compute_trend(
    loads: Sequence[DailyLoad],
    ctl_days: float = 42.0,
    atl_days: float = 7.0,
    seed: TrendPoint | None = None,
) -> list[TrendPoint]:
    """
    Run the recurrence over consecutive daily loads.

    Args:
        loads: DailyLoad per day, strictly consecutive dates
        ctl_days: Chronic load time constant
        atl_days: Acute load time constant
        seed: State of the day before loads[0]; zero state if None

    Returns:
        One TrendPoint per load
    """
    _check_constants(ctl_days, atl_days)

    previous_ctl = seed.ctl if seed else 0.0
    previous_atl = seed.atl if seed else 0.0
    previous_date = seed.date if seed else None

    points: list[TrendPoint] = []
    for load in loads:
        if previous_date is not None and load.date != previous_date + timedelta(days=1):
            raise TrendSequenceError(
                f"Daily loads must be consecutive: {previous_date} followed by {load.date}"
            )
        tss = load.tss or 0.0
        ctl = previous_ctl + (tss - previous_ctl) / ctl_days
        atl = previous_atl + (tss - previous_atl) / atl_days
        points.append(TrendPoint(
            date=load.date,
            tss=tss,
            ctl=ctl,
            atl=atl,
            tsb=previous_ctl - previous_atl,
        ))
        previous_ctl, previous_atl, previous_date = ctl, atl, load.date
    return points


def recompute_from(
    points: Sequence[TrendPoint],
    loads: Sequence[DailyLoad],
    changed: date,
    ctl_days: float = 42.0,
    atl_days: float = 7.0,
) -> list[TrendPoint]:
    """
    Recompute a stored trend from a changed date forward.

    Points before `changed` are kept and the last of them seeds the recurrence;
    `loads` must cover every day from `changed` to the end of the new trend.
    """
    kept = [p for p in points if p.date < changed]
    seed = kept[-1] if kept else None
    tail = [load for load in loads if load.date >= changed]
    if seed is not None and tail and tail[0].date != seed.date + timedelta(days=1):
        raise TrendSequenceError(f"Stored trend ends {seed.date}, loads resume {tail[0].date}")
    return kept + compute_trend(tail, ctl_days=ctl_days, atl_days=atl_days, seed=seed)


def extend_trend(
    points: Sequence[TrendPoint],
    loads: Sequence[DailyLoad],
    ctl_days: float = 42.0,
    atl_days: float = 7.0,
) -> list[TrendPoint]:
    """Append days after the last stored point."""
    if not points:
        return compute_trend(loads, ctl_days=ctl_days, atl_days=atl_days)
    last = points[-1]
    new_loads = [load for load in loads if load.date > last.date]
    return list(points) + compute_trend(new_loads, ctl_days=ctl_days, atl_days=atl_days, seed=last)
