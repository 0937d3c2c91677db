"""
Mean-maximal curve engine.

For every duration bucket W the engine finds the best average of a metric over
all windows of exactly W samples (1 Hz, so W seconds) fully contained in one
continuous run of the normalized series. "Best" is decided by an explicit
Objective: maximize for power, minimize for pace.

Two interchangeable evaluation paths exist:
- best_average_reference: prefix sums + a pure Python scan, O(N) per bucket
- best_average_fast: vectorized numpy window sums, used for long runs
They must agree within floating point tolerance.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Literal, Sequence

import numpy as np
import pandas as pd

from trainload.analysis.normalizer import NormalizedSeries
from trainload.errors import InvalidConfigurationError
from trainload.models.curve import CurvePoint, MeanMaximalCurve
from trainload.models.sport import Objective

logger = logging.getLogger(__name__)


Metric = Literal["power", "pace"]


# ---------------------------------------------------------------------------
# Single-bucket evaluation
# ---------------------------------------------------------------------------
def prefix_sums(values: Sequence[float] | np.ndarray) -> np.ndarray:
    """Prefix sum array with a leading zero."""
    arr = np.asarray(values, dtype=float)
    return np.concatenate(([0.0], np.cumsum(arr)))


def _scan_prefix(prefix: Sequence[float], window: int, objective: Objective) -> tuple[float, int] | None:
    n = len(prefix) - 1
    if window <= 0 or window > n:
        return None
    best_value: float | None = None
    best_index = 0
    for i in range(n - window + 1):
        avg = (prefix[i + window] - prefix[i]) / window
        if best_value is None or objective.better(avg, best_value):
            best_value = avg
            best_index = i
    return float(best_value), best_index


def best_average_reference(
    values: Sequence[float] | np.ndarray,
    window: int,
    objective: Objective,
    prefix: np.ndarray | None = None,
) -> tuple[float, int] | None:
    """
    Best average over all windows of exactly `window` samples, by plain scan.

    Returns:
        (best average, start index) or None if the window is longer than the series
    """
    if prefix is None:
        prefix = prefix_sums(values)
    return _scan_prefix(prefix.tolist(), window, objective)


def best_average_fast(
    values: Sequence[float] | np.ndarray,
    window: int,
    objective: Objective,
    prefix: np.ndarray | None = None,
) -> tuple[float, int] | None:
    """Vectorized equivalent of best_average_reference."""
    if prefix is None:
        prefix = prefix_sums(values)
    n = len(prefix) - 1
    if window <= 0 or window > n:
        return None
    averages = (prefix[window:] - prefix[:-window]) / window
    if objective is Objective.MAXIMIZE:
        index = int(np.argmax(averages))
    else:
        index = int(np.argmin(averages))
    return float(averages[index]), index


def pace_from_speed(speed: pd.Series | np.ndarray, floor_speed: float = 0.5):
    """Seconds per kilometre from m/s, with stationary samples held at the floor speed."""
    if isinstance(speed, pd.Series):
        return 1000.0 / speed.clip(lower=floor_speed)
    return 1000.0 / np.maximum(np.asarray(speed, dtype=float), floor_speed)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class BestWindow:
    value: float
    offset_seconds: int


class CurveEngine:
    """Evaluates a fixed bucket set against normalized series."""

    def __init__(
        self,
        buckets: Sequence[int],
        bucket_version: str,
        optimization_threshold: int = 2000,
        pace_floor_speed: float = 0.5,
    ):
        if not buckets:
            raise InvalidConfigurationError("bucket set must not be empty")
        if any(int(b) <= 0 for b in buckets):
            raise InvalidConfigurationError("duration buckets must be positive")
        self.buckets: tuple[int, ...] = tuple(sorted({int(b) for b in buckets}))
        self.bucket_version = bucket_version
        self.optimization_threshold = optimization_threshold
        self.pace_floor_speed = pace_floor_speed

    def best_windows(
        self,
        runs: Iterable[tuple[int, np.ndarray]],
        objective: Objective,
        force_path: Literal["reference", "fast"] | None = None,
    ) -> dict[int, BestWindow | None]:
        """
        Best window per bucket across all runs, before the monotone envelope.

        Runs are evaluated in order; on ties the earlier window wins.
        """
        best: dict[int, BestWindow | None] = {w: None for w in self.buckets}
        for start_offset, values in runs:
            n = len(values)
            if n == 0:
                continue
            prefix = prefix_sums(values)
            use_fast = force_path == "fast" or (force_path is None and n > self.optimization_threshold)
            evaluate = best_average_fast if use_fast else best_average_reference
            for window in self.buckets:
                if window > n:
                    break
                result = evaluate(values, window, objective, prefix=prefix)
                if result is None:
                    continue
                value, index = result
                current = best[window]
                if current is None or objective.better(value, current.value):
                    best[window] = BestWindow(value=value, offset_seconds=start_offset + index)
        return best

    def metric_runs(self, series: NormalizedSeries, metric: Metric) -> list[tuple[int, np.ndarray]]:
        if series.empty:
            return []
        if metric == "power":
            return series.runs("power")
        pace = pace_from_speed(series.column("speed_mps"), self.pace_floor_speed)
        return series.runs("speed_mps", values=pace)

    def activity_curve(
        self,
        series: NormalizedSeries,
        metric: Metric,
        objective: Objective,
        force_path: Literal["reference", "fast"] | None = None,
    ) -> MeanMaximalCurve:
        """
        Mean-maximal curve of one activity.

        Buckets without any fully contained window are null. The result is made
        monotone: a bucket's value is never worse than that of a longer bucket.
        """
        raw = self.best_windows(self.metric_runs(series, metric), objective, force_path=force_path)
        return MeanMaximalCurve(
            metric=metric,
            objective=objective,
            bucket_version=self.bucket_version,
            points=monotone_envelope(raw, objective),
        )


def monotone_envelope(raw: dict[int, BestWindow | None], objective: Objective) -> list[CurvePoint]:
    """
    Carry better values from longer buckets down to shorter ones.

    Each bucket W then holds the best average over windows of at least W
    seconds. When a longer bucket's value wins, the shorter bucket takes over
    both its value and its offset, so the offset marks the start of the longer
    window and not necessarily of an exact W-second window. Buckets with no
    window of their own stay None.
    """
    points: list[CurvePoint] = []
    carry: BestWindow | None = None
    for window in sorted(raw, reverse=True):
        current = raw[window]
        if current is not None and (carry is None or not objective.better(carry.value, current.value)):
            carry = current
        chosen = carry if current is not None else None
        points.append(CurvePoint(
            duration_seconds=window,
            value=chosen.value if chosen else None,
            offset_seconds=chosen.offset_seconds if chosen else None,
        ))
    points.reverse()
    return points


# ---------------------------------------------------------------------------
# Aggregate curves
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class CurveEntry:
    """Cached curve of one activity, as input to aggregation."""
    activity_id: str
    recorded_at: datetime
    curve: MeanMaximalCurve

    @property
    def activity_date(self) -> date:
        return self.recorded_at.date()


def aggregate_curves(
    entries: Iterable[CurveEntry],
    buckets: Sequence[int],
    metric: Metric,
    objective: Objective,
    bucket_version: str,
    as_of: date | None = None,
    window_days: int | None = None,
) -> MeanMaximalCurve:
    """
    Best-of-all curve over a window of activities.

    An activity is inside the window if its date is in (as_of - window_days, as_of].
    window_days None means all-time (still bounded above by as_of when given).
    On equal values the most recent activity wins.
    """
    if window_days is not None and window_days <= 0:
        raise InvalidConfigurationError("window_days must be positive")
    if window_days is not None and as_of is None:
        as_of = date.today()

    lower = as_of - timedelta(days=window_days) if (as_of and window_days) else None
    selected = [
        e for e in entries
        if (as_of is None or e.activity_date <= as_of) and (lower is None or e.activity_date > lower)
    ]
    # Oldest first, so a later equal value replaces an earlier one
    selected.sort(key=lambda e: (e.recorded_at, e.activity_id))

    best: dict[int, CurvePoint] = {}
    for entry in selected:
        if entry.curve.metric != metric:
            logger.debug(f"Skipping curve of {entry.activity_id}: metric {entry.curve.metric} != {metric}")
            continue
        for point in entry.curve.points:
            if point.value is None:
                continue
            current = best.get(point.duration_seconds)
            if current is None or not objective.better(current.value, point.value):
                best[point.duration_seconds] = CurvePoint(
                    duration_seconds=point.duration_seconds,
                    value=point.value,
                    offset_seconds=point.offset_seconds,
                    activity_id=entry.activity_id,
                    activity_date=entry.activity_date,
                )

    return MeanMaximalCurve(
        metric=metric,
        objective=objective,
        bucket_version=bucket_version,
        points=[best.get(w, CurvePoint(duration_seconds=w)) for w in sorted({int(b) for b in buckets})],
    )
