from datetime import date, datetime, timezone

import numpy as np
import pytest

from trainload.analysis.curves import (
    BestWindow,
    CurveEngine,
    CurveEntry,
    aggregate_curves,
    best_average_fast,
    best_average_reference,
    monotone_envelope,
    pace_from_speed,
)
from trainload.analysis.normalizer import normalize_samples
from trainload.errors import InvalidConfigurationError
from trainload.models.curve import CurvePoint, MeanMaximalCurve
from trainload.models.sport import Objective

BUCKETS = (1, 5, 30, 60, 300, 600, 1200, 3600, 4500)


@pytest.fixture
def engine() -> CurveEngine:
    return CurveEngine(BUCKETS, bucket_version="test", optimization_threshold=2000)


def _values(curve: MeanMaximalCurve) -> list[float | None]:
    return [point.value for point in curve.points]


@pytest.mark.parametrize("objective", [Objective.MAXIMIZE, Objective.MINIMIZE])
@pytest.mark.parametrize("window", [1, 7, 30, 299, 1000])
def test_fast_path_matches_reference(objective, window):
    rng = np.random.default_rng(7)
    values = rng.normal(220, 60, size=2500).clip(min=0)

    reference = best_average_reference(values, window, objective)
    fast = best_average_fast(values, window, objective)

    assert fast[0] == pytest.approx(reference[0], rel=1e-9)
    assert fast[1] == reference[1]


def test_window_longer_than_series_has_no_result():
    values = [100.0] * 10
    assert best_average_reference(values, 11, Objective.MAXIMIZE) is None
    assert best_average_fast(values, 11, Objective.MAXIMIZE) is None


def test_ties_pick_the_earliest_window():
    values = [100.0] * 50
    assert best_average_reference(values, 10, Objective.MAXIMIZE) == (100.0, 0)
    assert best_average_fast(values, 10, Objective.MAXIMIZE) == (100.0, 0)


def test_engine_paths_agree_on_segmented_series(engine):
    rng = np.random.default_rng(11)
    samples = []
    for start, length in ((0, 2600), (3000, 900), (4500, 40)):
        for i, power in enumerate(rng.normal(250, 80, size=length).clip(min=0)):
            samples.append({"offset_seconds": start + i, "power": float(power)})
    series = normalize_samples(samples)

    reference = engine.activity_curve(series, "power", Objective.MAXIMIZE, force_path="reference")
    fast = engine.activity_curve(series, "power", Objective.MAXIMIZE, force_path="fast")
    auto = engine.activity_curve(series, "power", Objective.MAXIMIZE)

    for ref, other in ((reference, fast), (reference, auto)):
        for a, b in zip(ref.points, other.points):
            if a.value is None:
                assert b.value is None
            else:
                assert b.value == pytest.approx(a.value, rel=1e-9)


def test_flat_hour_of_200_watts(engine, constant_samples):
    series = normalize_samples(constant_samples(3600, power=200.0))
    curve = engine.activity_curve(series, "power", Objective.MAXIMIZE)

    assert curve.value_at(1) == pytest.approx(200)
    assert curve.value_at(3600) == pytest.approx(200)
    assert curve.value_at(4500) is None
    assert all(point.offset_seconds == 0 for point in curve.points if point.value is not None)


def test_power_curve_is_non_increasing(engine):
    rng = np.random.default_rng(3)
    samples = [{"offset_seconds": i, "power": float(p)} for i, p in enumerate(rng.gamma(4, 60, size=4000))]
    curve = engine.activity_curve(normalize_samples(samples), "power", Objective.MAXIMIZE)

    present = [v for v in _values(curve) if v is not None]
    assert present == sorted(present, reverse=True)


def test_pace_curve_is_non_decreasing(engine):
    rng = np.random.default_rng(5)
    samples = [{"offset_seconds": i, "speed_mps": float(s)} for i, s in enumerate(rng.uniform(2.5, 5.5, size=1500))]
    curve = engine.activity_curve(normalize_samples(samples), "pace", Objective.MINIMIZE)

    assert curve.metric == "pace"
    present = [v for v in _values(curve) if v is not None]
    assert present == sorted(present)


def test_window_never_spans_a_gap(engine, constant_samples):
    # Two 10 minute blocks separated by an 11 minute stop
    samples = constant_samples(600, power=300.0) + constant_samples(600, start=600 + 660, power=250.0)
    curve = engine.activity_curve(normalize_samples(samples), "power", Objective.MAXIMIZE)

    assert curve.value_at(600) == pytest.approx(300)
    assert curve.value_at(1200) is None


def test_best_window_offset_is_reported(engine, constant_samples):
    samples = constant_samples(100, power=150.0) + constant_samples(60, start=100, power=400.0)
    curve = engine.activity_curve(normalize_samples(samples), "power", Objective.MAXIMIZE)

    point = next(p for p in curve.points if p.duration_seconds == 60)
    assert point.value == pytest.approx(400)
    assert point.offset_seconds == 100


def test_pace_uses_floor_speed_for_stops():
    pace = pace_from_speed(np.array([4.0, 0.0, 0.25]), floor_speed=0.5)
    assert pace.tolist() == pytest.approx([250.0, 2000.0, 2000.0])


def test_running_pace_curve(engine, constant_samples):
    samples = constant_samples(300, speed_mps=4.0) + constant_samples(60, start=300, speed_mps=5.0)
    curve = engine.activity_curve(normalize_samples(samples), "pace", Objective.MINIMIZE)

    assert curve.objective is Objective.MINIMIZE
    assert curve.value_at(60) == pytest.approx(200.0)
    assert curve.value_at(300) == pytest.approx((240 * 250.0 + 60 * 200.0) / 300)


def test_empty_series_has_all_null_buckets(engine):
    curve = engine.activity_curve(normalize_samples([]), "power", Objective.MAXIMIZE)
    assert curve.is_empty
    assert len(curve.points) == len(BUCKETS)


def test_invalid_bucket_sets_are_rejected():
    with pytest.raises(InvalidConfigurationError):
        CurveEngine((), bucket_version="x")
    with pytest.raises(InvalidConfigurationError):
        CurveEngine((0, 5), bucket_version="x")


def _entry(activity_id: str, day: date, values: dict[int, float]) -> CurveEntry:
    curve = MeanMaximalCurve(
        metric="power",
        objective=Objective.MAXIMIZE,
        bucket_version="test",
        points=[CurvePoint(duration_seconds=d, value=v, offset_seconds=0) for d, v in values.items()],
    )
    recorded_at = datetime(day.year, day.month, day.day, 8, tzinfo=timezone.utc)
    return CurveEntry(activity_id=activity_id, recorded_at=recorded_at, curve=curve)


def test_aggregate_takes_best_per_bucket_with_source():
    entries = [
        _entry("a", date(2026, 3, 1), {5: 700, 60: 380}),
        _entry("b", date(2026, 3, 10), {5: 650, 60: 400}),
    ]
    curve = aggregate_curves(entries, (5, 60, 300), "power", Objective.MAXIMIZE, "test")

    points = {p.duration_seconds: p for p in curve.points}
    assert points[5].value == 700 and points[5].activity_id == "a"
    assert points[60].value == 400 and points[60].activity_id == "b"
    assert points[60].activity_date == date(2026, 3, 10)
    assert points[300].value is None


def test_aggregate_window_is_half_open():
    entries = [
        _entry("edge", date(2026, 1, 1), {60: 500}),
        _entry("inside", date(2026, 1, 2), {60: 300}),
        _entry("future", date(2026, 4, 2), {60: 900}),
    ]
    curve = aggregate_curves(
        entries, (60,), "power", Objective.MAXIMIZE, "test", as_of=date(2026, 4, 1), window_days=90
    )
    assert curve.points[0].activity_id == "inside"


def test_aggregate_ties_favour_most_recent():
    entries = [
        _entry("older", date(2026, 2, 1), {60: 400}),
        _entry("newer", date(2026, 2, 5), {60: 400}),
    ]
    curve = aggregate_curves(entries, (60,), "power", Objective.MAXIMIZE, "test")
    assert curve.points[0].activity_id == "newer"


def test_aggregate_rejects_non_positive_window():
    with pytest.raises(InvalidConfigurationError):
        aggregate_curves([], (60,), "power", Objective.MAXIMIZE, "test", as_of=date(2026, 1, 1), window_days=0)


def test_envelope_carries_longer_window_value_and_offset():
    raw = {
        5: BestWindow(value=300.0, offset_seconds=10),
        30: BestWindow(value=320.0, offset_seconds=200),
        60: None,
    }
    points = monotone_envelope(raw, Objective.MAXIMIZE)

    assert [(p.duration_seconds, p.value, p.offset_seconds) for p in points] == [
        (5, 320.0, 200),
        (30, 320.0, 200),
        (60, None, None),
    ]
