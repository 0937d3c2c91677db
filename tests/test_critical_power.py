import pytest

from trainload.analysis.critical_power import (
    critical_power_from_curve,
    efforts_from_curve,
    fit_critical_power,
)
from trainload.errors import InvalidConfigurationError
from trainload.models.curve import CurvePoint, MeanMaximalCurve
from trainload.models.sport import Objective

CP = 250.0
W_PRIME = 20000.0


def _model_curve(durations, metric="power") -> MeanMaximalCurve:
    return MeanMaximalCurve(
        metric=metric,
        objective=Objective.MAXIMIZE,
        bucket_version="test",
        points=[CurvePoint(duration_seconds=d, value=CP + W_PRIME / d) for d in durations],
    )


def test_fit_recovers_known_model():
    curve = _model_curve((5, 60, 180, 300, 600, 1200, 1800, 3600))
    fit = critical_power_from_curve(curve)

    assert fit.protocol == "mean-maximal"
    assert fit.cp_watts == pytest.approx(CP)
    assert fit.w_prime_joules == pytest.approx(W_PRIME)
    assert fit.r_squared == pytest.approx(1.0)
    assert [e.duration_seconds for e in fit.efforts_used] == [180, 300, 600, 1200, 1800]


def test_named_protocol_uses_its_test_durations():
    fit = critical_power_from_curve(_model_curve((180, 300, 720, 1200)), protocol="3min-12min")

    assert fit.protocol == "3min-12min"
    assert [e.duration_seconds for e in fit.efforts_used] == [180, 720]
    assert fit.cp_watts == pytest.approx(CP)
    assert fit.w_prime_joules == pytest.approx(W_PRIME)


def test_short_and_weak_efforts_are_rejected():
    efforts = [
        CurvePoint(duration_seconds=30, value=600.0),
        CurvePoint(duration_seconds=300, value=CP + W_PRIME / 300),
        CurvePoint(duration_seconds=600, value=40.0),
        CurvePoint(duration_seconds=1200, value=CP + W_PRIME / 1200),
    ]
    fit = fit_critical_power(efforts)

    assert [e.duration_seconds for e in fit.efforts_rejected] == [30, 600]
    assert fit.cp_watts == pytest.approx(CP)


@pytest.mark.parametrize("efforts", [
    [],
    [CurvePoint(duration_seconds=300, value=300.0)],
    [CurvePoint(duration_seconds=300, value=300.0), CurvePoint(duration_seconds=300, value=310.0)],
    [CurvePoint(duration_seconds=300, value=300.0), CurvePoint(duration_seconds=30, value=500.0)],
])
def test_fewer_than_two_valid_efforts_gives_no_fit(efforts):
    assert fit_critical_power(efforts) is None


def test_flat_efforts_have_no_r_squared():
    efforts = [CurvePoint(duration_seconds=d, value=200.0) for d in (300, 600, 1200)]
    fit = fit_critical_power(efforts)

    assert fit.cp_watts == pytest.approx(200.0)
    assert fit.w_prime_joules == pytest.approx(0.0, abs=1e-6)
    assert fit.r_squared is None


def test_efforts_from_curve_skips_missing_buckets():
    curve = _model_curve((300, 1200))
    curve.points.append(CurvePoint(duration_seconds=1800, value=None))

    efforts = efforts_from_curve(curve, (300, 720, 1800))

    assert [e.duration_seconds for e in efforts] == [300]


def test_pace_curve_and_unknown_protocol_are_rejected():
    with pytest.raises(InvalidConfigurationError):
        critical_power_from_curve(_model_curve((300, 1200), metric="pace"))
    with pytest.raises(InvalidConfigurationError):
        critical_power_from_curve(_model_curve((300, 1200)), protocol="ramp-test")
