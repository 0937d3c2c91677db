"""
Critical power (CP) and anaerobic work capacity (W') from best efforts.

The two-parameter model P(t) = CP + W'/t is linear in 1/t, so a least squares
line through (1/t, P) gives W' in joules as the slope and CP in watts as the
intercept.
"""
import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from trainload.errors import InvalidConfigurationError
from trainload.models.curve import CriticalPowerFit, CurvePoint, MeanMaximalCurve

logger = logging.getLogger(__name__)

MIN_EFFORT_SECONDS = 60
MIN_EFFORT_WATTS = 50.0
MIN_EFFORTS = 2


@dataclass(frozen=True)
class CPProtocol:
    name: str
    durations: tuple[int, ...]
    min_watts: float = MIN_EFFORT_WATTS


CP_PROTOCOLS: dict[str, CPProtocol] = {
    "3min-12min": CPProtocol("3min-12min", (180, 720), min_watts=150.0),
    "5min-20min": CPProtocol("5min-20min", (300, 1200), min_watts=150.0),
    "8min-30min": CPProtocol("8min-30min", (480, 1800), min_watts=120.0),
}

# Every curve bucket from 3 to 30 minutes
DEFAULT_PROTOCOL = "mean-maximal"
DEFAULT_RANGE = (180, 1800)


def is_valid_effort(effort: CurvePoint, min_watts: float = MIN_EFFORT_WATTS) -> bool:
    return (
        effort.value is not None
        and effort.duration_seconds >= MIN_EFFORT_SECONDS
        and effort.value >= min_watts
    )


def fit_critical_power(
    efforts: Sequence[CurvePoint],
    protocol: str = DEFAULT_PROTOCOL,
    min_watts: float = MIN_EFFORT_WATTS,
) -> CriticalPowerFit | None:
    """
    Fit CP and W' to efforts by linear regression of power on 1/duration.

    Args:
        efforts: Best efforts as curve points (duration, average power)
        protocol: Name recorded on the result
        min_watts: Efforts below this power are rejected

    Returns:
        CriticalPowerFit, or None with fewer than two valid efforts of
        distinct durations
    """
    used = [e for e in efforts if is_valid_effort(e, min_watts)]
    rejected = [e for e in efforts if not is_valid_effort(e, min_watts)]

    if len(used) < MIN_EFFORTS or len({e.duration_seconds for e in used}) < MIN_EFFORTS:
        logger.debug(f"Not enough valid efforts for a CP fit: {len(used)} used, {len(rejected)} rejected")
        return None

    x = np.array([1.0 / e.duration_seconds for e in used])
    y = np.array([e.value for e in used], dtype=float)
    slope, intercept = np.polyfit(x, y, 1)

    predicted = slope * x + intercept
    ss_res = float(np.sum((y - predicted) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else None

    return CriticalPowerFit(
        protocol=protocol,
        cp_watts=float(intercept),
        w_prime_joules=float(slope),
        r_squared=r_squared,
        efforts_used=used,
        efforts_rejected=rejected,
    )


def efforts_from_curve(curve: MeanMaximalCurve, durations: Sequence[int]) -> list[CurvePoint]:
    """Curve points at the given durations; durations outside the bucket set are skipped."""
    wanted = set(durations)
    return [p for p in curve.points if p.duration_seconds in wanted and p.value is not None]


def critical_power_from_curve(
    curve: MeanMaximalCurve,
    protocol: str = DEFAULT_PROTOCOL,
) -> CriticalPowerFit | None:
    """
    Fit CP and W' to a power curve.

    The default protocol uses every bucket from 3 to 30 minutes; a named
    protocol uses its test durations only.
    """
    if curve.metric != "power":
        raise InvalidConfigurationError(f"Critical power needs a power curve, got {curve.metric}")

    if protocol == DEFAULT_PROTOCOL:
        low, high = DEFAULT_RANGE
        durations = [p.duration_seconds for p in curve.points if low <= p.duration_seconds <= high]
        return fit_critical_power(efforts_from_curve(curve, durations), protocol=protocol)

    definition = CP_PROTOCOLS.get(protocol)
    if definition is None:
        raise InvalidConfigurationError(f"Unknown critical power protocol: {protocol}")
    return fit_critical_power(
        efforts_from_curve(curve, definition.durations),
        protocol=definition.name,
        min_watts=definition.min_watts,
    )
