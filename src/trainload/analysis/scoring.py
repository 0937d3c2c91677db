"""
Effort scoring: Normalized Power, Intensity Factor, Training Stress Score and
Variability Index.

Power sports are scored from power:
    NP  = (mean of 30 s rolling power ^ 4) ^ 1/4
    IF  = NP / threshold power
    TSS = (seconds x NP x IF) / (threshold x 3600) x 100

Pace sports are scored with running TSS (rTSS): speed is grade adjusted with the
Minetti et al. (2002) cost of running polynomial, reduced to Normalized Graded
Speed the same way as NP, and compared against the threshold pace:
    IF   = NGS / threshold speed
    rTSS = hours x IF^2 x 100

Every function returns None instead of a fabricated number when an input is
missing.
"""
from dataclasses import dataclass, field
from typing import Literal

import numpy as np
import pandas as pd

from trainload.analysis.normalizer import NormalizedSeries

ScoringBasis = Literal["power", "pace"]

FLAT_RUNNING_COST = 3.6  # J/kg/m


@dataclass
class EffortScores:
    avg_power: float | None = None
    max_power: float | None = None
    normalized_power: float | None = None
    normalized_graded_speed: float | None = None
    intensity_factor: float | None = None
    tss: float | None = None
    variability_index: float | None = None
    missing_inputs: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Core calculations
# ---------------------------------------------------------------------------
def rolling_fourth_power_mean(runs: list[tuple[int, np.ndarray]], window: int = 30) -> float | None:
    """
    4th root of the mean 4th power of a rolling average.

    The rolling average restarts in every run, so it never spans a gap. Runs
    shorter than the window contribute nothing.
    """
    rolled = []
    for _, values in runs:
        rolling_mean = pd.Series(values).rolling(window=window, min_periods=window).mean().dropna()
        if not rolling_mean.empty:
            rolled.append(rolling_mean.to_numpy())
    if not rolled:
        return None
    all_values = np.concatenate(rolled)
    return float(np.mean(all_values ** 4) ** 0.25)


def normalized_power(series: NormalizedSeries, window: int = 30) -> float | None:
    """Calculate Normalized Power (NP) from the power column."""
    if not series.has("power"):
        return None
    return rolling_fourth_power_mean(series.runs("power"), window=window)


def minetti_cost(grade: np.ndarray | float) -> np.ndarray | float:
    """
    Energy cost of running (J/kg/m) at a grade given as a decimal.

    C(i) = 155.4i^5 - 30.4i^4 - 43.3i^3 + 46.3i^2 + 19.5i + 3.6
    """
    i = grade
    return 155.4 * i**5 - 30.4 * i**4 - 43.3 * i**3 + 46.3 * i**2 + 19.5 * i + 3.6


def grade_adjusted_speed(speed: np.ndarray, grade: np.ndarray) -> np.ndarray:
    """Flat-equivalent speed: speed scaled by the relative cost of the grade."""
    cost_ratio = np.asarray(minetti_cost(np.nan_to_num(grade, nan=0.0)), dtype=float) / FLAT_RUNNING_COST
    return np.asarray(speed, dtype=float) * cost_ratio


def normalized_graded_speed(series: NormalizedSeries, window: int = 30) -> float | None:
    """Pace-sport analogue of NP, in m/s."""
    if not series.has("speed_mps"):
        return None
    adjusted = pd.Series(
        grade_adjusted_speed(series.column("speed_mps").to_numpy(dtype=float),
                             series.column("grade").to_numpy(dtype=float)),
        index=series.frame.index,
    )
    return rolling_fourth_power_mean(series.runs("speed_mps", values=adjusted), window=window)


def intensity_factor(normalized: float | None, threshold: float | None) -> float | None:
    """Calculate Intensity Factor (IF)."""
    if normalized is None or not threshold or threshold <= 0:
        return None
    return normalized / threshold


def training_stress_score(
    duration_sec: float | None,
    normalized: float | None,
    if_value: float | None,
    threshold: float | None,
) -> float | None:
    """Calculate Training Stress Score (TSS)."""
    if normalized is None or if_value is None or not threshold or threshold <= 0:
        return None
    if duration_sec is None or duration_sec < 0:
        return None
    return (duration_sec * normalized * if_value) / (threshold * 3600) * 100


def variability_index(normalized: float | None, avg_power: float | None) -> float | None:
    """Calculate Variability Index (VI)."""
    if normalized is None or avg_power is None or avg_power <= 0:
        return None
    return normalized / avg_power


def pace_to_speed(pace_s_per_km: float | None) -> float | None:
    """Threshold pace (s/km) to speed (m/s)."""
    if not pace_s_per_km or pace_s_per_km <= 0:
        return None
    return 1000.0 / pace_s_per_km


# ---------------------------------------------------------------------------
# Activity scoring
# ---------------------------------------------------------------------------
def score_activity(
    series: NormalizedSeries,
    basis: ScoringBasis,
    threshold: float | None,
    duration_seconds: float | None = None,
    window: int = 30,
) -> EffortScores:
    """
    Compute all effort scores for one activity.

    Args:
        series: Normalized sample series
        basis: "power" (threshold in watts) or "pace" (threshold in s/km)
        threshold: Reference threshold for the activity date, None if unknown
        duration_seconds: Duration used for TSS; defaults to the 1 Hz sample count
        window: Rolling window for NP / NGS in seconds

    Returns:
        EffortScores with absent values as None and the names of missing inputs
    """
    scores = EffortScores()
    if series.empty:
        scores.missing_inputs.append("series")
        return scores

    duration = duration_seconds if duration_seconds is not None else float(series.sample_count)

    if series.has("power"):
        power = series.column("power").dropna()
        scores.avg_power = float(power.mean())
        scores.max_power = float(power.max())
        scores.normalized_power = normalized_power(series, window=window)
        scores.variability_index = variability_index(scores.normalized_power, scores.avg_power)

    has_threshold = threshold is not None and threshold > 0

    if basis == "power":
        if scores.normalized_power is None:
            if not series.has("power"):
                scores.missing_inputs.append("power")
            return _note_threshold(scores, has_threshold)
        if has_threshold:
            scores.intensity_factor = intensity_factor(scores.normalized_power, threshold)
            scores.tss = training_stress_score(duration, scores.normalized_power, scores.intensity_factor, threshold)
        return _note_threshold(scores, has_threshold)

    scores.normalized_graded_speed = normalized_graded_speed(series, window=window)
    if scores.normalized_graded_speed is None:
        if not series.has("speed_mps"):
            scores.missing_inputs.append("speed")
        return _note_threshold(scores, has_threshold)
    threshold_speed = pace_to_speed(threshold) if has_threshold else None
    if threshold_speed:
        scores.intensity_factor = intensity_factor(scores.normalized_graded_speed, threshold_speed)
        scores.tss = training_stress_score(
            duration, scores.normalized_graded_speed, scores.intensity_factor, threshold_speed
        )
    return _note_threshold(scores, has_threshold)


def _note_threshold(scores: EffortScores, has_threshold: bool) -> EffortScores:
    if not has_threshold:
        scores.missing_inputs.append("threshold")
    return scores
