"""
Activity summary from a normalized series: distance, heart rate, pace and
elevation gain.

Averages are time weighted over the 1 Hz grid. Elevation gain sums the rises
between consecutive seconds inside a segment and never bridges a gap.
"""
from dataclasses import dataclass

import numpy as np

from trainload.analysis.normalizer import NormalizedSeries


@dataclass
class SeriesSummary:
    distance_m: float | None = None
    avg_speed_mps: float | None = None
    avg_pace_s_per_km: float | None = None
    avg_heart_rate: float | None = None
    max_heart_rate: float | None = None
    elevation_gain_m: float | None = None


def elevation_gain(series: NormalizedSeries) -> float | None:
    """Sum of positive altitude changes within each continuous segment."""
    if not series.has("altitude_m"):
        return None
    gain = 0.0
    for _, segment in series.frame.groupby("segment", sort=True):
        rises = np.diff(segment["altitude_m"].to_numpy(dtype=float))
        gain += float(np.nansum(np.clip(rises, 0.0, None)))
    return gain


def summarize_series(series: NormalizedSeries) -> SeriesSummary:
    """
    Summary metrics of one activity.

    Args:
        series: Normalized series

    Returns:
        SeriesSummary; a field is None when its channel is absent
    """
    summary = SeriesSummary()
    if series.empty:
        return summary

    if series.has("speed_mps"):
        summary.distance_m = float(series.column("distance_m").iloc[-1])
        avg_speed = float(series.column("speed_mps").mean())
        summary.avg_speed_mps = avg_speed
        if avg_speed > 0:
            summary.avg_pace_s_per_km = 1000.0 / avg_speed

    if series.has("heart_rate"):
        heart_rate = series.column("heart_rate")
        summary.avg_heart_rate = float(heart_rate.mean())
        summary.max_heart_rate = float(heart_rate.max())

    summary.elevation_gain_m = elevation_gain(series)
    return summary
