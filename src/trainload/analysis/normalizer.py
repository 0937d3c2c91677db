"""
Sample normalization.

Turns irregular, gap-ridden samples into a 1 Hz series split into continuous
segments. Every later computation (curves, NP, distance) works per segment and
never across a gap.
"""
from dataclasses import dataclass, field
from typing import Any, Iterable

import numpy as np
import pandas as pd

from trainload.errors import InvalidConfigurationError
from trainload.models.activity import Sample


FIELDS = ("power", "heart_rate", "cadence", "speed_mps", "altitude_m", "temperature_c")
COLUMNS = ("segment",) + FIELDS + ("distance_m", "grade")

MAX_GRADE = 0.45
GRADE_SMOOTHING_SECONDS = 5


@dataclass
class NormalizedSeries:
    """1 Hz series indexed by offset seconds, tagged with continuous segment ids."""
    frame: pd.DataFrame
    gap_threshold: float = 10.0
    segment_count: int = field(init=False)

    def __post_init__(self):
        self.segment_count = int(self.frame["segment"].nunique()) if not self.frame.empty else 0

    @property
    def empty(self) -> bool:
        return self.frame.empty

    @property
    def sample_count(self) -> int:
        return len(self.frame)

    def has(self, column: str) -> bool:
        """True if the column carries at least one value."""
        return column in self.frame.columns and bool(self.frame[column].notna().any())

    def column(self, column: str) -> pd.Series:
        return self.frame[column]

    def runs(self, column: str, values: pd.Series | None = None) -> list[tuple[int, np.ndarray]]:
        """
        Contiguous stretches of non-missing values of a column.

        A run never crosses a segment boundary, and a missing value inside a
        segment also ends the run.

        Args:
            column: Column name
            values: Optional replacement values aligned to the frame index
                (e.g. pace derived from speed)

        Returns:
            List of (start offset, values) tuples
        """
        if self.frame.empty:
            return []
        data = values if values is not None else self.frame[column]
        result: list[tuple[int, np.ndarray]] = []
        for _, segment in self.frame.groupby("segment", sort=True):
            seg_values = data.loc[segment.index].to_numpy(dtype=float)
            offsets = segment.index.to_numpy()
            valid = ~np.isnan(seg_values)
            if not valid.any():
                continue
            # Boundaries where validity flips
            edges = np.flatnonzero(np.diff(valid.astype(np.int8))) + 1
            starts = np.concatenate(([0], edges))
            ends = np.concatenate((edges, [len(seg_values)]))
            for start, end in zip(starts, ends):
                if valid[start]:
                    result.append((int(offsets[start]), seg_values[start:end]))
        return result


def empty_series(gap_threshold: float = 10.0) -> NormalizedSeries:
    frame = pd.DataFrame({name: pd.Series(dtype=float) for name in COLUMNS})
    frame["segment"] = frame["segment"].astype(int)
    frame.index = pd.Index([], dtype=int, name="offset")
    return NormalizedSeries(frame=frame, gap_threshold=gap_threshold)


def _interpolate_field(offsets: np.ndarray, values: np.ndarray, grid: np.ndarray, gap_threshold: float) -> np.ndarray:
    """
    Interpolate one field onto the grid.

    A grid point is filled only if the valid samples bracketing it are at most
    gap_threshold apart; outside the first/last valid sample only the half
    second rounding slack is filled.
    """
    valid = ~np.isnan(values)
    if not valid.any():
        return np.full(len(grid), np.nan)

    x = offsets[valid]
    y = values[valid]
    idx_next = np.searchsorted(x, grid, side="left")
    idx_prev = np.searchsorted(x, grid, side="right") - 1
    has_prev = idx_prev >= 0
    has_next = idx_next < len(x)

    prev_x = x[np.clip(idx_prev, 0, len(x) - 1)]
    next_x = x[np.clip(idx_next, 0, len(x) - 1)]
    span = np.where(has_prev & has_next, next_x - prev_x, np.inf)
    keep = span <= gap_threshold
    keep |= ~has_prev & (x[0] - grid <= 0.5)
    keep |= ~has_next & (grid - x[-1] <= 0.5)

    return np.where(keep, np.interp(grid, x, y), np.nan)


def _integrate_distance(speed: np.ndarray) -> np.ndarray:
    """Cumulative distance within a segment from 1 Hz speed (trapezoid rule)."""
    speed = np.nan_to_num(speed, nan=0.0)
    if len(speed) < 2:
        return np.zeros(len(speed))
    increments = (speed[1:] + speed[:-1]) / 2.0
    return np.concatenate(([0.0], np.cumsum(increments)))


def _compute_grade(altitude: np.ndarray, distance: np.ndarray) -> np.ndarray:
    """Grade from smoothed altitude over distance, 0 where unknown."""
    if len(altitude) < 2 or np.isnan(altitude).all():
        return np.zeros(len(altitude))
    alt = pd.Series(altitude).interpolate(limit_direction="both")
    alt = alt.rolling(window=GRADE_SMOOTHING_SECONDS, min_periods=1, center=True).mean().to_numpy()
    d_alt = np.diff(alt, prepend=alt[0])
    d_dist = np.diff(distance, prepend=distance[0])
    with np.errstate(divide="ignore", invalid="ignore"):
        grade = np.where(d_dist > 0.5, d_alt / d_dist, 0.0)
    grade = np.nan_to_num(grade, nan=0.0, posinf=0.0, neginf=0.0)
    return np.clip(grade, -MAX_GRADE, MAX_GRADE)


def _to_records(samples: Iterable[Sample | dict[str, Any]]) -> list[dict[str, Any]]:
    records = []
    for s in samples:
        record = s.model_dump() if isinstance(s, Sample) else dict(s)
        if record.get("offset_seconds") is None:
            continue
        records.append(record)
    return records


def normalize_samples(samples: Iterable[Sample | dict[str, Any]], gap_threshold: float = 10.0) -> NormalizedSeries:
    """
    Normalize raw samples into a gap-aware, segmented 1 Hz series.

    Args:
        samples: Samples (or sample dicts) in any order; duplicate offsets keep the last one
        gap_threshold: A gap strictly longer than this (seconds) starts a new segment

    Returns:
        NormalizedSeries; empty if there are no samples
    """
    if gap_threshold <= 0:
        raise InvalidConfigurationError("gap threshold must be positive")

    records = _to_records(samples)
    if not records:
        return empty_series(gap_threshold)

    df = pd.DataFrame.from_records(records)
    for name in FIELDS:
        if name not in df.columns:
            df[name] = np.nan
    df[list(FIELDS)] = df[list(FIELDS)].apply(pd.to_numeric, errors="coerce").astype(float)
    df = (
        df.sort_values("offset_seconds", kind="mergesort")
        .drop_duplicates("offset_seconds", keep="last")
        .reset_index(drop=True)
    )

    offsets = df["offset_seconds"].to_numpy(dtype=float)
    segment_ids = np.concatenate(([0], np.cumsum(np.diff(offsets) > gap_threshold)))

    frames = []
    distance_carry = 0.0
    last_grid_end: int | None = None
    for seg_id in np.unique(segment_ids):
        mask = segment_ids == seg_id
        seg_offsets = offsets[mask]
        start = int(round(seg_offsets[0]))
        if last_grid_end is not None and start <= last_grid_end:
            start = last_grid_end + 1
        end = max(int(round(seg_offsets[-1])), start)
        grid = np.arange(start, end + 1)
        last_grid_end = end

        columns: dict[str, np.ndarray] = {
            name: _interpolate_field(seg_offsets, df.loc[mask, name].to_numpy(dtype=float), grid, gap_threshold)
            for name in FIELDS
        }
        distance = _integrate_distance(columns["speed_mps"])
        columns["distance_m"] = distance + distance_carry
        columns["grade"] = _compute_grade(columns["altitude_m"], distance)
        distance_carry = float(columns["distance_m"][-1])

        seg_frame = pd.DataFrame(columns, index=pd.Index(grid, name="offset"))
        seg_frame.insert(0, "segment", int(seg_id))
        frames.append(seg_frame)

    frame = pd.concat(frames)
    return NormalizedSeries(frame=frame[list(COLUMNS)], gap_threshold=gap_threshold)
