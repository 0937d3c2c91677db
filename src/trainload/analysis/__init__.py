"""
Numerical analytics engine.

Pure computations without I/O:
- Sample normalization into gap-aware 1 Hz segments
- Mean-maximal curves per activity and aggregated over windows
- Effort scores (NP, IF, TSS, VI, rTSS)
- Fitness-fatigue trend (CTL / ATL / TSB)
- Threshold resolution by date
- Activity summaries (distance, heart rate, pace, elevation gain)
- Critical power and W' from best efforts
"""

from trainload.analysis.normalizer import NormalizedSeries, normalize_samples, empty_series
from trainload.analysis.curves import (
    CurveEngine, CurveEntry, BestWindow, aggregate_curves, monotone_envelope,
    best_average_reference, best_average_fast, pace_from_speed
)
from trainload.analysis.scoring import (
    EffortScores, score_activity, normalized_power, normalized_graded_speed,
    intensity_factor, training_stress_score, variability_index, minetti_cost
)
from trainload.analysis.trend import (
    LoadEntry, build_daily_loads, fill_daily_loads, compute_trend, recompute_from, extend_trend
)
from trainload.analysis.thresholds import resolve_threshold
from trainload.analysis.summary import SeriesSummary, summarize_series, elevation_gain
from trainload.analysis.critical_power import (
    CPProtocol, CP_PROTOCOLS, fit_critical_power, efforts_from_curve, critical_power_from_curve
)

__all__ = [
    # Normalization
    'NormalizedSeries',
    'normalize_samples',
    'empty_series',

    # Curves
    'CurveEngine',
    'CurveEntry',
    'BestWindow',
    'aggregate_curves',
    'monotone_envelope',
    'best_average_reference',
    'best_average_fast',
    'pace_from_speed',

    # Scoring
    'EffortScores',
    'score_activity',
    'normalized_power',
    'normalized_graded_speed',
    'intensity_factor',
    'training_stress_score',
    'variability_index',
    'minetti_cost',

    # Trend
    'LoadEntry',
    'build_daily_loads',
    'fill_daily_loads',
    'compute_trend',
    'recompute_from',
    'extend_trend',

    # Thresholds
    'resolve_threshold',

    # Summary
    'SeriesSummary',
    'summarize_series',
    'elevation_gain',

    # Critical power
    'CPProtocol',
    'CP_PROTOCOLS',
    'fit_critical_power',
    'efforts_from_curve',
    'critical_power_from_curve',
]
