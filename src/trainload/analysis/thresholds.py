"""
Threshold resolution.

Selects the reference threshold in force on an activity's date. Only records
dated on or before the activity date are considered. Order of preference:

1. LT2 (blood lactate), unless a CP test is more recent
2. VT2 (ventilatory), unless a CP test is more recent
3. CP from a dedicated test
4. CP from a lab report
5. Manually entered FTP / threshold pace
6. Power sports only: 95% of the best 20-minute power before the date
"""
from datetime import date
from typing import Iterable

from trainload.models.athlete import ResolvedThreshold, ThresholdRecord
from trainload.models.sport import SportMode

TWENTY_MINUTE_FACTOR = 0.95

_SOURCE_LABELS = {
    "lt2": "LT2",
    "vt2": "VT2",
    "cp_test": "CP (test)",
    "cp_lab": "CP (lab)",
    "ftp": "FTP",
}


def _latest(records: list[ThresholdRecord], kind: str) -> ThresholdRecord | None:
    candidates = [r for r in records if r.kind == kind and r.value > 0]
    if not candidates:
        return None
    return max(candidates, key=lambda r: r.effective_date)


def resolve_threshold(
    records: Iterable[ThresholdRecord],
    sport: SportMode,
    on_date: date,
    best_20min_power: float | None = None,
) -> ResolvedThreshold | None:
    """
    Resolve the threshold for a sport on a date.

    Args:
        records: All threshold records of the athlete
        sport: Primary sport mode of the activity
        on_date: Activity date
        best_20min_power: Best 20-minute power before on_date, for the fallback

    Returns:
        ResolvedThreshold or None if nothing applies
    """
    applicable = [r for r in records if r.sport == sport and r.effective_date <= on_date]

    cp_test = _latest(applicable, "cp_test")
    for kind in ("lt2", "vt2"):
        lab = _latest(applicable, kind)
        if lab:
            if cp_test and cp_test.effective_date > lab.effective_date:
                return ResolvedThreshold(value=cp_test.value, source=_SOURCE_LABELS["cp_test"])
            return ResolvedThreshold(value=lab.value, source=_SOURCE_LABELS[kind])

    for kind in ("cp_test", "cp_lab", "ftp"):
        record = _latest(applicable, kind)
        if record:
            return ResolvedThreshold(value=record.value, source=_SOURCE_LABELS[kind])

    if sport == SportMode.CYCLING and best_20min_power and best_20min_power > 0:
        return ResolvedThreshold(
            value=best_20min_power * TWENTY_MINUTE_FACTOR,
            source="95% of 20min power",
        )
    return None
