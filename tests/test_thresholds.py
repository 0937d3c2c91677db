from datetime import date

import pytest

from trainload.analysis.thresholds import resolve_threshold
from trainload.models.athlete import ThresholdRecord
from trainload.models.sport import SportMode

CYCLING = SportMode.CYCLING


def _record(kind: str, value: float, day: date, sport: SportMode = CYCLING) -> ThresholdRecord:
    return ThresholdRecord(sport=sport, kind=kind, value=value, effective_date=day)


def test_lab_lactate_beats_manual_ftp():
    records = [_record("ftp", 250, date(2026, 1, 1)), _record("lt2", 270, date(2025, 12, 1))]
    resolved = resolve_threshold(records, CYCLING, date(2026, 2, 1))
    assert resolved.value == 270
    assert resolved.source == "LT2"


def test_newer_cp_test_overrides_lab_value():
    records = [_record("lt2", 270, date(2026, 1, 1)), _record("cp_test", 285, date(2026, 1, 20))]
    resolved = resolve_threshold(records, CYCLING, date(2026, 2, 1))
    assert resolved.value == 285
    assert resolved.source == "CP (test)"


def test_older_cp_test_does_not_override_lab_value():
    records = [_record("cp_test", 285, date(2025, 10, 1)), _record("vt2", 265, date(2026, 1, 1))]
    resolved = resolve_threshold(records, CYCLING, date(2026, 2, 1))
    assert resolved.source == "VT2"


def test_only_records_on_or_before_the_date_apply():
    records = [_record("ftp", 240, date(2026, 1, 1)), _record("ftp", 260, date(2026, 3, 1))]
    assert resolve_threshold(records, CYCLING, date(2026, 2, 1)).value == 240
    assert resolve_threshold(records, CYCLING, date(2026, 3, 1)).value == 260
    assert resolve_threshold(records, CYCLING, date(2025, 12, 31)) is None


def test_cp_lab_before_ftp():
    records = [_record("ftp", 240, date(2026, 1, 1)), _record("cp_lab", 255, date(2025, 6, 1))]
    assert resolve_threshold(records, CYCLING, date(2026, 2, 1)).source == "CP (lab)"


def test_records_of_other_sports_are_ignored():
    records = [_record("ftp", 240, date(2026, 1, 1), sport=SportMode.RUNNING)]
    assert resolve_threshold(records, CYCLING, date(2026, 2, 1)) is None


def test_twenty_minute_fallback_for_cycling():
    resolved = resolve_threshold([], CYCLING, date(2026, 2, 1), best_20min_power=300.0)
    assert resolved.value == pytest.approx(285.0)
    assert resolved.source == "95% of 20min power"


def test_no_twenty_minute_fallback_for_running():
    assert resolve_threshold([], SportMode.RUNNING, date(2026, 2, 1), best_20min_power=300.0) is None
