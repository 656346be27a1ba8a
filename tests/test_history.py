from datetime import datetime, timezone

import pytest

from geoquest.core.geo import haversine_m
from geoquest.domain.models import Checkpoint, UserPosition, VisitRecord
from geoquest.history.aggregate import compute_stats, export_history, filter_by_method, group_by_date


def _ms(*args: int) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def _record(cp_id: str, ts: int, method: str, lat: float, lon: float) -> VisitRecord:
    return VisitRecord(
        checkpoint_id=cp_id,
        visited_at_ms=ts,
        method=method,
        position=UserPosition(latitude=lat, longitude=lon, timestamp=ts),
    )


R1 = _record("cp-1", _ms(2026, 1, 5, 10), "qr", 40.7527, -73.9772)
R2 = _record("cp-2", _ms(2026, 1, 6, 9), "quiz", 40.758, -73.9855)
R3 = _record("cp-3", _ms(2026, 1, 5, 12), "qr", 40.7536, -73.9832)
LEDGER = [R1, R2, R3]


def test_group_by_date_newest_first_with_ledger_order_inside():
    grouped = group_by_date(LEDGER, timezone="UTC")
    assert list(grouped) == ["2026-01-06", "2026-01-05"]
    assert grouped["2026-01-05"] == [R1, R3]
    assert grouped["2026-01-06"] == [R2]


def test_group_by_date_uses_the_local_calendar_day():
    late = _record("cp-1", _ms(2026, 1, 6, 3), "qr", 40.75, -73.98)
    grouped = group_by_date([late], timezone="America/New_York")
    assert list(grouped) == ["2026-01-05"]


def test_filter_by_method_preserves_order():
    assert filter_by_method(LEDGER, "qr") == [R1, R3]
    assert filter_by_method(LEDGER, "manual") == []
    with pytest.raises(ValueError):
        filter_by_method(LEDGER, "teleport")


def test_stats_chain_consecutive_positions_in_ledger_order():
    stats = compute_stats(LEDGER)

    expected = haversine_m(R1.position.coordinate, R2.position.coordinate) + haversine_m(
        R2.position.coordinate, R3.position.coordinate
    )
    assert stats.total_distance_m == pytest.approx(expected)
    assert stats.total_visits == 3
    assert stats.unique_checkpoints == 3
    assert stats.count_by_method == {"qr": 2, "quiz": 1, "manual": 0}

    # Order-dependent by construction.
    reordered = compute_stats([R1, R3, R2])
    assert reordered.total_distance_m != pytest.approx(stats.total_distance_m)


def test_stats_for_empty_and_single_record_ledgers():
    assert compute_stats([]).total_distance_m == 0
    single = compute_stats([R1])
    assert single.total_distance_m == 0
    assert single.total_visits == 1


def test_stats_count_repeat_visits_once_in_unique_checkpoints():
    stats = compute_stats([R1, R1, R2])
    assert stats.total_visits == 3
    assert stats.unique_checkpoints == 2


def test_export_history_document():
    cps = {"cp-1": Checkpoint(id="cp-1", name="Grand Central Terminal", latitude=40.7527, longitude=-73.9772, radius=100)}
    doc = export_history(
        [R1, R2],
        lookup=cps.get,
        exported_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
    )

    assert doc["exportDate"] == "2026-02-01T00:00:00+00:00"
    assert doc["stats"]["totalVisits"] == 2
    assert doc["visits"][0]["checkpoint"]["name"] == "Grand Central Terminal"
    assert doc["visits"][0]["checkpointId"] == "cp-1"
    assert doc["visits"][1]["checkpoint"] is None
