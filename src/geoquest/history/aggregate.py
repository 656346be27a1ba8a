from __future__ import annotations

from datetime import datetime, timezone as dt_timezone
from typing import Any, Callable, Iterable

from geoquest.core.geo import haversine_m
from geoquest.core.time import local_date
from geoquest.domain.models import VISIT_METHODS, Checkpoint, VisitMethod, VisitRecord, VisitStats

"""
Read-only history views over the visit ledger.

Nothing here mutates the ledger; every function takes the records in ledger order and
recomputes from scratch, so callers simply re-run them after each change.
"""


def group_by_date(records: Iterable[VisitRecord], *, timezone: str = "UTC") -> dict[str, list[VisitRecord]]:
    """Bucket records by local calendar date (`YYYY-MM-DD`), newest date first.

    Records keep their ledger order inside each bucket.
    """
    grouped: dict[str, list[VisitRecord]] = {}
    for r in records:
        key = local_date(r.visited_at_ms, timezone).isoformat()
        grouped.setdefault(key, []).append(r)
    return {k: grouped[k] for k in sorted(grouped, reverse=True)}


def filter_by_method(records: Iterable[VisitRecord], method: VisitMethod) -> list[VisitRecord]:
    if method not in VISIT_METHODS:
        raise ValueError(f"unknown visit method '{method}'")
    return [r for r in records if r.method == method]


def chained_distance_m(records: Iterable[VisitRecord]) -> float:
    """Sum of distances between consecutive visit positions, in ledger order."""
    total = 0.0
    prev: VisitRecord | None = None
    for r in records:
        if prev is not None:
            total += haversine_m(prev.position.coordinate, r.position.coordinate)
        prev = r
    return total


def compute_stats(records: Iterable[VisitRecord]) -> VisitStats:
    items = list(records)
    by_method: dict[VisitMethod, int] = {m: 0 for m in VISIT_METHODS}
    for r in items:
        by_method[r.method] += 1
    return VisitStats(
        total_visits=len(items),
        unique_checkpoints=len({r.checkpoint_id for r in items}),
        count_by_method=by_method,
        total_distance_m=chained_distance_m(items),
    )


def export_history(
    records: Iterable[VisitRecord],
    *,
    lookup: Callable[[str], Checkpoint | None],
    exported_at: datetime | None = None,
) -> dict[str, Any]:
    """Build the downloadable history document: export date, stats, and visits with checkpoint details."""
    items = list(records)
    when = exported_at or datetime.now(dt_timezone.utc)
    visits = []
    for r in items:
        cp = lookup(r.checkpoint_id)
        visits.append({"checkpoint": cp.to_wire() if cp else None, **r.to_wire()})
    return {
        "exportDate": when.isoformat(),
        "stats": compute_stats(items).to_wire(),
        "visits": visits,
    }
