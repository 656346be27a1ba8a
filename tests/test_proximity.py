import random
import re
from pathlib import Path

import pytest

from geoquest.catalog.loader import load_checkpoints
from geoquest.catalog.store import CheckpointCatalog
from geoquest.config.settings import Settings
from geoquest.core.geo import GeoPoint, haversine_m
from geoquest.discovery.proximity import ProximityEngine, filter_nearby, round_half_up
from geoquest.domain.models import Checkpoint, UserPosition

SEED_PATH = Path(__file__).resolve().parent.parent / "data" / "catalogs" / "checkpoints.json"

AT_GRAND_CENTRAL = UserPosition(latitude=40.7527, longitude=-73.9772, accuracy=10, timestamp=1_000)
IN_PARIS = UserPosition(latitude=48.8566, longitude=2.3522, accuracy=10, timestamp=1_000)


def _engine(seed: int = 7) -> ProximityEngine:
    catalog = CheckpointCatalog(load_checkpoints(SEED_PATH))
    return ProximityEngine(catalog, settings=Settings(), rng=random.Random(seed), clock=lambda: 1_700_000_000_000)


def test_nearby_orders_by_distance():
    engine = _engine()
    hits = engine.nearby(AT_GRAND_CENTRAL)

    assert [h.checkpoint.id for h in hits] == ["cp-1", "cp-3", "cp-2"]
    assert hits[0].distance_m == 0
    assert hits[0].display_distance_m == 0
    assert all(a.distance_m <= b.distance_m for a, b in zip(hits, hits[1:]))
    assert not engine.catalog.has_generated


def test_filter_nearby_has_no_false_positives_or_negatives():
    origin = GeoPoint(lat=40.7527, lon=-73.9772)
    rng = random.Random(3)
    checkpoints = [
        Checkpoint(
            id=f"p{i}",
            name=f"P{i}",
            latitude=origin.lat + rng.uniform(-0.02, 0.02),
            longitude=origin.lon + rng.uniform(-0.02, 0.02),
            radius=rng.uniform(0, 300),
        )
        for i in range(200)
    ]
    buffer_m = 800

    hits = {h.checkpoint.id for h in filter_nearby(origin, checkpoints, buffer_m=buffer_m)}
    expected = {cp.id for cp in checkpoints if haversine_m(origin, cp.coordinate) <= cp.radius_m + buffer_m}
    assert hits == expected
    assert 0 < len(hits) < len(checkpoints)


def test_range_test_uses_exact_distance_not_rounded():
    origin = GeoPoint(lat=0.0, lon=0.0)
    cp = Checkpoint(id="edge", name="Edge", latitude=0.0, longitude=0.0, radius=0)
    d = haversine_m(origin, GeoPoint(lat=0.0, lon=0.0045))
    far = cp.model_copy(update={"longitude": 0.0045})

    assert filter_nearby(origin, [far], buffer_m=d - 0.4) == []
    assert round_half_up(d - 0.4) == round_half_up(d)
    assert len(filter_nearby(origin, [far], buffer_m=d)) == 1


def test_ties_are_broken_by_catalog_order():
    origin = GeoPoint(lat=10.0, lon=10.0)
    a = Checkpoint(id="b-second", name="B", latitude=10.0, longitude=10.001, radius=10)
    b = Checkpoint(id="a-first", name="A", latitude=10.0, longitude=10.001, radius=10)
    hits = filter_nearby(origin, [a, b], buffer_m=500)
    assert [h.checkpoint.id for h in hits] == ["b-second", "a-first"]


def test_force_eligible_ignores_distance():
    origin = GeoPoint(lat=40.7527, lon=-73.9772)
    seeds = load_checkpoints(SEED_PATH)
    hits = filter_nearby(origin, seeds, buffer_m=0, force_eligible={"cp-2"})
    assert [h.checkpoint.id for h in hits] == ["cp-1", "cp-2"]


def test_no_position_means_nothing_nearby():
    engine = _engine()
    assert engine.nearby(None) == []
    assert not engine.catalog.has_generated


def test_empty_neighbourhood_generates_once():
    engine = _engine()

    first = engine.nearby(IN_PARIS)
    assert len(first) == 6
    ids = [h.checkpoint.id for h in first]
    assert all(i.startswith("gen-") for i in ids)
    assert len(engine.catalog) == 9

    # Same episode: no new ids appear.
    second = engine.nearby(IN_PARIS)
    third = engine.nearby(IN_PARIS)
    assert sorted(h.checkpoint.id for h in second) == sorted(ids)
    assert sorted(h.checkpoint.id for h in third) == sorted(ids)
    assert len(engine.catalog) == 9


def test_no_regeneration_once_catalog_holds_generated_checkpoints():
    engine = _engine()
    engine.nearby(IN_PARIS)

    tokyo = UserPosition(latitude=35.6762, longitude=139.6503)
    assert engine.nearby(tokyo) == []
    assert len(engine.catalog) == 9


def test_generated_checkpoints_follow_generation_rules():
    engine = _engine(seed=11)
    items = engine.generate_synthetic(IN_PARIS, count=50, max_distance_m=3000)

    assert len(items) == 50
    assert len({cp.id for cp in items}) == 50
    for cp in items:
        d = haversine_m(IN_PARIS.coordinate, cp.coordinate)
        # Coordinates are rounded to 6 decimals (~0.1 m).
        assert 200 - 1 <= d < 3000 + 1
        assert cp.id.startswith("gen-1700000000000-")
        assert cp.type == "landmark"
        assert cp.difficulty in {"easy", "medium"}
        assert 100 <= cp.radius_m <= 300
        m = re.fullmatch(r"(\d+) coins", cp.reward)
        assert m and 5 <= int(m.group(1)) <= 15
    assert {cp.difficulty for cp in items} == {"easy", "medium"}


def test_generate_synthetic_rejects_bad_distance_range():
    engine = _engine()
    with pytest.raises(ValueError):
        engine.generate_synthetic(IN_PARIS, count=3, max_distance_m=100)


def test_concurrent_nearby_calls_generate_only_once():
    import threading

    engine = _engine()
    start = threading.Barrier(16)
    results: list[list[str]] = []
    errors: list[Exception] = []

    def worker() -> None:
        try:
            start.wait()
            results.append(sorted(h.checkpoint.id for h in engine.nearby(IN_PARIS)))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(engine.catalog) == 9
    assert len(results) == 16
    assert all(r == results[0] for r in results)
    assert len(results[0]) == 6
