import pytest

from geoquest.domain.models import Checkpoint, UserPosition, VisitRecord
from geoquest.ledger.storage import JsonFileStore, MemoryStore
from geoquest.ledger.visits import VisitLedger, demo_visit_records


def _record(cp_id: str, ts: int, method: str = "manual") -> VisitRecord:
    return VisitRecord(
        checkpoint_id=cp_id,
        visited_at_ms=ts,
        completed_at_ms=ts,
        method=method,
        position=UserPosition(latitude=40.75, longitude=-73.98, accuracy=5, timestamp=ts),
    )


def test_ledger_mirrors_itself_into_the_store():
    store = MemoryStore()
    ledger = VisitLedger(store)
    ledger.append(_record("cp-1", 1_000, "qr"))
    ledger.append(_record("cp-2", 2_000, "quiz"))

    raw = store.get("visitedCheckpoints")
    assert [r["checkpointId"] for r in raw] == ["cp-1", "cp-2"]
    assert raw[0]["location"]["latitude"] == 40.75
    assert raw[0]["visitedAt"] == 1_000

    reloaded = VisitLedger(store)
    assert [r.checkpoint_id for r in reloaded.all()] == ["cp-1", "cp-2"]
    assert reloaded.is_unlocked("cp-2")


def test_ledger_reads_browser_format_records():
    store = MemoryStore(
        {
            "visitedCheckpoints": [
                {
                    "checkpointId": "cp-3",
                    "visitedAt": 1_700_000_000_000,
                    "completedAt": 1_700_000_060_000,
                    "method": "quiz",
                    "location": {"latitude": 40.7536, "longitude": -73.9832, "accuracy": 12, "timestamp": 1},
                }
            ]
        }
    )
    ledger = VisitLedger(store)
    assert len(ledger) == 1
    assert ledger.all()[0].position.accuracy_m == 12


def test_unreadable_store_starts_empty():
    store = MemoryStore({"visitedCheckpoints": [{"bogus": True}]})
    ledger = VisitLedger(store)
    assert ledger.all() == []


def test_clear_empties_ledger_and_store():
    store = MemoryStore()
    ledger = VisitLedger(store)
    ledger.append(_record("cp-1", 1_000))
    ledger.clear()

    assert len(ledger.all()) == 0
    assert not ledger.is_unlocked("cp-1")
    assert store.get("visitedCheckpoints") == []
    assert VisitLedger(store).all() == []


def test_all_returns_a_copy():
    ledger = VisitLedger()
    ledger.append(_record("cp-1", 1_000))
    snapshot = ledger.all()
    snapshot.clear()
    assert len(ledger) == 1


def test_json_file_store_round_trip(tmp_path):
    store = JsonFileStore(tmp_path / "alice")
    ledger = VisitLedger(store)
    ledger.append(_record("cp-1", 1_000))

    assert (tmp_path / "alice" / "visitedCheckpoints.json").is_file()
    assert [r.checkpoint_id for r in VisitLedger(JsonFileStore(tmp_path / "alice")).all()] == ["cp-1"]

    store.delete("visitedCheckpoints")
    assert store.get("visitedCheckpoints") is None


def test_demo_seed_only_applies_to_an_empty_store():
    seeds = [
        Checkpoint(id=f"cp-{i}", name=str(i), latitude=40.0 + i / 100, longitude=-73.0, radius=50)
        for i in range(1, 5)
    ]
    now = 1_700_000_000_000
    store = MemoryStore()
    ledger = VisitLedger(store, seed=demo_visit_records(seeds, now=now))

    records = ledger.all()
    assert [r.checkpoint_id for r in records] == ["cp-1", "cp-2", "cp-3"]
    assert [r.method for r in records] == ["qr", "quiz", "qr"]
    assert records[0].visited_at_ms == now - 3_600_000
    assert store.get("visitedCheckpoints") is not None

    ledger.clear()
    again = VisitLedger(store, seed=demo_visit_records(seeds, now=now))
    assert again.all() == []


def test_corrupt_ledger_file_starts_empty_and_is_replaced_on_write(tmp_path):
    (tmp_path / "visitedCheckpoints.json").write_text("{not json", encoding="utf-8")
    store = JsonFileStore(tmp_path)

    ledger = VisitLedger(store)
    assert ledger.all() == []

    ledger.append(_record("cp-1", 1_000))
    assert [r["checkpointId"] for r in store.get("visitedCheckpoints")] == ["cp-1"]


class _FailingStore(MemoryStore):
    def __init__(self, initial=None):
        self.fail = False
        super().__init__(initial)

    def set(self, key, value):
        if self.fail:
            raise OSError("disk full")
        super().set(key, value)


def test_failed_write_leaves_ledger_unchanged():
    store = _FailingStore()
    ledger = VisitLedger(store)
    ledger.append(_record("cp-1", 1_000))

    store.fail = True
    with pytest.raises(OSError):
        ledger.append(_record("cp-2", 2_000))
    assert [r.checkpoint_id for r in ledger.all()] == ["cp-1"]
    assert not ledger.is_unlocked("cp-2")

    with pytest.raises(OSError):
        ledger.clear()
    assert ledger.is_unlocked("cp-1")
    assert len(ledger) == 1

    store.fail = False
    ledger.append(_record("cp-3", 3_000))
    assert [r["checkpointId"] for r in store.get("visitedCheckpoints")] == ["cp-1", "cp-3"]
