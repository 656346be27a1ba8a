"""
Append-only visit ledger.

Insertion order is chronological order. A checkpoint is "unlocked" iff at least one
record references it; repeat visits are kept as separate records. The only removal is
`clear()`, which empties everything.

The ledger mirrors itself into a key-value store (default key `visitedCheckpoints`) as
a JSON array of camelCase records: read once at construction, rewritten after every
mutation.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Iterable

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from geoquest.domain.models import Checkpoint, UserPosition, VisitRecord
from geoquest.ledger.storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_KEY = "visitedCheckpoints"

_RECORDS_ADAPTER = TypeAdapter(list[VisitRecord])


class VisitLedger:
    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        key: str = DEFAULT_LEDGER_KEY,
        seed: Iterable[VisitRecord] | None = None,
        lock: threading.RLock | None = None,
    ):
        self._store = store if store is not None else MemoryStore()
        self._key = key
        self._lock = lock or threading.RLock()
        self._records: list[VisitRecord] = []
        self._counts: Counter[str] = Counter()

        try:
            raw = self._store.get(key)
        except ValueError as exc:
            # Corrupt blob (not JSON); start empty, the next write replaces it.
            logger.warning("Ignoring undecodable visit ledger under key %r: %s", key, exc)
            return
        if raw is None:
            if seed is not None:
                for record in seed:
                    self._push(record)
                self._persist()
                logger.info("Seeded visit ledger with %d demo records", len(self._records))
            return

        try:
            loaded = _RECORDS_ADAPTER.validate_python(raw)
        except PydanticValidationError as exc:
            # Unreadable persisted history; start empty but keep the stored blob until the next write.
            logger.warning("Ignoring unreadable visit ledger under key %r: %s", key, exc.error_count())
            return
        for record in loaded:
            self._push(record)

    def _push(self, record: VisitRecord) -> None:
        self._records.append(record)
        self._counts[record.checkpoint_id] += 1

    def _persist(self, records: list[VisitRecord] | None = None) -> None:
        records = self._records if records is None else records
        self._store.set(self._key, [r.to_wire() for r in records])

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: VisitRecord) -> None:
        """Persist the grown ledger first; memory only changes once the store write succeeded."""
        with self._lock:
            self._persist([*self._records, record])
            self._push(record)

    def all(self) -> list[VisitRecord]:
        with self._lock:
            return list(self._records)

    def is_unlocked(self, checkpoint_id: str) -> bool:
        return self._counts.get(checkpoint_id, 0) > 0

    def unlocked_ids(self) -> set[str]:
        with self._lock:
            return {k for k, v in self._counts.items() if v > 0}

    def clear(self) -> None:
        """Drop every record. Irreversible."""
        with self._lock:
            dropped = len(self._records)
            self._persist([])
            self._records.clear()
            self._counts.clear()
        logger.info("Cleared visit ledger (%d records dropped)", dropped)


def demo_visit_records(checkpoints: Iterable[Checkpoint], *, now: int, limit: int = 3) -> list[VisitRecord]:
    """Sample history so a fresh install has something to show: one visit per checkpoint, an hour apart."""
    out: list[VisitRecord] = []
    for idx, cp in enumerate(list(checkpoints)[:limit]):
        visited_at = now - (idx + 1) * 3600 * 1000
        out.append(
            VisitRecord(
                checkpoint_id=cp.id,
                visited_at_ms=visited_at,
                completed_at_ms=now - (idx + 1) * 3500 * 1000,
                method="qr" if idx % 2 == 0 else "quiz",
                position=UserPosition(
                    latitude=cp.latitude,
                    longitude=cp.longitude,
                    accuracy_m=12 + idx * 5,
                    observed_at_ms=visited_at,
                ),
            )
        )
    return out
