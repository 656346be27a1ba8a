"""
In-memory checkpoint catalog for one session.

Seeded checkpoints come first in their original order; generated checkpoints follow in
creation order. Ids are unique for the catalog's lifetime. Only the proximity engine
appends (generated) checkpoints.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from geoquest.core.errors import DuplicateIdError, NotFoundError
from geoquest.domain.models import Checkpoint

logger = logging.getLogger(__name__)


class CheckpointCatalog:
    def __init__(self, seeded: Iterable[Checkpoint], *, lock: threading.RLock | None = None):
        self._lock = lock or threading.RLock()
        self._by_id: dict[str, Checkpoint] = {}
        self._order: list[str] = []
        self._generated_ids: list[str] = []
        for cp in seeded:
            if cp.id in self._by_id:
                raise DuplicateIdError([cp.id])
            self._by_id[cp.id] = cp
            self._order.append(cp.id)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, checkpoint_id: object) -> bool:
        return checkpoint_id in self._by_id

    def get(self, checkpoint_id: str) -> Checkpoint | None:
        return self._by_id.get(checkpoint_id)

    def require(self, checkpoint_id: str) -> Checkpoint:
        cp = self._by_id.get(checkpoint_id)
        if cp is None:
            raise NotFoundError("checkpoint", checkpoint_id)
        return cp

    def list_all(self) -> list[Checkpoint]:
        with self._lock:
            return [self._by_id[i] for i in self._order]

    @property
    def has_generated(self) -> bool:
        """True once a generation round has been appended to this catalog."""
        return bool(self._generated_ids)

    def generated(self) -> list[Checkpoint]:
        with self._lock:
            return [self._by_id[i] for i in self._generated_ids]

    def append_generated(self, checkpoints: Iterable[Checkpoint]) -> None:
        """Append a batch of generated checkpoints (all-or-nothing on duplicate ids)."""
        batch = list(checkpoints)
        with self._lock:
            seen: set[str] = set()
            dupes: list[str] = []
            for cp in batch:
                if cp.id in self._by_id or cp.id in seen:
                    dupes.append(cp.id)
                seen.add(cp.id)
            if dupes:
                raise DuplicateIdError(dupes)

            for cp in batch:
                self._by_id[cp.id] = cp
                self._order.append(cp.id)
                self._generated_ids.append(cp.id)
        logger.info("Appended %d generated checkpoints (catalog size=%d)", len(batch), len(self._order))
