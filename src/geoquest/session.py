"""
Session wiring.

A `Session` bundles the per-user state (catalog + ledger) with the engine objects that
operate on it, all sharing one re-entrant lock so that mutations within a session are
serialized. Sessions never share mutable state; only the validated seed checkpoint
list is reused across them.

`SessionRegistry` hands out one session per user id (created on first use).
"""

from __future__ import annotations

import logging
import random
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from geoquest.catalog.loader import load_checkpoints
from geoquest.catalog.store import CheckpointCatalog
from geoquest.config.settings import Settings, get_settings
from geoquest.core.env import resolve_project_path
from geoquest.core.errors import ValidationError
from geoquest.core.time import now_ms
from geoquest.discovery.proximity import ProximityEngine
from geoquest.domain.models import Checkpoint
from geoquest.ledger.storage import JsonFileStore, KeyValueStore, MemoryStore
from geoquest.ledger.visits import VisitLedger, demo_visit_records
from geoquest.unlock.machine import UnlockStateMachine

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "anonymous"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def _normalize_user_id(user_id: str | None) -> str:
    if user_id is not None and not isinstance(user_id, str):
        raise ValidationError("userId must be a string")
    return (user_id or "").strip() or DEFAULT_USER_ID


@dataclass
class Session:
    user_id: str
    catalog: CheckpointCatalog
    ledger: VisitLedger
    proximity: ProximityEngine
    unlock: UnlockStateMachine
    lock: threading.RLock


def build_store(settings: Settings, user_id: str = DEFAULT_USER_ID) -> KeyValueStore:
    """Create the persistence backend for one user's session."""
    if settings.storage.backend == "memory":
        return MemoryStore()
    base = resolve_project_path(settings.storage.dir)
    safe_user = _UNSAFE_CHARS.sub("_", user_id).strip(".") or "_"
    return JsonFileStore(Path(base) / safe_user)


def open_session(
    user_id: str = DEFAULT_USER_ID,
    *,
    settings: Settings | None = None,
    seeds: list[Checkpoint] | None = None,
    store: KeyValueStore | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], int] = now_ms,
) -> Session:
    settings = settings or get_settings()
    if seeds is None:
        seeds = load_checkpoints(settings.catalog.path)
    if store is None:
        store = build_store(settings, user_id)

    lock = threading.RLock()
    catalog = CheckpointCatalog(seeds, lock=lock)
    demo = demo_visit_records(seeds, now=clock()) if settings.history.seed_demo_visits else None
    ledger = VisitLedger(store, key=settings.storage.ledger_key, seed=demo, lock=lock)
    proximity = ProximityEngine(catalog, settings=settings, rng=rng, clock=clock, lock=lock)
    unlock = UnlockStateMachine(catalog, ledger, proximity, clock=clock, lock=lock)
    logger.debug("Opened session for %r (%d checkpoints, %d visits)", user_id, len(catalog), len(ledger))
    return Session(user_id=user_id, catalog=catalog, ledger=ledger, proximity=proximity, unlock=unlock, lock=lock)


class SessionRegistry:
    """One isolated session per user id."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        seeds: list[Checkpoint] | None = None,
        store_factory: Callable[[str], KeyValueStore] | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._settings = settings or get_settings()
        self._seeds = seeds if seeds is not None else load_checkpoints(self._settings.catalog.path)
        self._store_factory = store_factory or (lambda uid: build_store(self._settings, uid))
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    @property
    def seeds(self) -> list[Checkpoint]:
        return list(self._seeds)

    def get(self, user_id: str | None = None) -> Session:
        """Return the user's session, opening it on first use."""
        uid = _normalize_user_id(user_id)
        with self._lock:
            session = self._sessions.get(uid)
            if session is None:
                session = self._open(uid, self._store_factory(uid))
            return session

    def find(self, user_id: str | None = None) -> Session | None:
        """Like `get`, but never opens a session for a user with no stored history.

        Read-only endpoints use this so unknown user ids do not accumulate sessions.
        """
        uid = _normalize_user_id(user_id)
        with self._lock:
            session = self._sessions.get(uid)
            if session is not None:
                return session
            store = self._store_factory(uid)
            try:
                stored = store.get(self._settings.storage.ledger_key)
            except ValueError:
                # Undecodable blob: let the ledger log it and start empty.
                stored = []
            if stored is None:
                return None
            return self._open(uid, store)

    def _open(self, uid: str, store: KeyValueStore) -> Session:
        session = open_session(uid, settings=self._settings, seeds=self._seeds, store=store, clock=self._clock)
        self._sessions[uid] = session
        return session

    def user_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)
