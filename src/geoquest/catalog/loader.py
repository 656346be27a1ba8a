"""
Seed checkpoint loader.

The seed catalog is a local JSON file (default: `data/catalogs/checkpoints.json`)
holding the fixed checkpoints present at start-up. We validate it into typed Pydantic
models so the engine can assume a consistent shape, and reject duplicate ids up front.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter

from geoquest.core.env import resolve_project_path
from geoquest.core.errors import DuplicateIdError
from geoquest.domain.models import Checkpoint


_CHECKPOINTS_ADAPTER = TypeAdapter(list[Checkpoint])


def parse_checkpoints(payload: object) -> list[Checkpoint]:
    """Validate a decoded JSON array into checkpoints (ids must be unique)."""
    checkpoints = _CHECKPOINTS_ADAPTER.validate_python(payload)
    seen: set[str] = set()
    dupes: list[str] = []
    for cp in checkpoints:
        if cp.id in seen:
            dupes.append(cp.id)
        seen.add(cp.id)
    if dupes:
        raise DuplicateIdError(dupes)
    return checkpoints


def load_checkpoints(path: str | Path) -> list[Checkpoint]:
    """Load and validate a seed checkpoint JSON file."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    return parse_checkpoints(payload)
