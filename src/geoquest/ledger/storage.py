from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Protocol

"""
Key-value persistence for session state.

The ledger only needs "read a JSON blob at start-up, rewrite it after each change",
which is what browser local storage gives the web client. Two backends:
- `MemoryStore`: process-local dict (tests, throwaway sessions).
- `JsonFileStore`: one `<key>.json` file per key under a base directory.
"""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()
        for k, v in (initial or {}).items():
            self.set(k, v)

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._data.get(key)
        # Stored serialized so callers never share mutable state with the store.
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value, ensure_ascii=False)
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStore:
    """A filesystem-backed store: `<base_dir>/<key>.json`."""

    def __init__(self, base_dir: Path):
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _key_path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        if not safe.strip("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._base_dir / f"{safe}.json"

    def get(self, key: str) -> Any | None:
        path = self._key_path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def set(self, key: str, value: Any) -> None:
        """Write a JSON-serializable value via a temporary file + atomic replace."""
        path = self._key_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(value, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self._key_path(key).unlink(missing_ok=True)
