"""
Project-root and `.env` helpers.

The API, the CLI and the tests start from different working directories, yet settings
hold relative paths (`data/catalogs/checkpoints.json`, `.data/geoquest`). Those paths are
resolved against the repo root found here, and a repo-local `.env` is loaded once.

Root lookup order:
1. `GEOQUEST_PROJECT_ROOT`
2. the directory holding `GEOQUEST_ENV_FILE`
3. the first parent of the CWD (then of this file) that looks like a checkout
4. the CWD
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

_ROOT_MARKERS = (".env", ".git", "pyproject.toml")
_SEED_CATALOG = Path("data") / "catalogs" / "checkpoints.json"


def _is_checkout(path: Path) -> bool:
    if any((path / marker).exists() for marker in _ROOT_MARKERS):
        return True
    return (path / _SEED_CATALOG).is_file()


def _find_checkout(start: Path) -> Path | None:
    start = start.resolve()
    return next((p for p in (start, *start.parents) if _is_checkout(p)), None)


def _env_file_override() -> Path | None:
    raw = os.getenv("GEOQUEST_ENV_FILE")
    return Path(raw).expanduser().resolve() if raw else None


@lru_cache
def get_project_root() -> Path:
    """Return the repo root used for relative settings paths (cached)."""
    explicit = os.getenv("GEOQUEST_PROJECT_ROOT")
    if explicit:
        return Path(explicit).expanduser().resolve()

    env_file = _env_file_override()
    if env_file is not None:
        return env_file.parent

    found = _find_checkout(Path.cwd()) or _find_checkout(Path(__file__).parent)
    return found or Path.cwd().resolve()


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load the project `.env` once, without overriding variables already set."""
    try:
        from dotenv import load_dotenv
    except ImportError:
        return None

    env_path = _env_file_override() or get_project_root() / ".env"
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    """Resolve `path` against the project root unless it is already absolute."""
    p = Path(path).expanduser()
    return p if p.is_absolute() else (get_project_root() / p).resolve()
