# src/geoquest/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/geoquest/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `GEOQUEST_CONFIG_PATH`
- environment variables (`GEOQUEST_LOG_LEVEL`, `GEOQUEST_STORAGE_DIR`, `GEOQUEST_STORAGE_BACKEND`)

Design rule:
- Tuning knobs (buffers, generation ranges, reward spans) live in YAML, not in engine code.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from geoquest.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `geoquest.config`."""
    text = resources.files("geoquest.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "GeoQuest"
    timezone: str = "America/New_York"
    log_level: str = "INFO"


class CatalogSettings(BaseModel):
    path: str = "data/catalogs/checkpoints.json"


class ProximitySettings(BaseModel):
    buffer_m: float = Field(100_000, ge=0)
    api_default_radius_m: float = Field(5000, ge=0)


class GenerationSettings(BaseModel):
    count: int = Field(6, ge=1)
    min_distance_m: float = Field(200, ge=0)
    max_distance_m: float = Field(3000, gt=0)
    medium_probability: float = Field(0.3, ge=0, le=1)
    radius_base_m: float = Field(100, ge=0)
    radius_span_m: float = Field(200, ge=0)
    reward_base_coins: int = Field(5, ge=0)
    reward_span_coins: int = Field(10, ge=0)
    id_prefix: str = "gen-"

    @model_validator(mode="after")
    def _validate_range(self) -> "GenerationSettings":
        if self.max_distance_m <= self.min_distance_m:
            raise ValueError("generation.max_distance_m must be greater than generation.min_distance_m")
        return self


class StorageSettings(BaseModel):
    backend: Literal["file", "memory"] = "file"
    dir: str = ".data/geoquest"
    ledger_key: str = "visitedCheckpoints"


class HistorySettings(BaseModel):
    seed_demo_visits: bool = False


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Only these keys are read from the environment; everything else lives in YAML.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("GEOQUEST_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    storage_dir = os.getenv("GEOQUEST_STORAGE_DIR")
    if storage_dir:
        data.setdefault("storage", {})["dir"] = storage_dir

    backend = os.getenv("GEOQUEST_STORAGE_BACKEND")
    if backend:
        data.setdefault("storage", {})["backend"] = backend.strip().lower()

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("GEOQUEST_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
