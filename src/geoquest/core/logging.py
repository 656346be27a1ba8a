"""
Logging setup for the API and the CLI.

The handler/formatter layout comes from the packaged `config/logging.yaml`; only the
level is decided at runtime (explicit argument, else `app.log_level` / `GEOQUEST_LOG_LEVEL`).
"""

from __future__ import annotations

import copy
import logging
import logging.config

from geoquest.config.settings import get_logging_config, get_settings


def configure_logging(level: str | None = None) -> str:
    """Apply the packaged logging config at `level`; returns the level actually used."""
    resolved = (level or get_settings().app.log_level).upper()
    if not isinstance(logging.getLevelName(resolved), int):
        raise ValueError(f"unknown log level '{resolved}'")

    # The cached YAML mapping is shared; never mutate it in place.
    config = copy.deepcopy(get_logging_config())
    config.setdefault("root", {})["level"] = resolved
    for section in ("loggers", "handlers"):
        for entry in config.get(section, {}).values():
            if isinstance(entry, dict):
                entry["level"] = resolved

    logging.config.dictConfig(config)
    return resolved
