from __future__ import annotations

# Proximity engine: decides which checkpoints are "in range" for a user position and,
# when nothing is, fabricates a small set of local checkpoints so discovery is never empty.
#
# Data flow:
# - position (UserPosition) + catalog (CheckpointCatalog) -> filter_nearby -> sorted candidates
# - empty candidates + no generated set yet -> generate_synthetic -> catalog.append_generated
#
# The engine is synchronous and does no I/O, so it can be re-run on every position update.

import logging
import math
import random
import threading
from dataclasses import dataclass
from typing import Callable, Iterable

from geoquest.catalog.store import CheckpointCatalog
from geoquest.config.settings import Settings, get_settings
from geoquest.core.errors import ValidationError
from geoquest.core.geo import GeoPoint, destination_point, haversine_m
from geoquest.core.time import now_ms
from geoquest.domain.models import Checkpoint, UserPosition

logger = logging.getLogger(__name__)


def round_half_up(x: float) -> int:
    """Round to the nearest integer, halves away from -inf (browser `Math.round`)."""
    return int(math.floor(float(x) + 0.5))


@dataclass(frozen=True)
class NearbyCheckpoint:
    checkpoint: Checkpoint
    # Exact distance; the range test uses this, never the rounded one.
    distance_m: float

    @property
    def display_distance_m(self) -> int:
        return round_half_up(self.distance_m)


def filter_nearby(
    origin: GeoPoint,
    checkpoints: Iterable[Checkpoint],
    *,
    buffer_m: float,
    force_eligible: Iterable[str] = (),
) -> list[NearbyCheckpoint]:
    """Return checkpoints within `radius + buffer_m` of `origin` (or force-eligible), nearest first."""
    forced = set(force_eligible)
    scored: list[tuple[float, int, Checkpoint]] = []
    for idx, cp in enumerate(checkpoints):
        d = haversine_m(origin, cp.coordinate)
        if d <= cp.radius_m + buffer_m or cp.id in forced:
            scored.append((d, idx, cp))
    # Catalog index breaks distance ties.
    scored.sort(key=lambda t: (t[0], t[1]))
    return [NearbyCheckpoint(checkpoint=cp, distance_m=d) for d, _, cp in scored]


class ProximityEngine:
    """Session-scoped nearby computation plus one-shot synthetic checkpoint generation."""

    def __init__(
        self,
        catalog: CheckpointCatalog,
        *,
        settings: Settings | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], int] = now_ms,
        lock: threading.RLock | None = None,
    ):
        self._catalog = catalog
        self._settings = settings or get_settings()
        self._rng = rng or random.Random()
        self._clock = clock
        self._lock = lock or threading.RLock()

    @property
    def catalog(self) -> CheckpointCatalog:
        return self._catalog

    @property
    def buffer_m(self) -> float:
        return float(self._settings.proximity.buffer_m)

    def nearby(
        self,
        position: UserPosition | None,
        *,
        buffer_m: float | None = None,
        force_eligible: Iterable[str] = (),
    ) -> list[NearbyCheckpoint]:
        """Compute in-range checkpoints for `position`, generating local ones once if none are."""
        if position is None:
            # No location yet (sensor denied or still warming up): nothing is nearby.
            return []

        buffer = self._settings.proximity.buffer_m if buffer_m is None else float(buffer_m)
        forced = frozenset(force_eligible)

        # Check-then-generate must be atomic per session.
        with self._lock:
            found = filter_nearby(
                position.coordinate, self._catalog.list_all(), buffer_m=buffer, force_eligible=forced
            )
            if found:
                return found
            if self._catalog.has_generated:
                logger.debug("Nothing in range and catalog already holds generated checkpoints; not regenerating")
                return found

            cfg = self._settings.generation
            generated = self.generate_synthetic(position, count=cfg.count, max_distance_m=cfg.max_distance_m)
            self._catalog.append_generated(generated)
            logger.info(
                "No checkpoints within range of (%.5f, %.5f); generated %d local checkpoints",
                position.latitude,
                position.longitude,
                len(generated),
            )
            return filter_nearby(
                position.coordinate, self._catalog.list_all(), buffer_m=buffer, force_eligible=forced
            )

    def generate_synthetic(
        self,
        position: UserPosition,
        *,
        count: int | None = None,
        max_distance_m: float | None = None,
    ) -> list[Checkpoint]:
        """Scatter `count` checkpoints at random bearing/distance around `position`.

        Does not touch the catalog; `nearby` appends the result.
        """
        cfg = self._settings.generation
        n = cfg.count if count is None else int(count)
        max_d = cfg.max_distance_m if max_distance_m is None else float(max_distance_m)
        min_d = cfg.min_distance_m
        if n < 1:
            raise ValidationError("count must be >= 1")
        if max_d <= min_d:
            raise ValidationError(f"max_distance_m must be greater than {min_d:g}")

        stamp = self._clock()
        rng = self._rng
        items: list[Checkpoint] = []
        for i in range(n):
            d = min_d + rng.random() * (max_d - min_d)
            bearing = rng.random() * 2 * math.pi
            pt = destination_point(position.coordinate, bearing, d)

            items.append(
                Checkpoint(
                    id=f"{cfg.id_prefix}{stamp}-{i}",
                    name=f"Local Checkpoint {i + 1}",
                    description="Auto-generated checkpoint",
                    address=f"Approx. {pt.lat:.5f}, {pt.lon:.5f}",
                    latitude=round(pt.lat, 6),
                    longitude=round(pt.lon, 6),
                    radius_m=cfg.radius_base_m + round_half_up(rng.random() * cfg.radius_span_m),
                    type="landmark",
                    difficulty="medium" if rng.random() < cfg.medium_probability else "easy",
                    reward=f"{cfg.reward_base_coins + round_half_up(rng.random() * cfg.reward_span_coins)} coins",
                )
            )
        return items
