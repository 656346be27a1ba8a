"""
Domain models (Pydantic).

These types are the stable "contract" between layers:
- location snapshots from the position collaborator (`UserPosition`)
- catalog entities (`Checkpoint`, `Question`)
- ledger entries (`VisitRecord`) and the statistics derived from them (`VisitStats`)

Python attributes are snake_case; the JSON wire format (REST payloads and the
browser-side `visitedCheckpoints` blob) is camelCase. Field aliases bridge the two,
and both spellings are accepted on input.
"""

from __future__ import annotations

from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from geoquest.core.geo import GeoPoint
from geoquest.core.time import now_ms

CheckpointType = Literal["landmark", "museum", "restaurant", "natural", "adventure"]
Difficulty = Literal["easy", "medium", "hard"]
VisitMethod = Literal["qr", "quiz", "manual"]

VISIT_METHODS: tuple[VisitMethod, ...] = ("qr", "quiz", "manual")


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        """JSON-ready dict using camelCase keys, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UserPosition(WireModel):
    """Latest location snapshot; the engine keeps no history of these."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy_m: float = Field(0.0, ge=0, alias="accuracy")
    observed_at_ms: int = Field(default_factory=now_ms, alias="timestamp")

    @property
    def coordinate(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lon=self.longitude)


class Question(WireModel):
    id: str
    text: str
    options: list[str] = Field(..., min_length=2)
    correct_option_index: int = Field(..., alias="correctAnswer")

    @model_validator(mode="after")
    def _validate_answer_index(self) -> "Question":
        if not 0 <= self.correct_option_index < len(self.options):
            raise ValueError(
                f"question {self.id}: correctAnswer {self.correct_option_index} is not a valid option index"
            )
        return self


class Checkpoint(WireModel):
    """A point of interest with a geofence radius and optional verification quiz."""

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    address: str | None = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    radius_m: float = Field(..., ge=0, alias="radius")
    type: CheckpointType = "landmark"
    difficulty: Difficulty = "easy"
    reward: str | None = None
    unlocks_nearby: list[str] = Field(default_factory=list, alias="unlocksNearby")
    questions: list[Question] = Field(default_factory=list)

    @field_validator("unlocks_nearby")
    @classmethod
    def _dedupe_unlocks(cls, ids: list[str]) -> list[str]:
        return list(dict.fromkeys(i.strip() for i in ids if i and i.strip()))

    @property
    def coordinate(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lon=self.longitude)


class VisitRecord(WireModel):
    """One completed visit. Immutable once created."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    checkpoint_id: str = Field(..., min_length=1, alias="checkpointId")
    visited_at_ms: int = Field(..., alias="visitedAt")
    completed_at_ms: int | None = Field(default=None, alias="completedAt")
    method: VisitMethod
    position: UserPosition = Field(..., alias="location")


class VisitStats(WireModel):
    total_visits: int = Field(0, alias="totalVisits")
    unique_checkpoints: int = Field(0, alias="uniqueCheckpoints")
    count_by_method: dict[VisitMethod, int] = Field(default_factory=dict, alias="countByMethod")
    total_distance_m: float = Field(0.0, alias="totalDistanceMeters")
