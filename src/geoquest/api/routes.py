"""
API routes.

Endpoints:
- GET    `/api/checkpoints`: all checkpoints.
- GET    `/api/checkpoints/nearby`: checkpoints within `radius` (+ their own geofence) of a point.
- GET    `/api/checkpoints/{id}`: one checkpoint.
- POST   `/api/visits`: record a visit for a user.
- GET    `/api/visits/history`: a user's visits, in ledger order.
- DELETE `/api/visits/history`: clear a user's visits.
- GET    `/api/visits/stats`: derived visit statistics.
- GET    `/api/visits/export`: downloadable history document.
- POST   `/api/qr-code/verify`: validate a scanned `checkpoint:{id}:{token}` string.

Every user id gets its own session; `anonymous` is just another user id and only sees
its own visits. Only `POST /api/visits` opens sessions: read endpoints answer from the
seed catalog and an empty history for users with nothing stored. Checkpoint lookups
accept an optional `userId` so a session's generated checkpoints resolve too.
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from geoquest.config.settings import get_settings
from geoquest.core.errors import InvalidQrPayloadError, ValidationError
from geoquest.core.geo import GeoPoint
from geoquest.discovery.proximity import filter_nearby
from geoquest.domain.models import VISIT_METHODS, Checkpoint, UserPosition
from geoquest.history.aggregate import compute_stats, export_history
from geoquest.session import DEFAULT_USER_ID, SessionRegistry
from geoquest.unlock.machine import parse_qr_payload

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache
def _registry() -> SessionRegistry:
    return SessionRegistry(settings=get_settings())


def _parse_float(raw: str | None, name: str) -> float:
    if raw is None or not str(raw).strip():
        raise ValidationError("latitude and longitude required")
    try:
        value = float(raw)
    except ValueError as e:
        raise ValidationError(f"{name} must be numeric") from e
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be numeric")
    return value


def _checkpoints_for(user_id: str | None) -> list[Checkpoint]:
    """A known user's session catalog (seeds + generated), else the seed catalog."""
    session = _registry().find(user_id) if user_id else None
    return session.catalog.list_all() if session is not None else _registry().seeds


def _lookup(checkpoints: list[Checkpoint], checkpoint_id: str) -> Checkpoint | None:
    return next((cp for cp in checkpoints if cp.id == checkpoint_id), None)


@router.get("/api/checkpoints")
def get_checkpoints(userId: str | None = None) -> list[dict]:
    """Seeded checkpoints, or a user's session catalog (including generated ones) when `userId` is given."""
    return [cp.to_wire() for cp in _checkpoints_for(userId)]


@router.get("/api/checkpoints/nearby")
def get_nearby_checkpoints(
    latitude: str | None = None,
    longitude: str | None = None,
    radius: str | None = None,
) -> list[dict]:
    """Checkpoints whose distance is within `radius + checkpoint.radius`, nearest first."""
    lat = _parse_float(latitude, "latitude")
    lon = _parse_float(longitude, "longitude")
    if not -90 <= lat <= 90 or not -180 <= lon <= 180:
        raise ValidationError("latitude/longitude out of range")

    radius_m = get_settings().proximity.api_default_radius_m
    if radius is not None and str(radius).strip():
        try:
            radius_m = float(radius)
        except ValueError as e:
            raise ValidationError("radius must be numeric") from e
        if not math.isfinite(radius_m) or radius_m < 0:
            raise ValidationError("radius must be a non-negative number")

    hits = filter_nearby(GeoPoint(lat=lat, lon=lon), _registry().seeds, buffer_m=radius_m)
    return [{**h.checkpoint.to_wire(), "distance": h.display_distance_m} for h in hits]


@router.get("/api/checkpoints/{checkpoint_id}")
def get_checkpoint(checkpoint_id: str, userId: str | None = None):
    cp = _lookup(_checkpoints_for(userId), checkpoint_id)
    if cp is None:
        return JSONResponse(status_code=404, content={"error": "not found"})
    return cp.to_wire()


@router.post("/api/visits")
def post_visit(payload: dict[str, Any] = Body(...)) -> dict:
    """Record a visit and report the reward plus the checkpoints it unlocks nearby."""
    checkpoint_id = payload.get("checkpointId")
    method = payload.get("method")
    location = payload.get("location")
    user_id = payload.get("userId")
    if not checkpoint_id or not method or not location:
        raise ValidationError("missing fields")
    if user_id is not None and not isinstance(user_id, str):
        raise ValidationError("userId must be a string")
    if method not in VISIT_METHODS:
        raise ValidationError(f"method must be one of {', '.join(VISIT_METHODS)}")
    try:
        position = UserPosition.model_validate(location)
    except PydanticValidationError as e:
        raise ValidationError(f"invalid location: {e.error_count()} error(s)") from e

    session = _registry().get(user_id or DEFAULT_USER_ID)
    record = session.unlock.commit_visit(str(checkpoint_id), method, position)
    cp = session.catalog.require(record.checkpoint_id)
    return {
        "success": True,
        "id": record.id,
        "reward": cp.reward,
        "unlockedNearby": list(cp.unlocks_nearby),
    }


@router.get("/api/visits/history")
def get_visit_history(userId: str | None = None) -> list[dict]:
    session = _registry().find(userId)
    if session is None:
        return []
    return [{**r.to_wire(), "userId": session.user_id} for r in session.ledger.all()]


@router.delete("/api/visits/history")
def delete_visit_history(userId: str | None = None) -> dict:
    session = _registry().find(userId)
    if session is not None:
        session.unlock.clear_history()
    return {"success": True}


@router.get("/api/visits/stats")
def get_visit_stats(userId: str | None = None) -> dict:
    session = _registry().find(userId)
    records = session.ledger.all() if session is not None else []
    return compute_stats(records).to_wire()


@router.get("/api/visits/export")
def get_visit_export(userId: str | None = None) -> dict:
    session = _registry().find(userId)
    if session is None:
        return export_history([], lookup=lambda _id: None)
    return export_history(session.ledger.all(), lookup=session.catalog.get)


@router.post("/api/qr-code/verify")
def post_qr_verify(payload: dict[str, Any] = Body(...)):
    qr_data = payload.get("qrData")
    user_id = payload.get("userId")
    if not qr_data or not isinstance(qr_data, str) or (user_id is not None and not isinstance(user_id, str)):
        return JSONResponse(status_code=400, content={"valid": False})
    try:
        checkpoint_id, _token = parse_qr_payload(qr_data)
    except InvalidQrPayloadError:
        return {"valid": False}
    cp = _lookup(_checkpoints_for(user_id), checkpoint_id)
    if cp is None:
        return {"valid": False}
    return {"valid": True, "checkpointId": cp.id, "checkpointName": cp.name}
