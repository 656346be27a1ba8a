"""
Error taxonomy for the unlock engine.

Every error here is a local, user-correctable condition: the API turns them into
`{error}` responses, the CLI prints them, and the session keeps working afterwards.
`ValidationError` also subclasses `ValueError` so generic input-checking code keeps
mapping it to a 400.
"""

from __future__ import annotations


class GeoQuestError(Exception):
    """Base class for all engine errors."""

    status_code = 400


class ValidationError(GeoQuestError, ValueError):
    """Malformed input (missing coordinates, bad answer index, ...)."""


class InvalidQrPayloadError(ValidationError):
    """Scanned QR text is not `checkpoint:{id}:{token}` or names an unknown checkpoint."""

    def __init__(self, payload: object, reason: str = "invalid QR payload"):
        super().__init__(reason)
        self.payload = payload


class NotFoundError(GeoQuestError):
    status_code = 404

    def __init__(self, what: str, ident: str):
        super().__init__(f"{what} '{ident}' not found")
        self.ident = ident


class NotEligibleError(GeoQuestError):
    """Checkpoint is out of range, already unlocked, or has no quiz."""

    status_code = 409

    def __init__(self, checkpoint_id: str, reason: str):
        super().__init__(f"checkpoint '{checkpoint_id}' is not eligible: {reason}")
        self.checkpoint_id = checkpoint_id
        self.reason = reason


class DuplicateIdError(GeoQuestError):
    status_code = 409

    def __init__(self, ids: list[str]):
        super().__init__(f"checkpoint id(s) already exist: {', '.join(ids)}")
        self.ids = ids


class SensorUnavailableError(GeoQuestError):
    """No position (geolocation denied/unsupported); retry once location is enabled."""

    status_code = 503
