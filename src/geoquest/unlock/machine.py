"""
Checkpoint unlock flow for one user session.

Per checkpoint the persisted state is only `locked` / `unlocked`, derived from the
visit ledger. "Verification in progress" is the transient active target: selecting a
checkpoint sets it, cancelling or selecting another drops it, and nothing is written
until a verification method succeeds.

Verification methods:
- QR: the scanned text must be `checkpoint:{id}:{token}` naming a known checkpoint.
  The token is a demo/display artefact printed on the code; it is NOT a proof of
  presence and is not checked.
- Quiz: answering every question (right or wrong) completes the quiz and unlocks the
  checkpoint; the score is informational only.

This class is the only writer of visit records.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Literal, Sequence

from geoquest.catalog.store import CheckpointCatalog
from geoquest.core.errors import InvalidQrPayloadError, NotEligibleError, SensorUnavailableError, ValidationError
from geoquest.core.time import now_ms
from geoquest.discovery.proximity import NearbyCheckpoint, ProximityEngine, filter_nearby
from geoquest.domain.models import VISIT_METHODS, Question, UserPosition, VisitMethod, VisitRecord
from geoquest.ledger.visits import VisitLedger

logger = logging.getLogger(__name__)

QR_PREFIX = "checkpoint"

UnlockState = Literal["locked", "unlocked"]


def parse_qr_payload(payload: object) -> tuple[str, str]:
    """Split `checkpoint:{id}:{token}` into `(id, token)`; raise on anything else."""
    if not isinstance(payload, str):
        raise InvalidQrPayloadError(payload, "QR payload must be a string")
    parts = payload.strip().split(":", 2)
    if len(parts) != 3 or parts[0] != QR_PREFIX or not parts[1]:
        raise InvalidQrPayloadError(payload, "QR payload must look like 'checkpoint:{id}:{token}'")
    return parts[1], parts[2]


@dataclass(frozen=True)
class QuizResult:
    score: int
    total: int
    completed: bool
    record: VisitRecord | None = None


def score_quiz(questions: Sequence[Question], answers: Sequence[int]) -> int:
    """Count correct answers; every given answer must be a valid option index."""
    score = 0
    for q, answer in zip(questions, answers):
        if not 0 <= int(answer) < len(q.options):
            raise ValidationError(f"answer {answer} is not a valid option for question {q.id}")
        if int(answer) == q.correct_option_index:
            score += 1
    return score


class UnlockStateMachine:
    def __init__(
        self,
        catalog: CheckpointCatalog,
        ledger: VisitLedger,
        proximity: ProximityEngine,
        *,
        clock: Callable[[], int] = now_ms,
        lock: threading.RLock | None = None,
    ):
        self._catalog = catalog
        self._ledger = ledger
        self._proximity = proximity
        self._clock = clock
        self._lock = lock or threading.RLock()
        self._position: UserPosition | None = None
        self._active_target: str | None = None

    # ---- position + derived views ----

    @property
    def position(self) -> UserPosition | None:
        return self._position

    def update_position(self, position: UserPosition | None) -> None:
        """Replace the latest location snapshot (None when the sensor becomes unavailable)."""
        self._position = position

    @property
    def active_target(self) -> str | None:
        return self._active_target

    def is_unlocked(self, checkpoint_id: str) -> bool:
        return self._ledger.is_unlocked(checkpoint_id)

    def state(self, checkpoint_id: str) -> UnlockState:
        self._catalog.require(checkpoint_id)
        return "unlocked" if self.is_unlocked(checkpoint_id) else "locked"

    def force_eligible_ids(self) -> set[str]:
        """Ids unlocked-nearby by any already unlocked checkpoint (eligible regardless of distance)."""
        out: set[str] = set()
        for cp_id in self._ledger.unlocked_ids():
            cp = self._catalog.get(cp_id)
            if cp is not None:
                out.update(cp.unlocks_nearby)
        return out

    def nearby(self, *, buffer_m: float | None = None) -> list[NearbyCheckpoint]:
        return self._proximity.nearby(self._position, buffer_m=buffer_m, force_eligible=self.force_eligible_ids())

    def is_in_range(self, checkpoint_id: str, *, buffer_m: float | None = None) -> bool:
        cp = self._catalog.require(checkpoint_id)
        if self._position is None:
            return False
        buffer = self._proximity.buffer_m if buffer_m is None else float(buffer_m)
        hits = filter_nearby(
            self._position.coordinate, [cp], buffer_m=buffer, force_eligible=self.force_eligible_ids()
        )
        return bool(hits)

    # ---- selection ----

    def select_for_unlock(self, checkpoint_id: str, *, buffer_m: float | None = None) -> None:
        """Make `checkpoint_id` the active verification target (abandons any previous one)."""
        with self._lock:
            self._catalog.require(checkpoint_id)
            if self.is_unlocked(checkpoint_id):
                raise NotEligibleError(checkpoint_id, "already unlocked")
            if self._position is None:
                raise NotEligibleError(checkpoint_id, "current location unknown")
            if not self.is_in_range(checkpoint_id, buffer_m=buffer_m):
                raise NotEligibleError(checkpoint_id, "out of range")
            if self._active_target and self._active_target != checkpoint_id:
                logger.debug("Abandoning verification of %s", self._active_target)
            self._active_target = checkpoint_id

    def cancel(self) -> None:
        """Abandon the in-flight verification, if any. Nothing is committed."""
        self._active_target = None

    # ---- verification ----

    def verify_by_qr(self, checkpoint_id: str, scanned_payload: object) -> VisitRecord:
        self._catalog.require(checkpoint_id)
        try:
            scanned_id, _token = parse_qr_payload(scanned_payload)
        except InvalidQrPayloadError:
            logger.warning("Rejected malformed QR payload for %s", checkpoint_id)
            raise
        if scanned_id not in self._catalog:
            logger.warning("Rejected QR payload naming unknown checkpoint %r", scanned_id)
            raise InvalidQrPayloadError(scanned_payload, f"QR code refers to unknown checkpoint '{scanned_id}'")
        return self.commit_visit(checkpoint_id, "qr")

    def verify_by_quiz(
        self,
        checkpoint_id: str,
        answers: Sequence[int],
        questions: Sequence[Question] | None = None,
    ) -> QuizResult:
        """Score a quiz run; a full run (one answer per question) always unlocks."""
        cp = self._catalog.require(checkpoint_id)
        qs = list(questions) if questions is not None else list(cp.questions)
        if not qs:
            raise NotEligibleError(checkpoint_id, "no quiz available")
        if len(answers) > len(qs):
            raise ValidationError(f"got {len(answers)} answers for {len(qs)} questions")

        score = score_quiz(qs, answers)
        if len(answers) < len(qs):
            # Skipped before the last question.
            return QuizResult(score=score, total=len(qs), completed=False)

        record = self.commit_visit(checkpoint_id, "quiz")
        logger.info("Quiz completed for %s (%d/%d)", checkpoint_id, score, len(qs))
        return QuizResult(score=score, total=len(qs), completed=True, record=record)

    def commit_visit(
        self,
        checkpoint_id: str,
        method: VisitMethod,
        position: UserPosition | None = None,
    ) -> VisitRecord:
        """Append a visit record; repeat visits are recorded, not deduplicated."""
        if method not in VISIT_METHODS:
            raise ValidationError(f"unknown visit method '{method}'")
        with self._lock:
            self._catalog.require(checkpoint_id)
            snapshot = position or self._position
            if snapshot is None:
                raise SensorUnavailableError("location unavailable; enable location to record a visit")

            ts = self._clock()
            record = VisitRecord(
                checkpoint_id=checkpoint_id,
                visited_at_ms=ts,
                completed_at_ms=ts,
                method=method,
                position=snapshot,
            )
            self._ledger.append(record)
            if self._active_target == checkpoint_id:
                self._active_target = None
        logger.info("Recorded %s visit to %s", method, checkpoint_id)
        return record

    def clear_history(self) -> None:
        with self._lock:
            self._ledger.clear()
            self._active_target = None
