"""Intake submission and answer updates.

Repeat-prescription answers pass the safety gate before anything is written;
a rejected submission leaves no intake behind and so can never reach draft
generation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from draftgate.answers import DEFAULT_NORMALIZER, AnswerNormalizer
from draftgate.db.models import DRAFT_KINDS, GENERATION_STATUSES
from draftgate.db.session import session_scope
from draftgate.errors import InvalidInput, NotFound, PersistenceFailure
from draftgate.integrity import compute_answers_fingerprint
from draftgate.safety_gate import DEFAULT_VALIDATOR, SafetyGateValidator
from draftgate.sanitizer import hash_identifier
from draftgate.store import DraftStore, DraftView

logger = structlog.get_logger(__name__)

SERVICE_REPEAT_RX = "repeat_rx"


@dataclass(frozen=True)
class IntakeSubmission:
    intake_id: str
    service_type: str
    fingerprint: str


class IntakeService:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        validator: SafetyGateValidator = DEFAULT_VALIDATOR,
        normalizer: AnswerNormalizer = DEFAULT_NORMALIZER,
    ) -> None:
        self.session_factory = session_factory
        self.validator = validator
        self.normalizer = normalizer

    def submit_repeat_prescription(
        self,
        patient_id: Optional[str],
        answers: Mapping[str, Any],
    ) -> IntakeSubmission:
        """Gate ``answers`` and, if they pass, create a repeat-prescription intake.

        Raises :class:`~draftgate.errors.Blocked`,
        :class:`~draftgate.errors.RequiresEscalation` or
        :class:`~draftgate.errors.InvalidInput` without writing anything when
        the gate refuses the request.
        """

        self.validator.validate_or_raise(answers)
        normalized = self.normalizer.normalize(answers)
        try:
            with session_scope(self.session_factory) as session:
                store = DraftStore(session)
                intake = store.create_intake(service_type=SERVICE_REPEAT_RX, patient_id=patient_id)
                store.save_answers(intake.id, normalized)
                intake_id = intake.id
        except SQLAlchemyError as exc:
            logger.exception("intake_submit_failed", patient=hash_identifier(patient_id))
            raise PersistenceFailure("Could not save your request; please try again") from exc

        logger.info("repeat_rx_intake_submitted", intake_id=intake_id, patient=hash_identifier(patient_id))
        return IntakeSubmission(
            intake_id=intake_id,
            service_type=SERVICE_REPEAT_RX,
            fingerprint=compute_answers_fingerprint(normalized),
        )

    def update_answers(
        self,
        intake_id: str,
        answers: Mapping[str, Any],
        *,
        patient_id: Optional[str] = None,
    ) -> str:
        """Replace the stored answers for ``intake_id`` and return the new fingerprint.

        Drafts generated from the previous answers become stale. When
        ``patient_id`` is given the intake must belong to that patient.
        """

        try:
            with session_scope(self.session_factory) as session:
                store = DraftStore(session)
                intake = store.get_intake(intake_id)
                if intake is None or (patient_id is not None and intake.patient_id != patient_id):
                    raise NotFound("Intake not found", details={"intakeId": intake_id})
                if intake.service_type == SERVICE_REPEAT_RX:
                    self.validator.validate_or_raise(answers)
                normalized = self.normalizer.normalize(answers)
                store.save_answers(intake_id, normalized)
        except SQLAlchemyError as exc:
            logger.exception("intake_answers_update_failed", intake_id=intake_id)
            raise PersistenceFailure("Could not update the answers; please try again") from exc

        logger.info("intake_answers_updated", intake_id=intake_id)
        return compute_answers_fingerprint(normalized)

    def record_generated_draft(
        self,
        intake_id: str,
        kind: str,
        content: Any,
        *,
        version: Optional[int] = None,
        model: Optional[str] = None,
        status: str = "ready",
        error: Optional[str] = None,
    ) -> DraftView:
        """Persist a machine-generated draft stamped with the current answers fingerprint.

        Without an explicit ``version`` the draft joins the latest generation
        cycle (version 1 for a fresh intake).
        """

        if kind not in DRAFT_KINDS:
            raise InvalidInput(f"Unknown draft kind {kind!r}", details={"allowed": list(DRAFT_KINDS)})
        if status not in GENERATION_STATUSES:
            raise InvalidInput(f"Unknown draft status {status!r}", details={"allowed": list(GENERATION_STATUSES)})

        try:
            with session_scope(self.session_factory) as session:
                store = DraftStore(session)
                if store.get_intake(intake_id) is None:
                    raise NotFound("Intake not found", details={"intakeId": intake_id})
                if version is None:
                    version = store.max_generated_version(intake_id) or 1
                draft = store.add_draft(
                    intake_id=intake_id,
                    kind=kind,
                    content=content,
                    version=version,
                    input_hash=compute_answers_fingerprint(store.get_answers(intake_id)),
                    model=model,
                    status=status,
                    error=error,
                )
        except SQLAlchemyError as exc:
            logger.exception("draft_record_failed", intake_id=intake_id, kind=kind)
            raise PersistenceFailure("Could not store the generated draft") from exc

        logger.info("draft_recorded", intake_id=intake_id, draft_id=draft.id, kind=kind, version=version)
        return draft


__all__ = ["IntakeService", "IntakeSubmission", "SERVICE_REPEAT_RX"]
