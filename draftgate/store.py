"""Persistence access for intakes, answers and drafts.

One :class:`DraftStore` wraps one SQLAlchemy session for the duration of a
single operation. Callers own the transaction boundary through
:func:`draftgate.db.session_scope`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Session

from draftgate.db.models import DocumentDraft, Intake, IntakeAnswers
from draftgate.time_utils import isoformat, utc_now

DECISION_UNDECIDED = "undecided"
DECISION_APPROVED = "approved"
DECISION_REJECTED = "rejected"


@dataclass(frozen=True)
class DraftView:
    """Detached snapshot of a draft row, safe to use after the session closes."""

    id: str
    intake_id: str
    type: str
    content: Any
    status: str
    version: int
    is_ai_generated: bool
    model: Optional[str]
    error: Optional[str]
    input_hash: Optional[str]
    edited_content: Any
    approved_by: Optional[str]
    approved_role: Optional[str]
    approved_at: Optional[datetime]
    rejected_by: Optional[str]
    rejected_role: Optional[str]
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: DocumentDraft) -> "DraftView":
        return cls(
            id=row.id,
            intake_id=row.intake_id,
            type=row.type,
            content=row.content,
            status=row.status,
            version=row.version,
            is_ai_generated=bool(row.is_ai_generated),
            model=row.model,
            error=row.error,
            input_hash=row.input_hash,
            edited_content=row.edited_content,
            approved_by=row.approved_by,
            approved_role=row.approved_role,
            approved_at=row.approved_at,
            rejected_by=row.rejected_by,
            rejected_role=row.rejected_role,
            rejected_at=row.rejected_at,
            rejection_reason=row.rejection_reason,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @property
    def decision_state(self) -> str:
        if self.approved_at is not None:
            return DECISION_APPROVED
        if self.rejected_at is not None:
            return DECISION_REJECTED
        return DECISION_UNDECIDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "intakeId": self.intake_id,
            "type": self.type,
            "content": self.content,
            "editedContent": self.edited_content,
            "status": self.status,
            "decisionState": self.decision_state,
            "version": self.version,
            "model": self.model,
            "error": self.error,
            "approvedBy": self.approved_by,
            "approvedAt": isoformat(self.approved_at),
            "rejectedBy": self.rejected_by,
            "rejectedAt": isoformat(self.rejected_at),
            "rejectionReason": self.rejection_reason,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class DraftStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    # Intakes -------------------------------------------------------------

    def get_intake(self, intake_id: str) -> Optional[Intake]:
        return self.session.get(Intake, intake_id)

    def create_intake(self, *, service_type: str, patient_id: Optional[str] = None) -> Intake:
        intake = Intake(service_type=service_type, patient_id=patient_id)
        self.session.add(intake)
        self.session.flush()
        return intake

    def get_answers(self, intake_id: str) -> Optional[Dict[str, Any]]:
        row = self.session.get(IntakeAnswers, intake_id)
        if row is None:
            return None
        return dict(row.answers or {})

    def save_answers(self, intake_id: str, answers: Dict[str, Any]) -> None:
        row = self.session.get(IntakeAnswers, intake_id)
        if row is None:
            self.session.add(IntakeAnswers(intake_id=intake_id, answers=dict(answers)))
        else:
            row.answers = dict(answers)
            row.updated_at = utc_now()
        self.session.flush()

    # Drafts --------------------------------------------------------------

    def get_draft(self, draft_id: str) -> Optional[DraftView]:
        row = self.session.get(DocumentDraft, draft_id, populate_existing=True)
        if row is None:
            return None
        return DraftView.from_row(row)

    def list_generated_drafts(self, intake_id: str) -> List[DraftView]:
        stmt = (
            sa.select(DocumentDraft)
            .where(DocumentDraft.intake_id == intake_id, DocumentDraft.is_ai_generated.is_(True))
            .order_by(DocumentDraft.created_at.desc(), DocumentDraft.version.desc())
        )
        return [DraftView.from_row(row) for row in self.session.scalars(stmt)]

    def max_generated_version(self, intake_id: str) -> int:
        stmt = sa.select(sa.func.coalesce(sa.func.max(DocumentDraft.version), 0)).where(
            DocumentDraft.intake_id == intake_id,
            DocumentDraft.is_ai_generated.is_(True),
        )
        return int(self.session.execute(stmt).scalar_one())

    def delete_undecided_generated_drafts(self, intake_id: str) -> int:
        stmt = (
            sa.delete(DocumentDraft)
            .where(
                DocumentDraft.intake_id == intake_id,
                DocumentDraft.is_ai_generated.is_(True),
                DocumentDraft.approved_at.is_(None),
                DocumentDraft.rejected_at.is_(None),
            )
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount or 0

    def add_draft(
        self,
        *,
        intake_id: str,
        kind: str,
        content: Any,
        version: int,
        input_hash: Optional[str],
        model: Optional[str] = None,
        status: str = "ready",
        error: Optional[str] = None,
    ) -> DraftView:
        now = utc_now()
        row = DocumentDraft(
            intake_id=intake_id,
            type=kind,
            content=content,
            version=version,
            input_hash=input_hash,
            model=model,
            status=status,
            error=error,
            is_ai_generated=True,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        self.session.flush()
        return DraftView.from_row(row)

    def decide(self, draft_id: str, values: Dict[str, Any]) -> int:
        """Write decision ``values`` only if the draft is still undecided.

        Returns the number of rows changed: ``1`` when this caller won the
        decision, ``0`` when the draft is gone or another decision landed
        first.
        """

        stmt = (
            sa.update(DocumentDraft)
            .where(
                DocumentDraft.id == draft_id,
                DocumentDraft.approved_at.is_(None),
                DocumentDraft.rejected_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount or 0


__all__ = [
    "DECISION_APPROVED",
    "DECISION_REJECTED",
    "DECISION_UNDECIDED",
    "DraftStore",
    "DraftView",
]
