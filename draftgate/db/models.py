"""SQLAlchemy models for intakes, generated drafts and the compliance audit log."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base


Base = declarative_base()

DRAFT_KINDS = ("clinical_note", "med_cert", "repeat_rx", "consult")
GENERATION_STATUSES = ("pending", "ready", "failed")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class Intake(Base):
    __tablename__ = "intakes"

    id = sa.Column(String, primary_key=True, default=_new_id)
    patient_id = sa.Column(String, nullable=True, index=True)
    service_type = sa.Column(String, nullable=False)
    status = sa.Column(String, nullable=False, server_default=sa.text("'pending'"), default="pending")
    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class IntakeAnswers(Base):
    __tablename__ = "intake_answers"

    intake_id = sa.Column(String, ForeignKey("intakes.id", ondelete="CASCADE"), primary_key=True)
    answers = sa.Column(sa.JSON, nullable=False, default=dict)
    updated_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class DocumentDraft(Base):
    __tablename__ = "document_drafts"

    id = sa.Column(String, primary_key=True, default=_new_id)
    intake_id = sa.Column(String, ForeignKey("intakes.id", ondelete="CASCADE"), nullable=False)
    type = sa.Column(String, nullable=False)
    content = sa.Column(sa.JSON, nullable=False, default=dict)
    model = sa.Column(String, nullable=True)
    is_ai_generated = sa.Column(Boolean, nullable=False, server_default=sa.true(), default=True)
    status = sa.Column(String, nullable=False, server_default=sa.text("'pending'"), default="pending")
    error = sa.Column(Text, nullable=True)
    approved_by = sa.Column(String, nullable=True)
    approved_role = sa.Column(String, nullable=True)
    approved_at = sa.Column(DateTime(timezone=True), nullable=True)
    rejected_by = sa.Column(String, nullable=True)
    rejected_role = sa.Column(String, nullable=True)
    rejected_at = sa.Column(DateTime(timezone=True), nullable=True)
    rejection_reason = sa.Column(Text, nullable=True)
    version = sa.Column(Integer, nullable=False, server_default=sa.text("1"), default=1)
    edited_content = sa.Column(sa.JSON(none_as_null=True), nullable=True)
    input_hash = sa.Column(String, nullable=True)
    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        sa.Index("idx_document_drafts_intake", "intake_id", "is_ai_generated"),
        sa.CheckConstraint(
            "NOT (approved_at IS NOT NULL AND rejected_at IS NOT NULL)",
            name="ck_document_drafts_single_decision",
        ),
    )


class AIAuditLog(Base):
    __tablename__ = "ai_audit_log"

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    intake_id = sa.Column(String, nullable=False)
    action = sa.Column(String, nullable=False)
    draft_type = sa.Column(String, nullable=True)
    draft_id = sa.Column(String, nullable=True)
    actor_id = sa.Column(String, nullable=True)
    actor_role = sa.Column(String, nullable=True)
    # ``metadata`` is reserved on declarative classes.
    details = sa.Column("metadata", sa.JSON, nullable=False, default=dict)
    reason = sa.Column(Text, nullable=True)
    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        sa.Index("idx_ai_audit_log_intake", "intake_id", "created_at"),
        sa.Index("idx_ai_audit_log_action", "action"),
    )


class ClinicalRecord(Base):
    """Approved clinical note content copied into the patient's permanent record."""

    __tablename__ = "clinical_records"

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    intake_id = sa.Column(String, nullable=False, index=True)
    draft_id = sa.Column(String, nullable=False, unique=True)
    patient_id = sa.Column(String, nullable=True)
    content = sa.Column(sa.JSON, nullable=False)
    created_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = sa.Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


__all__ = [
    "AIAuditLog",
    "Base",
    "ClinicalRecord",
    "DRAFT_KINDS",
    "DocumentDraft",
    "GENERATION_STATUSES",
    "Intake",
    "IntakeAnswers",
]
