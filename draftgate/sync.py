"""Copy approved drafts into downstream records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from draftgate.db.models import ClinicalRecord, Intake
from draftgate.db.session import session_scope
from draftgate.sanitizer import hash_identifier
from draftgate.time_utils import utc_now

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SyncResult:
    success: bool
    error: Optional[str] = None


class DownstreamSync:
    def sync(self, intake_id: str, draft_id: str, approved_content: Any) -> SyncResult:  # pragma: no cover - interface
        raise NotImplementedError


class ClinicalRecordSync(DownstreamSync):
    """Store approved clinical note content in the patient's permanent record.

    Re-syncing the same draft overwrites its record rather than adding another.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def sync(self, intake_id: str, draft_id: str, approved_content: Any) -> SyncResult:
        try:
            with session_scope(self.session_factory) as session:
                intake = session.get(Intake, intake_id)
                patient_id = intake.patient_id if intake is not None else None
                record = session.scalars(
                    sa.select(ClinicalRecord).where(ClinicalRecord.draft_id == draft_id)
                ).first()
                if record is None:
                    session.add(
                        ClinicalRecord(
                            intake_id=intake_id,
                            draft_id=draft_id,
                            patient_id=patient_id,
                            content=approved_content,
                        )
                    )
                else:
                    record.content = approved_content
                    record.updated_at = utc_now()
        except SQLAlchemyError as exc:
            logger.warning(
                "clinical_record_sync_failed",
                intake_id=intake_id,
                draft_id=draft_id,
                error=str(exc),
            )
            return SyncResult(success=False, error="Could not update the clinical record")

        logger.info(
            "clinical_record_synced",
            intake_id=intake_id,
            draft_id=draft_id,
            patient=hash_identifier(patient_id),
        )
        return SyncResult(success=True)


__all__ = ["ClinicalRecordSync", "DownstreamSync", "SyncResult"]
