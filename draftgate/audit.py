"""Append-only compliance log for draft decisions and regenerations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import sqlalchemy as sa
import structlog
from sqlalchemy.orm import sessionmaker

from draftgate.db.models import AIAuditLog
from draftgate.db.session import session_scope
from draftgate.metrics import AUDIT_APPEND_FAILURES_TOTAL
from draftgate.sanitizer import strip_markup
from draftgate.time_utils import isoformat, utc_now

logger = structlog.get_logger(__name__)


@dataclass
class AuditEvent:
    intake_id: str
    action: str
    actor_id: Optional[str]
    actor_role: Optional[str]
    draft_id: Optional[str] = None
    draft_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intakeId": self.intake_id,
            "action": self.action,
            "draftId": self.draft_id,
            "draftType": self.draft_type,
            "actorId": self.actor_id,
            "actorRole": self.actor_role,
            "metadata": dict(self.metadata),
            "reason": self.reason,
            "createdAt": isoformat(self.created_at),
        }


class AuditSink:
    """Interface consumed by the lifecycle manager.

    ``append`` reports success as a boolean and must not raise; a failed
    append is logged by the implementation.
    """

    def append(self, event: AuditEvent) -> bool:  # pragma: no cover - interface
        raise NotImplementedError


class DatabaseAuditSink(AuditSink):
    """Write audit events to ``ai_audit_log`` in their own transaction.

    Each append commits independently of the operation that produced it, so a
    failure on either side cannot take the other down with it.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def append(self, event: AuditEvent) -> bool:
        reason = strip_markup(event.reason) if event.reason else None
        try:
            with session_scope(self.session_factory) as session:
                session.add(
                    AIAuditLog(
                        intake_id=event.intake_id,
                        action=event.action,
                        draft_type=event.draft_type,
                        draft_id=event.draft_id,
                        actor_id=event.actor_id,
                        actor_role=event.actor_role,
                        details=dict(event.metadata),
                        reason=reason,
                        created_at=event.created_at or utc_now(),
                    )
                )
        except Exception:
            AUDIT_APPEND_FAILURES_TOTAL.labels(action=event.action).inc()
            # The log line is the only remaining record of this event.
            logger.exception("audit_append_failed", event=event.to_dict())
            return False
        return True

    def list_events(self, intake_id: str) -> List[AuditEvent]:
        """Return the audit history for ``intake_id``, oldest first."""

        with session_scope(self.session_factory) as session:
            stmt = (
                sa.select(AIAuditLog)
                .where(AIAuditLog.intake_id == intake_id)
                .order_by(AIAuditLog.created_at.asc(), AIAuditLog.id.asc())
            )
            return [
                AuditEvent(
                    intake_id=row.intake_id,
                    action=row.action,
                    actor_id=row.actor_id,
                    actor_role=row.actor_role,
                    draft_id=row.draft_id,
                    draft_type=row.draft_type,
                    metadata=dict(row.details or {}),
                    reason=row.reason,
                    created_at=row.created_at,
                )
                for row in session.scalars(stmt)
            ]


__all__ = ["AuditEvent", "AuditSink", "DatabaseAuditSink"]
