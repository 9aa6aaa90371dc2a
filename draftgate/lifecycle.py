"""Doctor decisions on generated clinical drafts.

A draft starts undecided and moves exactly once, to approved or rejected.
Both transitions are terminal. Regeneration never touches a decided draft:
it discards the undecided ones and asks the generation service for a new
version.

Decision writes are a single conditional ``UPDATE`` guarded on both decision
timestamps still being ``NULL``. Whichever caller's update lands first wins;
the other sees zero affected rows and is told why by re-reading the row.

Audit appends and downstream syncs run after the decision has committed. They
are best effort: their outcome is reported in
:attr:`LifecycleResult.side_effects` and never turns a committed decision
into a failure.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from draftgate.audit import AuditEvent, AuditSink
from draftgate.config import Settings, get_settings
from draftgate.db.session import session_scope
from draftgate.errors import (
    AlreadyApproved,
    AlreadyDecided,
    AlreadyRejected,
    DownstreamSyncFailure,
    DraftGateError,
    GenerationFailure,
    InvalidInput,
    NotFound,
    PersistenceFailure,
    Unauthorized,
)
from draftgate.generation import GenerationResult, GenerationService
from draftgate.integrity import IntegrityChecker, StalenessReport
from draftgate.metrics import DOWNSTREAM_SYNC_FAILURES_TOTAL, DRAFT_DECISIONS_TOTAL
from draftgate.sanitizer import strip_markup
from draftgate.store import DECISION_APPROVED, DECISION_REJECTED, DraftStore, DraftView
from draftgate.sync import DownstreamSync, SyncResult
from draftgate.time_utils import utc_now

logger = structlog.get_logger(__name__)

ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTION_REGENERATE = "regenerate"

EFFECT_AUDIT = "audit"
EFFECT_DOWNSTREAM_SYNC = "downstream_sync"


@dataclass(frozen=True)
class SideEffectOutcome:
    name: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name, "success": self.success}
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class LifecycleResult:
    """Primary outcome of a lifecycle operation plus its best-effort side effects."""

    success: bool
    intake_id: str
    draft_id: Optional[str] = None
    version: Optional[int] = None
    staleness: Optional[StalenessReport] = None
    side_effects: List[SideEffectOutcome] = field(default_factory=list)

    def side_effect(self, name: str) -> Optional[SideEffectOutcome]:
        for outcome in self.side_effects:
            if outcome.name == name:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "intakeId": self.intake_id,
            "draftId": self.draft_id,
            "version": self.version,
            "sideEffects": [outcome.to_dict() for outcome in self.side_effects],
        }
        if self.staleness is not None:
            payload["staleness"] = self.staleness.to_dict()
        return payload


def _content_length(value: Any) -> Optional[int]:
    if value is None:
        return None
    return len(json.dumps(value, default=str))


class DraftLifecycleManager:
    def __init__(
        self,
        session_factory: sessionmaker,
        audit_sink: AuditSink,
        generator: GenerationService,
        *,
        downstream: Optional[Mapping[str, DownstreamSync]] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session_factory = session_factory
        self.audit_sink = audit_sink
        self.generator = generator
        self.downstream: Dict[str, DownstreamSync] = dict(downstream or {})
        self.settings = settings or get_settings()
        self.clock = clock

    # Read operations -----------------------------------------------------

    def list_drafts(self, intake_id: str) -> List[DraftView]:
        """Return machine-generated drafts for ``intake_id``, newest first."""

        with self._persistence_guard("list_drafts", intake_id=intake_id):
            with session_scope(self.session_factory) as session:
                return DraftStore(session).list_generated_drafts(intake_id)

    def check_staleness(self, draft_id: str) -> StalenessReport:
        with self._persistence_guard("check_staleness", draft_id=draft_id):
            with session_scope(self.session_factory) as session:
                store = DraftStore(session)
                draft = store.get_draft(draft_id)
                if draft is None:
                    raise NotFound("Draft not found", details={"draftId": draft_id})
                return self._integrity_checker(store).is_stale(draft)

    # Decisions -----------------------------------------------------------

    def approve(
        self,
        draft_id: str,
        actor_id: str,
        actor_role: str,
        edited_content: Any = None,
    ) -> LifecycleResult:
        with self._counted(ACTION_APPROVE):
            self._require_decision_role(actor_role, ACTION_APPROVE, actor_id)

            with self._persistence_guard(ACTION_APPROVE, draft_id=draft_id, actor_id=actor_id):
                with session_scope(self.session_factory) as session:
                    store = DraftStore(session)
                    draft = self._load_undecided(store, draft_id)
                    staleness = self._advisory_staleness(store, draft)
                    now = self.clock()
                    changed = store.decide(
                        draft_id,
                        {
                            "approved_by": actor_id,
                            "approved_role": actor_role,
                            "approved_at": now,
                            "edited_content": edited_content,
                            "updated_at": now,
                        },
                    )
                    if changed != 1:
                        self._raise_lost_decision(store, draft_id)

            logger.info(
                "draft_approved",
                draft_id=draft_id,
                intake_id=draft.intake_id,
                actor_id=actor_id,
                has_edits=edited_content is not None,
            )

            result = LifecycleResult(
                success=True,
                intake_id=draft.intake_id,
                draft_id=draft_id,
                version=draft.version,
                staleness=staleness,
            )
            result.side_effects.append(
                self._append_audit(
                    AuditEvent(
                        intake_id=draft.intake_id,
                        action=ACTION_APPROVE,
                        actor_id=actor_id,
                        actor_role=actor_role,
                        draft_id=draft_id,
                        draft_type=draft.type,
                        metadata=self._approval_metadata(draft, edited_content, staleness),
                        created_at=now,
                    )
                )
            )

            sync = self.downstream.get(draft.type)
            if sync is not None:
                approved_content = edited_content if edited_content is not None else draft.content
                result.side_effects.append(self._run_sync(sync, draft, approved_content))
            return result

    def reject(self, draft_id: str, actor_id: str, actor_role: str, reason: Optional[str]) -> LifecycleResult:
        with self._counted(ACTION_REJECT):
            self._require_decision_role(actor_role, ACTION_REJECT, actor_id)

            cleaned = strip_markup(reason).strip() if isinstance(reason, str) else ""
            minimum = self.settings.min_rejection_reason_chars
            if len(cleaned) < minimum:
                raise InvalidInput(
                    f"Rejection reason must be at least {minimum} characters",
                    details={"field": "reason", "minLength": minimum},
                )

            with self._persistence_guard(ACTION_REJECT, draft_id=draft_id, actor_id=actor_id):
                with session_scope(self.session_factory) as session:
                    store = DraftStore(session)
                    draft = self._load_undecided(store, draft_id)
                    now = self.clock()
                    changed = store.decide(
                        draft_id,
                        {
                            "rejected_by": actor_id,
                            "rejected_role": actor_role,
                            "rejected_at": now,
                            "rejection_reason": cleaned,
                            "updated_at": now,
                        },
                    )
                    if changed != 1:
                        self._raise_lost_decision(store, draft_id)

            logger.info("draft_rejected", draft_id=draft_id, intake_id=draft.intake_id, actor_id=actor_id)

            result = LifecycleResult(
                success=True,
                intake_id=draft.intake_id,
                draft_id=draft_id,
                version=draft.version,
            )
            result.side_effects.append(
                self._append_audit(
                    AuditEvent(
                        intake_id=draft.intake_id,
                        action=ACTION_REJECT,
                        actor_id=actor_id,
                        actor_role=actor_role,
                        draft_id=draft_id,
                        draft_type=draft.type,
                        metadata={"version": draft.version},
                        reason=cleaned,
                        created_at=now,
                    )
                )
            )
            return result

    def regenerate(self, intake_id: str, actor_id: str, actor_role: str) -> LifecycleResult:
        """Discard undecided drafts for ``intake_id`` and request the next version.

        The deletion and the audit event stand even when generation fails;
        they record what was attempted.
        """

        with self._counted(ACTION_REGENERATE):
            self._require_decision_role(actor_role, ACTION_REGENERATE, actor_id)

            with self._persistence_guard(ACTION_REGENERATE, intake_id=intake_id, actor_id=actor_id):
                with session_scope(self.session_factory) as session:
                    store = DraftStore(session)
                    if store.get_intake(intake_id) is None:
                        raise NotFound("Intake not found", details={"intakeId": intake_id})
                    previous_version = store.max_generated_version(intake_id)
                    deleted = store.delete_undecided_generated_drafts(intake_id)

            new_version = previous_version + 1
            logger.info(
                "drafts_regeneration_requested",
                intake_id=intake_id,
                actor_id=actor_id,
                previous_version=previous_version,
                new_version=new_version,
                deleted_drafts=deleted,
            )

            audit_outcome = self._append_audit(
                AuditEvent(
                    intake_id=intake_id,
                    action=ACTION_REGENERATE,
                    actor_id=actor_id,
                    actor_role=actor_role,
                    metadata={
                        "previous_version": previous_version,
                        "new_version": new_version,
                        "deleted_drafts": deleted,
                    },
                    created_at=self.clock(),
                )
            )

            generation = self._run_generation(intake_id, new_version)
            if not generation.success:
                raise GenerationFailure(
                    generation.error or "Draft generation failed",
                    guidance="Try regenerating again in a few minutes.",
                    details={
                        "intakeId": intake_id,
                        "previousVersion": previous_version,
                        "newVersion": new_version,
                        "auditRecorded": audit_outcome.success,
                    },
                )

            return LifecycleResult(
                success=True,
                intake_id=intake_id,
                version=new_version,
                side_effects=[audit_outcome],
            )

    # Internals -----------------------------------------------------------

    def _integrity_checker(self, store: DraftStore) -> IntegrityChecker:
        return IntegrityChecker(store, stale_after_hours=self.settings.stale_after_hours, clock=self.clock)

    def _require_decision_role(self, actor_role: Optional[str], action: str, actor_id: Optional[str]) -> None:
        if not self.settings.is_decision_role(actor_role):
            logger.warning("draft_action_forbidden", action=action, actor_id=actor_id, actor_role=actor_role)
            raise Unauthorized("Only doctors and admins can perform this action", details={"action": action})

    def _load_undecided(self, store: DraftStore, draft_id: str) -> DraftView:
        draft = store.get_draft(draft_id)
        if draft is None:
            raise NotFound("Draft not found", details={"draftId": draft_id})
        self._raise_if_decided(draft)
        return draft

    @staticmethod
    def _raise_if_decided(draft: DraftView) -> None:
        state = draft.decision_state
        if state == DECISION_APPROVED:
            raise AlreadyApproved("Draft has already been approved", details={"draftId": draft.id})
        if state == DECISION_REJECTED:
            raise AlreadyRejected(
                "Draft has been rejected; regenerate to create a new version",
                details={"draftId": draft.id},
            )

    def _raise_lost_decision(self, store: DraftStore, draft_id: str) -> None:
        """Explain why a conditional decision write changed no rows."""

        current = store.get_draft(draft_id)
        if current is None:
            raise NotFound("Draft not found", details={"draftId": draft_id})
        self._raise_if_decided(current)
        raise AlreadyDecided("Draft decision could not be recorded", details={"draftId": draft_id})

    def _advisory_staleness(self, store: DraftStore, draft: DraftView) -> Optional[StalenessReport]:
        try:
            report = self._integrity_checker(store).is_stale(draft)
        except SQLAlchemyError as exc:
            logger.warning("draft_staleness_check_failed", draft_id=draft.id, error=str(exc))
            return None
        if report.stale:
            logger.warning(
                "approving_stale_draft",
                draft_id=draft.id,
                intake_id=draft.intake_id,
                reason=report.reason,
            )
        return report

    def _approval_metadata(
        self,
        draft: DraftView,
        edited_content: Any,
        staleness: Optional[StalenessReport],
    ) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"has_edits": edited_content is not None, "version": draft.version}
        try:
            metadata["original_content_length"] = _content_length(draft.content)
            metadata["edited_content_length"] = _content_length(edited_content)
        except (TypeError, ValueError) as exc:
            logger.warning("approval_metadata_incomplete", draft_id=draft.id, error=str(exc))
        if staleness is not None and staleness.stale:
            metadata["stale"] = True
            metadata["stale_reason"] = staleness.reason
        return metadata

    def _append_audit(self, event: AuditEvent) -> SideEffectOutcome:
        if self.audit_sink.append(event):
            return SideEffectOutcome(name=EFFECT_AUDIT, success=True)
        return SideEffectOutcome(name=EFFECT_AUDIT, success=False, error="Audit event could not be stored")

    def _run_sync(self, sync: DownstreamSync, draft: DraftView, approved_content: Any) -> SideEffectOutcome:
        try:
            outcome: SyncResult = sync.sync(draft.intake_id, draft.id, approved_content)
        except Exception as exc:
            logger.exception("downstream_sync_raised", draft_id=draft.id, kind=draft.type)
            outcome = SyncResult(success=False, error=str(exc) or exc.__class__.__name__)

        if outcome.success:
            return SideEffectOutcome(name=EFFECT_DOWNSTREAM_SYNC, success=True)

        DOWNSTREAM_SYNC_FAILURES_TOTAL.labels(kind=draft.type).inc()
        logger.error(
            "downstream_sync_failed",
            code=DownstreamSyncFailure.code,
            draft_id=draft.id,
            intake_id=draft.intake_id,
            kind=draft.type,
            error=outcome.error,
        )
        return SideEffectOutcome(name=EFFECT_DOWNSTREAM_SYNC, success=False, error=outcome.error)

    def _run_generation(self, intake_id: str, version: int) -> GenerationResult:
        try:
            return self.generator.generate(intake_id, version, True)
        except Exception as exc:
            logger.exception("generation_raised", intake_id=intake_id, version=version)
            return GenerationResult(success=False, error=str(exc) or "Draft generation failed")

    @contextmanager
    def _persistence_guard(self, action: str, **context: Any) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception("draft_store_failed", action=action, **context)
            raise PersistenceFailure(
                "The draft store is unavailable; please try again",
                details={"action": action},
            ) from exc

    @contextmanager
    def _counted(self, action: str) -> Iterator[None]:
        try:
            yield
        except DraftGateError as exc:
            DRAFT_DECISIONS_TOTAL.labels(action=action, outcome=exc.code).inc()
            raise
        DRAFT_DECISIONS_TOTAL.labels(action=action, outcome="success").inc()


__all__ = [
    "ACTION_APPROVE",
    "ACTION_REGENERATE",
    "ACTION_REJECT",
    "DraftLifecycleManager",
    "EFFECT_AUDIT",
    "EFFECT_DOWNSTREAM_SYNC",
    "LifecycleResult",
    "SideEffectOutcome",
]
