"""Clinical draft lifecycle and repeat-prescription safety gating."""

from draftgate.answers import AnswerNormalizer, normalize_answers
from draftgate.audit import AuditEvent, AuditSink, DatabaseAuditSink
from draftgate.integrity import IntegrityChecker, StalenessReport, compute_answers_fingerprint
from draftgate.lifecycle import DraftLifecycleManager, LifecycleResult, SideEffectOutcome
from draftgate.safety_gate import GateResult, SafetyGateValidator, validate_medication_request
from draftgate.substances import SubstanceMatch, SubstanceMatcher

__all__ = [
    "AnswerNormalizer",
    "AuditEvent",
    "AuditSink",
    "DatabaseAuditSink",
    "DraftLifecycleManager",
    "GateResult",
    "IntegrityChecker",
    "LifecycleResult",
    "SafetyGateValidator",
    "SideEffectOutcome",
    "StalenessReport",
    "SubstanceMatch",
    "SubstanceMatcher",
    "compute_answers_fingerprint",
    "normalize_answers",
    "validate_medication_request",
]
