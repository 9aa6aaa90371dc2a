"""Synchronous safety gate for repeat-prescription submissions.

The gate runs in the request path that accepts a repeat-prescription intake
and decides one of four outcomes:

``valid``
    The request may proceed to a doctor's queue.
``invalid``
    Required answers are missing or malformed.
``requires_consult``
    The input is fine but the request belongs in a full consultation (new
    medication or a changed dose).
``blocked``
    The medication is a controlled substance this channel never prescribes.

Checks run in a fixed order and stop at the first failure. Blocked and
escalated outcomes always carry guidance telling the patient what to do
instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import structlog

from draftgate.answers import AnswerNormalizer, DEFAULT_NORMALIZER
from draftgate.errors import Blocked, InvalidInput, RequiresEscalation
from draftgate.metrics import SAFETY_GATE_OUTCOMES_TOTAL
from draftgate.substances import DEFAULT_MATCHER, MANUAL_ENTRY_CODE, SubstanceMatcher, guidance_for

logger = structlog.get_logger(__name__)

OUTCOME_VALID = "valid"
OUTCOME_INVALID = "invalid"
OUTCOME_REQUIRES_CONSULT = "requires_consult"
OUTCOME_BLOCKED = "blocked"

CONSULT_GUIDANCE = "Book a general consultation so a doctor can assess this medication with you."

MISSING_MEDICATION_MESSAGE = "Please select your medication from the list or enter it manually."
MISSING_NAME_MESSAGE = "Please tell us the name of your medication."
PRESCRIBED_BEFORE_MESSAGE = "Please confirm whether you have been prescribed this medication before."
DOSE_CHANGED_MESSAGE = "Please confirm whether your dose has changed recently."
NEW_MEDICATION_MESSAGE = (
    "Repeat prescriptions are only for medicines you already take. "
    "New medications need a full consultation."
)
DOSE_CHANGE_MESSAGE = "A recent dose change needs a full consultation before a new script is issued."
LAST_PRESCRIBED_MESSAGE = "Please tell us when this medication was last prescribed."


@dataclass(frozen=True)
class GateResult:
    valid: bool
    outcome: str
    error: Optional[str] = None
    requires_consult: bool = False
    guidance: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "valid": self.valid,
            "requiresConsult": self.requires_consult,
            "outcome": self.outcome,
        }
        if self.error:
            payload["error"] = self.error
        if self.guidance:
            payload["guidance"] = self.guidance
        if self.category:
            payload["category"] = self.category
        return payload


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return bool(value)
    return True


def _invalid(message: str) -> GateResult:
    return GateResult(valid=False, outcome=OUTCOME_INVALID, error=message)


def _consult(message: str) -> GateResult:
    return GateResult(
        valid=False,
        outcome=OUTCOME_REQUIRES_CONSULT,
        error=message,
        requires_consult=True,
        guidance=CONSULT_GUIDANCE,
    )


def _blocked(label: str, category: str) -> GateResult:
    return GateResult(
        valid=False,
        outcome=OUTCOME_BLOCKED,
        error=f"This medication appears to be a {label} and cannot be requested online.",
        guidance=guidance_for(category),
        category=category,
    )


class SafetyGateValidator:
    """Decide whether a medication request may enter the repeat-prescription channel."""

    def __init__(
        self,
        matcher: SubstanceMatcher = DEFAULT_MATCHER,
        normalizer: AnswerNormalizer = DEFAULT_NORMALIZER,
    ) -> None:
        self.matcher = matcher
        self.normalizer = normalizer

    def validate(self, answers: Optional[Mapping[str, Any]]) -> GateResult:
        result = self._evaluate(answers)
        SAFETY_GATE_OUTCOMES_TOTAL.labels(outcome=result.outcome).inc()
        if result.outcome == OUTCOME_BLOCKED:
            logger.warning("safety_gate_blocked", category=result.category)
        elif result.outcome != OUTCOME_VALID:
            logger.info("safety_gate_rejected", outcome=result.outcome)
        return result

    def validate_or_raise(self, answers: Optional[Mapping[str, Any]]) -> GateResult:
        """Validate ``answers`` and raise the matching domain error on failure."""

        result = self.validate(answers)
        if result.valid:
            return result
        details = {"requiresConsult": result.requires_consult, "outcome": result.outcome}
        if result.outcome == OUTCOME_BLOCKED:
            details["category"] = result.category
            raise Blocked(result.error or "Blocked", guidance=result.guidance, details=details)
        if result.outcome == OUTCOME_REQUIRES_CONSULT:
            raise RequiresEscalation(result.error or "Consultation required", guidance=result.guidance, details=details)
        raise InvalidInput(result.error or "Invalid request", details=details)

    def _evaluate(self, answers: Optional[Mapping[str, Any]]) -> GateResult:
        normalized = self.normalizer.normalize(answers)

        code = _text(normalized.get("amt_code"))
        if code is None:
            return _invalid(MISSING_MEDICATION_MESSAGE)

        display = _text(normalized.get("medication_display"))
        name = _text(normalized.get("medication_name"))
        if display is None and name is None:
            return _invalid(MISSING_NAME_MESSAGE)

        prescribed_before = normalized.get("prescribed_before")
        if not isinstance(prescribed_before, bool):
            return _invalid(PRESCRIBED_BEFORE_MESSAGE)
        dose_changed = normalized.get("dose_changed")
        if not isinstance(dose_changed, bool):
            return _invalid(DOSE_CHANGED_MESSAGE)

        if prescribed_before is not True:
            return _consult(NEW_MEDICATION_MESSAGE)
        if dose_changed is not False:
            return _consult(DOSE_CHANGE_MESSAGE)

        if code.upper() != MANUAL_ENTRY_CODE and self.matcher.is_blocked_code(code):
            return _blocked("controlled substance", "catalogue_code")

        for candidate in (display, name):
            match = self.matcher.find_match(candidate)
            if match is not None:
                return _blocked(match.label, match.category)

        if not _has_value(normalized.get("last_prescribed")):
            return _invalid(LAST_PRESCRIBED_MESSAGE)

        return GateResult(valid=True, outcome=OUTCOME_VALID)


DEFAULT_VALIDATOR = SafetyGateValidator()


def validate_medication_request(answers: Optional[Mapping[str, Any]]) -> GateResult:
    return DEFAULT_VALIDATOR.validate(answers)


__all__ = [
    "DEFAULT_VALIDATOR",
    "GateResult",
    "OUTCOME_BLOCKED",
    "OUTCOME_INVALID",
    "OUTCOME_REQUIRES_CONSULT",
    "OUTCOME_VALID",
    "SafetyGateValidator",
    "validate_medication_request",
]
