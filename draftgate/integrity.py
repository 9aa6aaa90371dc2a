"""Detect drafts that no longer reflect the intake they were generated from."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

import structlog

from draftgate.store import DraftStore, DraftView
from draftgate.time_utils import hours_between, utc_now

logger = structlog.get_logger(__name__)

ANSWERS_CHANGED_REASON = "Patient answers have been updated since draft was generated"


def compute_answers_fingerprint(answers: Optional[Mapping[str, Any]]) -> str:
    """Return a SHA256 hex digest of ``answers`` in canonical JSON form.

    Keys are sorted so the digest does not depend on submission order.
    """

    canonical = json.dumps(answers or {}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class StalenessReport:
    stale: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"stale": self.stale}
        if self.reason:
            payload["reason"] = self.reason
        return payload


class IntegrityChecker:
    def __init__(
        self,
        store: DraftStore,
        *,
        stale_after_hours: float = 24.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.stale_after_hours = stale_after_hours
        self.clock = clock

    def compute_fingerprint(self, intake_id: str) -> str:
        return compute_answers_fingerprint(self.store.get_answers(intake_id))

    def is_stale(self, draft: DraftView) -> StalenessReport:
        """Report whether ``draft`` is too old or built from outdated answers.

        Age is checked first. A draft without a stored fingerprint is treated
        as unknown rather than stale.
        """

        age_hours = hours_between(draft.created_at, self.clock())
        if age_hours is not None and age_hours > self.stale_after_hours:
            return StalenessReport(stale=True, reason=f"Draft is {int(age_hours)} hours old")

        if not draft.input_hash:
            logger.info(
                "draft_fingerprint_missing",
                draft_id=draft.id,
                intake_id=draft.intake_id,
            )
            return StalenessReport(stale=False)

        current = self.compute_fingerprint(draft.intake_id)
        if current != draft.input_hash:
            return StalenessReport(stale=True, reason=ANSWERS_CHANGED_REASON)
        return StalenessReport(stale=False)


__all__ = [
    "ANSWERS_CHANGED_REASON",
    "IntegrityChecker",
    "StalenessReport",
    "compute_answers_fingerprint",
]
