"""Prometheus counters for decisions, gate outcomes and best-effort side effects."""

from __future__ import annotations

from prometheus_client import REGISTRY, Counter


def _get_or_create_metric(metric_cls, name: str, documentation: str, labelnames):
    existing = REGISTRY._names_to_collectors.get(name)
    if existing is not None:
        return existing
    return metric_cls(name, documentation, labelnames=labelnames)


DRAFT_DECISIONS_TOTAL = _get_or_create_metric(
    Counter,
    "draftgate_draft_decisions_total",
    "Lifecycle operations on clinical drafts by action and outcome",
    ("action", "outcome"),
)

SAFETY_GATE_OUTCOMES_TOTAL = _get_or_create_metric(
    Counter,
    "draftgate_safety_gate_outcomes_total",
    "Medication request validations by outcome",
    ("outcome",),
)

AUDIT_APPEND_FAILURES_TOTAL = _get_or_create_metric(
    Counter,
    "draftgate_audit_append_failures_total",
    "Audit events that could not be persisted",
    ("action",),
)

DOWNSTREAM_SYNC_FAILURES_TOTAL = _get_or_create_metric(
    Counter,
    "draftgate_downstream_sync_failures_total",
    "Approved drafts whose downstream record sync failed",
    ("kind",),
)


__all__ = [
    "AUDIT_APPEND_FAILURES_TOTAL",
    "DOWNSTREAM_SYNC_FAILURES_TOTAL",
    "DRAFT_DECISIONS_TOTAL",
    "SAFETY_GATE_OUTCOMES_TOTAL",
]
