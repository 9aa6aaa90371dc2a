"""Concurrent decisions on the same draft: exactly one wins."""

import threading

import pytest

from draftgate.errors import AlreadyApproved, AlreadyRejected, NotFound
from draftgate.integrity import IntegrityChecker, StalenessReport
from tests.helpers import load_draft


def _interleave(monkeypatch, action):
    """Run ``action`` once, between approve's read and its conditional write."""

    fired = []

    def _is_stale(self, draft):
        if not fired:
            fired.append(True)
            action()
        return StalenessReport(stale=False)

    monkeypatch.setattr(IntegrityChecker, 'is_stale', _is_stale)
    return fired


def test_rejection_landing_mid_approval_wins(manager, session_factory, audit_sink, monkeypatch, draft_id, intake_id):
    fired = _interleave(
        monkeypatch,
        lambda: manager.reject(draft_id, 'doctor-2', 'doctor', 'Dose needs review first'),
    )

    with pytest.raises(AlreadyRejected):
        manager.approve(draft_id, 'doctor-1', 'doctor')

    assert fired
    row = load_draft(session_factory, draft_id)
    assert row.rejected_by == 'doctor-2'
    assert row.approved_at is None
    assert [event.action for event in audit_sink.list_events(intake_id)] == ['reject']


def test_regeneration_landing_mid_approval_reports_missing_draft(
    manager, session_factory, audit_sink, monkeypatch, draft_id, intake_id
):
    _interleave(monkeypatch, lambda: manager.regenerate(intake_id, 'doctor-2', 'doctor'))

    with pytest.raises(NotFound):
        manager.approve(draft_id, 'doctor-1', 'doctor')

    assert load_draft(session_factory, draft_id) is None
    assert [event.action for event in audit_sink.list_events(intake_id)] == ['regenerate']
    assert all(draft.approved_at is None for draft in manager.list_drafts(intake_id))


def test_concurrent_approvals_record_one_decision(manager, session_factory, audit_sink, monkeypatch, draft_id, intake_id):
    barrier = threading.Barrier(2, timeout=10)

    def _is_stale(self, draft):
        barrier.wait()
        return StalenessReport(stale=False)

    monkeypatch.setattr(IntegrityChecker, 'is_stale', _is_stale)

    outcomes = {}

    def _approve(actor_id):
        try:
            manager.approve(draft_id, actor_id, 'doctor')
        except AlreadyApproved as exc:
            outcomes[actor_id] = exc
        else:
            outcomes[actor_id] = 'approved'

    threads = [threading.Thread(target=_approve, args=(actor,)) for actor in ('doctor-1', 'doctor-2')]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    winners = [actor for actor, outcome in outcomes.items() if outcome == 'approved']
    losers = [actor for actor, outcome in outcomes.items() if isinstance(outcome, AlreadyApproved)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert load_draft(session_factory, draft_id).approved_by == winners[0]
    assert [event.actor_id for event in audit_sink.list_events(intake_id)] == winners
