import sqlalchemy as sa
from prometheus_client import REGISTRY

from draftgate.audit import AuditEvent, DatabaseAuditSink
from draftgate.db.models import AIAuditLog


def _failures(action: str) -> float:
    return REGISTRY.get_sample_value('draftgate_audit_append_failures_total', {'action': action}) or 0.0


def test_events_are_stored_and_listed_oldest_first(audit_sink, intake_id):
    assert audit_sink.append(
        AuditEvent(intake_id=intake_id, action='regenerate', actor_id='doctor-1', actor_role='doctor',
                   metadata={'previous_version': 1, 'new_version': 2})
    )
    assert audit_sink.append(
        AuditEvent(intake_id=intake_id, action='reject', actor_id='doctor-2', actor_role='admin',
                   draft_id='d-1', draft_type='clinical_note', reason='<i>Incomplete</i> history')
    )

    events = audit_sink.list_events(intake_id)

    assert [event.action for event in events] == ['regenerate', 'reject']
    assert events[0].metadata == {'previous_version': 1, 'new_version': 2}
    assert events[0].created_at is not None
    assert events[1].reason == 'Incomplete history'
    assert events[1].to_dict()['draftType'] == 'clinical_note'
    assert audit_sink.list_events('another-intake') == []


def test_metadata_lands_in_the_metadata_column(audit_sink, session_factory, intake_id):
    audit_sink.append(AuditEvent(intake_id=intake_id, action='approve', actor_id='doctor-1',
                                 actor_role='doctor', metadata={'has_edits': True}))
    with session_factory() as session:
        stored = session.execute(sa.text('SELECT metadata FROM ai_audit_log')).scalar_one()
    assert 'has_edits' in stored


def test_append_failure_is_reported_not_raised(engine, session_factory):
    AIAuditLog.__table__.drop(engine)
    sink = DatabaseAuditSink(session_factory)
    before = _failures('approve')

    ok = sink.append(AuditEvent(intake_id='i-1', action='approve', actor_id='doctor-1', actor_role='doctor'))

    assert ok is False
    assert _failures('approve') == before + 1
