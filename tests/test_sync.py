import sqlalchemy as sa

from draftgate.db.models import ClinicalRecord
from draftgate.sync import ClinicalRecordSync


def _records(session_factory):
    with session_factory() as session:
        return list(session.scalars(sa.select(ClinicalRecord)))


def test_sync_creates_record_for_patient(session_factory, intake_id, draft_id):
    result = ClinicalRecordSync(session_factory).sync(intake_id, draft_id, {'text': 'approved note'})

    assert result.success is True
    records = _records(session_factory)
    assert len(records) == 1
    assert records[0].patient_id == 'patient-1'
    assert records[0].content == {'text': 'approved note'}


def test_resync_overwrites_existing_record(session_factory, intake_id, draft_id):
    sync = ClinicalRecordSync(session_factory)
    sync.sync(intake_id, draft_id, {'text': 'first'})
    sync.sync(intake_id, draft_id, {'text': 'second'})

    records = _records(session_factory)
    assert [record.content for record in records] == [{'text': 'second'}]


def test_storage_error_becomes_failed_result(engine, session_factory, intake_id, draft_id):
    ClinicalRecord.__table__.drop(engine)

    result = ClinicalRecordSync(session_factory).sync(intake_id, draft_id, {'text': 'note'})

    assert result.success is False
    assert result.error
