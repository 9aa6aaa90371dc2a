import pytest
import sqlalchemy as sa

from draftgate.db.models import Intake, IntakeAnswers
from draftgate.errors import Blocked, InvalidInput, NotFound, RequiresEscalation
from draftgate.integrity import compute_answers_fingerprint
from tests.helpers import REPEAT_RX_ANSWERS, load_draft


def _intake_count(session_factory) -> int:
    with session_factory() as session:
        return session.execute(sa.select(sa.func.count()).select_from(Intake)).scalar_one()


def test_submission_stores_normalized_answers(intake_service, session_factory):
    submission = intake_service.submit_repeat_prescription(
        'patient-9',
        {
            'amtCode': '1234567',
            'medicationDisplay': 'Metformin 500 mg tablet',
            'prescribedBefore': True,
            'doseChanged': False,
            'lastPrescribed': 'under_3_months',
        },
    )

    assert submission.service_type == 'repeat_rx'
    with session_factory() as session:
        intake = session.get(Intake, submission.intake_id)
        answers = session.get(IntakeAnswers, submission.intake_id).answers
    assert intake.patient_id == 'patient-9'
    assert answers['amt_code'] == '1234567'
    assert answers['amtCode'] == '1234567'
    assert submission.fingerprint == compute_answers_fingerprint(answers)


@pytest.mark.parametrize(
    'overrides, error',
    [
        ({'medication_display': 'Endone 5 mg tablet', 'medication_name': 'endone'}, Blocked),
        ({'prescribed_before': False}, RequiresEscalation),
        ({'last_prescribed': ''}, InvalidInput),
    ],
)
def test_refused_submissions_write_nothing(intake_service, session_factory, overrides, error):
    with pytest.raises(error):
        intake_service.submit_repeat_prescription('patient-1', dict(REPEAT_RX_ANSWERS, **overrides))
    assert _intake_count(session_factory) == 0


def test_update_answers_changes_fingerprint(intake_service, intake_id):
    original = compute_answers_fingerprint(dict(REPEAT_RX_ANSWERS))
    updated = intake_service.update_answers(intake_id, dict(REPEAT_RX_ANSWERS, last_prescribed='6_12_months'))
    assert updated != original


def test_update_answers_is_gated_for_repeat_prescriptions(intake_service, session_factory, intake_id):
    with pytest.raises(Blocked):
        intake_service.update_answers(intake_id, dict(REPEAT_RX_ANSWERS, medication_display='Xanax 0.5mg'))
    with session_factory() as session:
        assert session.get(IntakeAnswers, intake_id).answers['medication_display'] == 'Atorvastatin 20 mg tablet'


def test_update_answers_checks_owner(intake_service, intake_id):
    with pytest.raises(NotFound):
        intake_service.update_answers(intake_id, dict(REPEAT_RX_ANSWERS), patient_id='patient-2')
    with pytest.raises(NotFound):
        intake_service.update_answers('missing', dict(REPEAT_RX_ANSWERS))


def test_recorded_draft_joins_latest_version(intake_service, session_factory, intake_id):
    first = intake_service.record_generated_draft(intake_id, 'clinical_note', {'text': 'v1'})
    second = intake_service.record_generated_draft(intake_id, 'repeat_rx', {'items': []}, version=4)
    third = intake_service.record_generated_draft(intake_id, 'med_cert', {'days': 1})

    assert (first.version, second.version, third.version) == (1, 4, 4)
    stored = load_draft(session_factory, first.id)
    assert stored.is_ai_generated is True
    assert stored.input_hash == compute_answers_fingerprint(dict(REPEAT_RX_ANSWERS))
    assert first.decision_state == 'undecided'


def test_recorded_draft_rejects_unknown_kind_and_intake(intake_service, intake_id):
    with pytest.raises(InvalidInput):
        intake_service.record_generated_draft(intake_id, 'poem', {})
    with pytest.raises(InvalidInput):
        intake_service.record_generated_draft(intake_id, 'clinical_note', {}, status='done')
    with pytest.raises(NotFound):
        intake_service.record_generated_draft('missing', 'clinical_note', {})
