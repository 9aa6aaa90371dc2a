import pytest
from prometheus_client import REGISTRY

from draftgate.errors import Blocked, InvalidInput, RequiresEscalation
from draftgate.safety_gate import (
    OUTCOME_BLOCKED,
    OUTCOME_INVALID,
    OUTCOME_REQUIRES_CONSULT,
    OUTCOME_VALID,
    SafetyGateValidator,
    validate_medication_request,
)
from tests.helpers import REPEAT_RX_ANSWERS


def _answers(**overrides):
    answers = dict(REPEAT_RX_ANSWERS)
    for key, value in overrides.items():
        if value is None:
            answers.pop(key, None)
        else:
            answers[key] = value
    return answers


def _outcome_count(outcome: str) -> float:
    return REGISTRY.get_sample_value('draftgate_safety_gate_outcomes_total', {'outcome': outcome}) or 0.0


def test_valid_request_passes():
    result = validate_medication_request(_answers())
    assert result.valid is True
    assert result.requires_consult is False
    assert result.outcome == OUTCOME_VALID
    assert result.error is None


def test_legacy_field_names_are_accepted():
    result = validate_medication_request(
        {
            'amtCode': '1234567',
            'medicationName': 'Ramipril',
            'prescribedBefore': True,
            'doseChanged': False,
            'lastPrescribed': '6_12_months',
        }
    )
    assert result.valid is True


def test_missing_code_is_invalid_without_consult():
    result = validate_medication_request(_answers(amt_code=None))
    assert result.valid is False
    assert result.requires_consult is False
    assert result.outcome == OUTCOME_INVALID


def test_manual_entry_is_a_usable_code():
    result = validate_medication_request(_answers(amt_code='MANUAL', medication_display=None))
    assert result.valid is True


def test_missing_name_is_invalid():
    result = validate_medication_request(_answers(medication_display=None, medication_name='   '))
    assert result.valid is False
    assert result.outcome == OUTCOME_INVALID


@pytest.mark.parametrize('field', ['prescribed_before', 'dose_changed'])
@pytest.mark.parametrize('value', ['true', 'false', 1, 0])
def test_gating_answers_must_be_real_booleans(field, value):
    result = validate_medication_request(_answers(**{field: value}))
    assert result.valid is False
    assert result.requires_consult is False
    assert result.outcome == OUTCOME_INVALID


def test_missing_gating_answer_is_invalid():
    result = validate_medication_request(_answers(dose_changed=None))
    assert result.outcome == OUTCOME_INVALID


def test_string_true_raises_invalid_input():
    with pytest.raises(InvalidInput):
        SafetyGateValidator().validate_or_raise(_answers(prescribed_before='true'))


def test_new_medication_requires_consult():
    result = validate_medication_request(_answers(prescribed_before=False))
    assert result.valid is False
    assert result.requires_consult is True
    assert result.outcome == OUTCOME_REQUIRES_CONSULT
    assert result.guidance


def test_dose_change_requires_consult():
    with pytest.raises(RequiresEscalation) as excinfo:
        SafetyGateValidator().validate_or_raise(_answers(dose_changed=True))
    assert excinfo.value.guidance
    assert excinfo.value.details['requiresConsult'] is True


def test_blocked_code_with_innocuous_manual_name():
    result = validate_medication_request(
        _answers(amt_code='21630000', medication_display=None, medication_name='Pain relief tablets')
    )
    assert result.valid is False
    assert result.requires_consult is False
    assert result.outcome == OUTCOME_BLOCKED
    assert result.category == 'catalogue_code'
    assert 'GP' in result.guidance


def test_name_field_is_checked_even_when_display_is_clean():
    result = validate_medication_request(
        _answers(medication_display='Pain relief', medication_name='Endone 5mg')
    )
    assert result.outcome == OUTCOME_BLOCKED
    assert result.category == 's8_opioid'


def test_blocked_substance_outranks_missing_last_prescribed():
    result = validate_medication_request(
        _answers(medication_display='Xanax 1mg', last_prescribed=None)
    )
    assert result.outcome == OUTCOME_BLOCKED


def test_consult_outranks_blocked_substance():
    result = validate_medication_request(
        _answers(medication_display='Oxycodone 5mg', prescribed_before=False)
    )
    assert result.outcome == OUTCOME_REQUIRES_CONSULT


def test_missing_last_prescribed_is_invalid():
    result = validate_medication_request(_answers(last_prescribed='  '))
    assert result.valid is False
    assert result.outcome == OUTCOME_INVALID


def test_manual_valiumm_request_is_blocked():
    answers = {
        'amt_code': 'MANUAL',
        'medication_name': 'Valiumm',
        'prescribed_before': True,
        'dose_changed': False,
        'last_prescribed': '3 months ago',
    }
    result = validate_medication_request(answers)
    assert result.to_dict()['valid'] is False
    assert result.to_dict()['requiresConsult'] is False
    assert result.outcome == OUTCOME_BLOCKED
    assert result.category == 'benzodiazepine'

    with pytest.raises(Blocked) as excinfo:
        SafetyGateValidator().validate_or_raise(answers)
    assert excinfo.value.retryable is False
    assert excinfo.value.guidance


def test_outcomes_are_counted():
    before = _outcome_count(OUTCOME_BLOCKED)
    validate_medication_request(_answers(medication_display='oxycod0ne 10mg'))
    assert _outcome_count(OUTCOME_BLOCKED) == before + 1


@pytest.mark.parametrize(
    'medication, category, phrase',
    [
        ('OxyContin 10mg', 's8_opioid', 'regular prescriber'),
        ('Ritalin 10mg', 's8_stimulant', 'specialist or GP'),
        ('Valium 5mg', 'benzodiazepine', 'regular GP'),
        ('Stilnox 10mg', 'z_drug', 'general consultation'),
        ('Sativex spray', 'cannabis', 'TGA-approved prescriber'),
        ('Androderm patch', 'testosterone', 'prescribing specialist'),
        ('Seroquel 25mg', 'mental_health', 'treating psychiatrist'),
    ],
)
def test_blocked_guidance_matches_category(medication, category, phrase):
    result = validate_medication_request(
        _answers(medication_display=medication, medication_name=medication.split()[0])
    )
    assert result.outcome == OUTCOME_BLOCKED
    assert result.category == category
    assert phrase in result.guidance


def test_mental_health_medicine_is_labelled_in_error():
    result = validate_medication_request(_answers(medication_display='Lithicarb 250mg', medication_name='lithium'))
    assert result.category == 'mental_health'
    assert 'mental health medicine' in result.error
