import json

import pytest
from pydantic import ValidationError

from storage.models import ActionType, Case, CaseAction, Option


def _raw_options(names, correct):
    return [{"name": n, "isCorrect": n == correct, "reply": f"about {n}"} for n in names]


def _raw_case(**overrides):
    raw = {
        "id": "c1",
        "symptoms": "Headache",
        "patient": "Ana",
        "test_info": _raw_options(["A", "B", "C", "D"], "A"),
        "diagnosis_info": _raw_options(["P", "Q", "R", "S"], "S"),
    }
    raw.update(overrides)
    return raw


def test_valid_payload_builds_case():
    case = Case.model_validate(_raw_case())
    assert case.correct_names(ActionType.test) == ["A"]
    assert case.correct_names(ActionType.diagnosis) == ["S"]
    assert case.find_option(ActionType.diagnosis, "Q").reply == "about Q"
    assert case.find_option(ActionType.test, "missing") is None


def test_option_lists_must_have_four_entries():
    with pytest.raises(ValidationError):
        Case.model_validate(_raw_case(test_info=_raw_options(["A", "B", "C"], "A")))


def test_option_lists_need_exactly_one_correct():
    two_correct = _raw_options(["A", "B", "C", "D"], "A")
    two_correct[1]["isCorrect"] = True
    with pytest.raises(ValidationError):
        Case.model_validate(_raw_case(test_info=two_correct))

    with pytest.raises(ValidationError):
        Case.model_validate(_raw_case(diagnosis_info=_raw_options(["P", "Q", "R", "S"], "none")))


def test_option_names_must_be_unique():
    with pytest.raises(ValidationError):
        Case.model_validate(_raw_case(test_info=_raw_options(["A", "A", "C", "D"], "C")))


def test_option_lists_may_arrive_as_json_text():
    raw = _raw_case(test_info=json.dumps(_raw_options(["A", "B", "C", "D"], "B")))
    assert Case.model_validate(raw).correct_names(ActionType.test) == ["B"]


def test_remote_integer_ids_become_strings_and_missing_ids_are_generated():
    assert Case.model_validate(_raw_case(id=42)).id == "42"
    no_id = _raw_case()
    del no_id["id"]
    assert Case.model_validate(no_id).id


def test_option_payload_uses_the_wire_field_name():
    option = Option(name="ECG", is_correct=True, reply="ok")
    assert option.to_payload() == {"name": "ECG", "isCorrect": True, "reply": "ok"}


def test_cases_and_actions_are_immutable():
    case = Case.model_validate(_raw_case())
    with pytest.raises(ValidationError):
        case.patient = "Other"
    action = CaseAction(case_id="c1", type="test", value="A", is_correct=True, attempt=1, created_at="t")
    with pytest.raises(ValidationError):
        action.value = "B"


def test_action_attempt_is_one_based():
    with pytest.raises(ValidationError):
        CaseAction(case_id="c1", type="test", value="A", is_correct=True, attempt=0, created_at="t")
