import json

import pytest

from pipelines.postprocess import CasePayloadError, parse_case_payload


def _payload():
    def opts(names, correct):
        return [{"name": n, "isCorrect": n == correct, "reply": "r"} for n in names]

    return {
        "id": "gen-1",
        "symptoms": "Chest pain {radiating} to the left arm",
        "patient": "Bob",
        "test_info": opts(["ECG", "CT", "MRI", "X-ray"], "ECG"),
        "diagnosis_info": opts(["MI", "GERD", "PE", "Pneumonia"], "MI"),
    }


def test_dict_payload():
    assert parse_case_payload(_payload()).id == "gen-1"


def test_fenced_json_text_with_braces_inside_strings():
    text = "Here you go:\n```json\n" + json.dumps(_payload()) + "\n```\nThanks!"
    case = parse_case_payload(text)
    assert case.symptoms.startswith("Chest pain {radiating}")


def test_text_without_json_is_rejected():
    with pytest.raises(CasePayloadError):
        parse_case_payload("I could not generate a case.")


def test_broken_json_is_rejected():
    with pytest.raises(CasePayloadError):
        parse_case_payload('{"symptoms": "x", }')


def test_schema_violations_are_rejected():
    bad = _payload()
    bad["test_info"] = bad["test_info"][:2]
    with pytest.raises(CasePayloadError):
        parse_case_payload(bad)


def test_non_object_payload_is_rejected():
    with pytest.raises(CasePayloadError):
        parse_case_payload(None)
