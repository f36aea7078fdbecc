import json
from unittest.mock import MagicMock

import pytest
import requests

from generation.case_service import CaseServiceClient, CaseServiceError


def _case_payload(case_id="srv-1"):
    def opts(names, correct):
        return [{"name": n, "isCorrect": n == correct, "reply": "r"} for n in names]

    return {
        "id": case_id,
        "symptoms": "Sudden severe headache",
        "patient": "Dana",
        "test_info": opts(["CT head", "EEG", "ECG", "CBC"], "CT head"),
        "diagnosis_info": opts(["SAH", "Migraine", "Tension", "Sinusitis"], "SAH"),
    }


def _client(body=None, error=None):
    session = MagicMock()
    if error is not None:
        session.request.side_effect = error
    else:
        response = MagicMock()
        response.json.return_value = body
        session.request.return_value = response
    return CaseServiceClient("http://cases.local/", timeout=5, session=session), session


def test_generate_case_posts_without_prompt_by_default():
    client, session = _client({"success": True, "case": _case_payload()})

    case = client.generate_case()

    assert case.id == "srv-1"
    session.request.assert_called_once_with("POST", "http://cases.local/cases/generate", timeout=5, json={})


def test_generate_case_forwards_prompt():
    client, session = _client({"success": True, "case": _case_payload()})
    client.generate_case(prompt="Paediatric case please")
    assert session.request.call_args.kwargs["json"] == {"prompt": "Paediatric case please"}


def test_generated_case_may_arrive_as_json_text():
    client, _ = _client({"success": True, "case": json.dumps(_case_payload("txt"))})
    assert client.generate_case().id == "txt"


def test_service_reported_failure_raises():
    client, _ = _client({"success": False, "error": "Failed to generate case", "details": "quota"})
    with pytest.raises(CaseServiceError, match="quota"):
        client.generate_case()


def test_invalid_generated_case_raises():
    bad = _case_payload()
    bad["diagnosis_info"] = bad["diagnosis_info"][:3]
    client, _ = _client({"success": True, "case": bad})
    with pytest.raises(CaseServiceError):
        client.generate_case()


def test_unreachable_service_raises():
    client, _ = _client(error=requests.ConnectionError("refused"))
    with pytest.raises(CaseServiceError, match="unreachable"):
        client.fetch_unused_cases()


def test_http_errors_raise():
    client, session = _client({})
    session.request.return_value.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
    with pytest.raises(CaseServiceError):
        client.generate_case()


def test_unused_pool_drops_invalid_entries():
    broken = _case_payload("broken")
    broken["test_info"] = []
    client, session = _client({"success": True, "cases": [_case_payload("a"), broken, _case_payload("b")]})

    cases = client.fetch_unused_cases()

    assert [c.id for c in cases] == ["a", "b"]
    session.request.assert_called_once_with("GET", "http://cases.local/cases/unused", timeout=5)


def test_empty_pool():
    client, _ = _client({"cases": []})
    assert client.fetch_unused_cases() == []
