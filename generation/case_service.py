"""
generation/case_service.py

HTTP client for the case service.

Two endpoints are consumed:
- ``POST /cases/generate`` asks the service to generate (and store) a new
  case with an LLM; the request may carry a free-text prompt.
- ``GET /cases/unused`` returns pre-generated cases that have fewer than two
  correct recorded actions server-side.

Failures are raised as ``CaseServiceError`` so the supply controller can
decide on a fallback.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from pipelines.postprocess import CasePayloadError, parse_case_payload
from storage.models import Case
from storage.settings import Settings, load_settings

logger = logging.getLogger(__name__)

# The service applies this prompt when a request carries none.
DEFAULT_CASE_PROMPT = """Generate a realistic medical case with a patient's symptoms, test results, and diagnosis information. One out of four tests or diagnoses should be correct. For each incorrect test or diagnosis option, provide a reason why it is incorrect and include a small clue pointing toward the correct option. For the test that is correct, present detailed test results. If a diagnosis is correct, commend the selection and offer a brief explanation of why it is accurate.
Have an entertaining and educating tone.

# Notes

- Ensure the case details and explanations are realistic and align with typical clinical reasoning.
- Keep the clues very very subtle to encourage critical thinking.
- Dont directly mention that it is a hint."""


class CaseServiceError(RuntimeError):
    """The case service could not be reached or returned an unusable answer."""


class CaseServiceClient:
    """Thin ``requests`` wrapper around the case service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            body = response.json()
        except requests.ConnectionError as exc:
            logger.error("Cannot connect to case service at %s: %s", self.base_url, exc)
            raise CaseServiceError(f"case service unreachable: {exc}") from exc
        except requests.RequestException as exc:
            logger.error("Case service request %s %s failed: %s", method, path, exc)
            raise CaseServiceError(f"case service request failed: {exc}") from exc
        except ValueError as exc:
            raise CaseServiceError(f"case service returned invalid JSON: {exc}") from exc

        if not isinstance(body, dict):
            raise CaseServiceError("case service returned an unexpected body")
        if body.get("success") is False:
            detail = body.get("details") or body.get("error") or "unknown error"
            raise CaseServiceError(f"case service error: {detail}")
        return body

    def generate_case(self, prompt: Optional[str] = None) -> Case:
        """
        Ask the service for one freshly generated case.

        Raises:
            CaseServiceError: On transport errors or an invalid case payload.
        """
        payload = {"prompt": prompt} if prompt else {}
        body = self._request("POST", "/cases/generate", json=payload)
        try:
            case = parse_case_payload(body.get("case"))
        except CasePayloadError as exc:
            logger.error("Generated case rejected: %s", exc)
            raise CaseServiceError(f"generated case is invalid: {exc}") from exc
        logger.info("Generated case id=%s", case.id)
        return case

    def fetch_unused_cases(self) -> list[Case]:
        """
        Return the remote pool of unused cases.

        Entries that fail validation are logged and dropped.

        Raises:
            CaseServiceError: If the pool cannot be fetched at all.
        """
        body = self._request("GET", "/cases/unused")
        cases: list[Case] = []
        for raw in body.get("cases") or []:
            try:
                cases.append(parse_case_payload(raw))
            except CasePayloadError as exc:
                logger.warning("Dropping invalid unused case %s: %s", _raw_id(raw), exc)
        logger.info("Fetched %d unused cases from the service", len(cases))
        return cases


def _raw_id(raw: Any) -> Any:
    return raw.get("id") if isinstance(raw, dict) else None


# ---------------------------------------------------------------------------
# Module-level singleton (lazy-loaded by the app layer)
# ---------------------------------------------------------------------------
_client: Optional[CaseServiceClient] = None


def get_client(settings: Settings | None = None) -> CaseServiceClient:
    global _client
    if _client is None:
        settings = settings or load_settings()
        _client = CaseServiceClient(settings.api_url, timeout=settings.api_timeout)
    return _client
