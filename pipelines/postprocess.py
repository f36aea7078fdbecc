import json
import re
from typing import Any, Optional

from pydantic import ValidationError

from storage.models import Case


class CasePayloadError(ValueError):
    """A case payload is not JSON or does not match the case schema."""


def _extract_first_json_object(text: str) -> Optional[str]:
    """
    Extract the first {...} JSON object from a messy LLM output using a brace-matching scan.
    Returns the JSON string or None.
    """
    if not text:
        return None

    text = re.sub(r"```(?:json)?", "", text, flags=re.IGNORECASE).replace("```", "")

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        c = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return None


def parse_case_payload(raw: Any) -> Case:
    """
    Turn a generation-service payload into a validated Case.
    - Accepts a dict, or text containing a JSON object (fenced or not)
    - Validates the 4-options / exactly-one-correct shape via Case
    - Raises CasePayloadError instead of guessing a fallback case
    """
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        json_str = _extract_first_json_object(text)
        if json_str is None:
            raise CasePayloadError("No JSON object found in case payload.")
        try:
            raw = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise CasePayloadError(f"Invalid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise CasePayloadError(f"Case payload must be an object, got {type(raw).__name__}.")

    try:
        return Case.model_validate(raw)
    except ValidationError as e:
        raise CasePayloadError(f"Schema validation failed: {e}") from e
