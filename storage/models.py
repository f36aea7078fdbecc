"""
storage/models.py

Pydantic v2 data models for the case quiz store.

Cases and their options are immutable once created; case actions form an
append-only log.  These models are NOT ORM models; persistence is handled
entirely by db.py, which serialises the option lists to JSON text.
"""

from __future__ import annotations

import json
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


OPTIONS_PER_LIST = 4


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ActionType(str, Enum):
    """Which option list a case action selected from."""
    test = "test"
    diagnosis = "diagnosis"


class ConnectionStatus(str, Enum):
    """Connectivity with the remote replica, as last observed."""
    online = "online"
    offline = "offline"
    unknown = "unknown"


# ---------------------------------------------------------------------------
# Domain models
# ---------------------------------------------------------------------------


class Option(BaseModel):
    """One selectable test or diagnosis."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(description="Display label, unique within its list.")
    is_correct: bool = Field(alias="isCorrect")
    reply: str = Field(default="", description="Feedback shown when selected.")

    def to_payload(self) -> dict:
        return {"name": self.name, "isCorrect": self.is_correct, "reply": self.reply}


def _check_option_list(options: list[Option], label: str) -> list[Option]:
    if len(options) != OPTIONS_PER_LIST:
        raise ValueError(f"{label} must contain exactly {OPTIONS_PER_LIST} options, got {len(options)}")
    correct = [o for o in options if o.is_correct]
    if len(correct) != 1:
        raise ValueError(f"{label} must contain exactly one correct option, got {len(correct)}")
    names = [o.name for o in options]
    if len(set(names)) != len(names):
        raise ValueError(f"{label} option names must be unique")
    return options


class Case(BaseModel):
    """
    A generated clinical scenario.

    Construction validates the shape the generation schema promises: four
    options per list, exactly one of them correct.  Options are never
    mutated after the case is persisted; historical ``CaseAction.is_correct``
    snapshots depend on that.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    symptoms: str
    patient: str
    test_info: tuple[Option, ...]
    diagnosis_info: tuple[Option, ...]

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        # remote rows may carry integer keys
        if value is None:
            return str(uuid4())
        return str(value)

    @field_validator("test_info", "diagnosis_info", mode="before")
    @classmethod
    def _decode_options(cls, value):
        # stored rows keep option lists as JSON text
        if isinstance(value, str):
            return json.loads(value)
        return value

    @model_validator(mode="after")
    def _check_options(self) -> "Case":
        _check_option_list(list(self.test_info), "test_info")
        _check_option_list(list(self.diagnosis_info), "diagnosis_info")
        return self

    def options_for(self, action_type: ActionType) -> tuple[Option, ...]:
        if action_type == ActionType.test:
            return self.test_info
        return self.diagnosis_info

    def find_option(self, action_type: ActionType, name: str) -> Option | None:
        for option in self.options_for(action_type):
            if option.name == name:
                return option
        return None

    def correct_names(self, action_type: ActionType) -> list[str]:
        return [o.name for o in self.options_for(action_type) if o.is_correct]


class CaseAction(BaseModel):
    """One immutable entry of the per-case selection log."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    case_id: str
    type: ActionType
    value: str = Field(description="Name of the selected option.")
    is_correct: bool = Field(description="Correctness snapshot at selection time.")
    attempt: int = Field(ge=1, description="1-based count for this (case, type, value).")
    synced: bool = False
    created_at: str = Field(description="ISO-8601 UTC timestamp.")
