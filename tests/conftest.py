"""Shared fixtures: an in-memory migrated store and case/action builders."""

import itertools
import sqlite3

import pytest

from storage.db import CaseStore
from storage.models import ActionType, Case, CaseAction, Option


class RecordingSleep:
    """Stands in for time.sleep and remembers every delay."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def conn():
    c = sqlite3.connect(":memory:")
    c.execute("PRAGMA foreign_keys=ON;")
    yield c
    c.close()


@pytest.fixture
def store(conn, sleep):
    s = CaseStore(conn, sleep=sleep)
    s.migrate()
    return s


def _options(names, correct, label):
    return [Option(name=n, is_correct=(n == correct), reply=f"{label} reply for {n}") for n in names]


@pytest.fixture
def make_case():
    counter = itertools.count(1)

    def _make(
        case_id=None,
        tests=("X", "Y", "T3", "T4"),
        correct_test="Y",
        diagnoses=("P", "Q", "D3", "D4"),
        correct_diagnosis="P",
    ):
        n = next(counter)
        return Case(
            id=case_id or f"case-{n}",
            symptoms=f"Fever and cough, day {n}",
            patient=f"Patient {n}",
            test_info=_options(tests, correct_test, "test"),
            diagnosis_info=_options(diagnoses, correct_diagnosis, "diagnosis"),
        )

    return _make


@pytest.fixture
def make_action():
    counter = itertools.count(1)

    def _make(case, action_type, value, created_at=None, attempt=1, is_correct=None):
        n = next(counter)
        if is_correct is None:
            option = case.find_option(ActionType(action_type), value)
            is_correct = bool(option and option.is_correct)
        return CaseAction(
            id=f"action-{n}",
            case_id=case.id,
            type=action_type,
            value=value,
            is_correct=is_correct,
            attempt=attempt,
            created_at=created_at or f"2026-01-01T00:{n // 60:02d}:{n % 60:02d}+00:00",
        )

    return _make


@pytest.fixture
def ticking_now():
    """ISO timestamp factory advancing one second per call."""
    counter = itertools.count(0)

    def _now():
        n = next(counter)
        return f"2026-02-01T10:{n // 60:02d}:{n % 60:02d}+00:00"

    return _now


class FakeClock:
    def __init__(self, start=100.0):
        self.value = start

    def __call__(self):
        return self.value

    def advance(self, seconds):
        self.value += seconds


@pytest.fixture
def clock():
    return FakeClock()
