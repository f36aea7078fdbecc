import random

import pytest

from pipelines.progression import CaseSession, Feedback, Phase, replay
from storage.models import ActionType


@pytest.fixture
def case(store, make_case):
    c = make_case(tests=("X", "Y", "T3", "T4"), correct_test="Y", diagnoses=("P", "Q", "D3", "D4"), correct_diagnosis="P")
    store.insert_case(c)
    return c


@pytest.fixture
def session_factory(store, clock, ticking_now):
    def _make(case, actions=(), delay=1.5):
        return CaseSession(store, case, actions, observation_delay=delay, clock=clock, now=ticking_now)

    return _make


# -------------------------
# Replay
# -------------------------
def test_attempts_count_every_action(case, make_action):
    log = [make_action(case, "test", "A"), make_action(case, "test", "A"), make_action(case, "test", "B")]
    progress = replay(case, log)
    assert progress.test_attempts == {"A": 2, "B": 1}
    assert progress.selected_tests == ["A", "B"]


def test_selection_order_and_feedback_follow_first_occurrence(case, make_action):
    log = [make_action(case, "test", "T3"), make_action(case, "test", "X"), make_action(case, "test", "T3")]
    progress = replay(case, log)
    assert progress.selected_tests == ["T3", "X"]
    assert progress.test_feedback["X"] == Feedback(reply="test reply for X", is_correct=False)
    assert progress.phase == Phase.tests


def test_replay_is_idempotent(case, make_action):
    log = [
        make_action(case, "test", "X"),
        make_action(case, "test", "Y"),
        make_action(case, "diagnosis", "Q"),
    ]
    assert replay(case, log) == replay(case, log)


def test_replay_orders_by_creation_time(case, make_action):
    log = [
        make_action(case, "test", "X"),
        make_action(case, "test", "Y"),
        make_action(case, "diagnosis", "D3"),
        make_action(case, "diagnosis", "P"),
    ]
    shuffled = log[:]
    random.Random(7).shuffle(shuffled)
    assert replay(case, shuffled) == replay(case, log)


def test_empty_log_is_a_fresh_case(case):
    progress = replay(case, [])
    assert progress.phase == Phase.tests
    assert not progress.completed
    assert progress.selected_tests == [] and progress.test_attempts == {}
    assert progress.score == 10


def test_phase_never_reverts_during_replay(case, make_action):
    log = [
        make_action(case, "test", "Y"),
        make_action(case, "test", "X"),
        make_action(case, "diagnosis", "Q"),
        make_action(case, "test", "T3"),
    ]
    progress = replay(case, log)
    assert progress.phase == Phase.diagnosis
    assert not progress.completed


def test_correctness_comes_from_logged_snapshot(case, make_action):
    # Options must not change after a case is stored: the log keeps its own
    # correctness snapshot and the phase follows that, not the current options.
    log = [make_action(case, "test", "X", is_correct=True)]
    progress = replay(case, log)
    assert progress.phase == Phase.diagnosis
    assert progress.test_feedback["X"].is_correct is False


def test_unknown_logged_value_gets_empty_feedback(case, make_action):
    progress = replay(case, [make_action(case, "test", "Gone", is_correct=False)])
    assert progress.test_feedback["Gone"] == Feedback(reply="", is_correct=False)


# -------------------------
# Live session
# -------------------------
def test_end_to_end_scenario(store, case, clock, session_factory):
    session = session_factory(case)

    result = session.select_test("Y")
    assert result.accepted and result.feedback.is_correct
    assert result.action.attempt == 1
    assert session.phase == Phase.tests  # observation delay still running
    assert session.transition_pending
    assert session.select_diagnosis("P").reason == "wrong_phase"

    clock.advance(1.5)
    assert session.phase == Phase.diagnosis
    assert not session.transition_pending

    result = session.select_diagnosis("Q")
    assert result.accepted and not result.feedback.is_correct
    assert session.progress.diagnosis_attempts == {"Q": 1}
    assert session.progress.test_score == 5
    assert session.progress.diagnosis_score == 3

    result = session.select_diagnosis("P")
    assert result.accepted
    assert session.completed
    assert session.score == 8

    resumed = CaseSession.resume(store, case.id)
    assert resumed.progress == session.progress
    assert resumed.phase == Phase.diagnosis
    assert resumed.score == 8


def test_phase_is_monotonic_in_a_session(case, clock, session_factory):
    session = session_factory(case)
    session.select_test("X")
    session.select_test("Y")
    clock.advance(10)
    assert session.phase == Phase.diagnosis

    for name in ("X", "T3", "T4"):
        assert session.select_test(name).reason == "phase_complete"
        assert session.phase == Phase.diagnosis

    session.select_diagnosis("D3")
    assert session.phase == Phase.diagnosis


def test_option_can_only_be_selected_once(case, session_factory, store):
    session = session_factory(case)
    assert session.select_test("X").accepted
    result = session.select_test("X")
    assert not result.accepted and result.reason == "already_selected"
    assert session.progress.test_attempts == {"X": 1}
    assert len(store.get_case_actions(case.id)) == 1


def test_unknown_option_is_rejected(case, session_factory):
    assert session_factory(case).select_test("Nonsense").reason == "unknown_option"


def test_no_selection_after_completion(case, session_factory):
    session = session_factory(case, delay=0)
    session.select_test("Y")
    session.select_diagnosis("P")
    assert session.completed
    assert session.select_diagnosis("Q").reason == "case_complete"
    assert session.select_test("X").reason == "case_complete"


def test_zero_delay_moves_to_diagnosis_immediately(case, session_factory):
    session = session_factory(case, delay=0)
    session.select_test("Y")
    assert session.phase == Phase.diagnosis


def test_failed_append_leaves_state_untouched(store, make_case, session_factory):
    unsaved = make_case(case_id="not-in-store")  # foreign key makes every append fail
    session = session_factory(unsaved)

    result = session.select_test("X")
    assert not result.accepted and result.reason == "not_saved"
    assert session.progress.selected_tests == []
    assert session.actions == []


def test_appended_actions_carry_attempt_and_sync_flag(store, case, session_factory):
    store.replicated = True
    session = session_factory(case)
    action = session.select_test("T4").action
    assert action.type == ActionType.test
    assert action.is_correct is False
    assert action.attempt == 1
    assert action.synced is True
    assert store.get_case_actions(case.id) == [action]


def test_timestamps_never_go_backwards(store, case, clock):
    stamps = iter(["2026-03-01T10:00:05+00:00", "2026-03-01T10:00:01+00:00"])
    session = CaseSession(store, case, clock=clock, now=lambda: next(stamps))
    first = session.select_test("X").action
    second = session.select_test("T3").action
    assert second.created_at >= first.created_at


def test_resume_unknown_case_returns_none(store):
    assert CaseSession.resume(store, "missing") is None


def test_resume_continues_from_the_log(store, case, make_action, clock, ticking_now):
    store.insert_case_action(make_action(case, "test", "X"))
    session = CaseSession.resume(store, case.id, clock=clock, now=ticking_now)
    assert session.progress.selected_tests == ["X"]
    assert session.select_test("X").reason == "already_selected"
    assert session.select_test("Y").accepted
