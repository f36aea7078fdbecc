"""
pipelines/progression.py

Derives a case's quiz state from its action log.

The action log is the only source of truth: ``replay`` walks it once, in
creation order, and rebuilds selections, attempt counts, feedback, phase
and score.  ``CaseSession`` drives a live session on top of the same
replay step, appending one action per accepted selection.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional
from uuid import uuid4

from pipelines.scoring import score
from storage.db import CaseStore
from storage.models import ActionType, Case, CaseAction

logger = logging.getLogger(__name__)

# Seconds the correct-test feedback stays on screen before diagnoses open.
OBSERVATION_DELAY: float = 1.5


class Phase(str, Enum):
    tests = "tests"
    diagnosis = "diagnosis"


@dataclass(frozen=True)
class Feedback:
    reply: str
    is_correct: bool


@dataclass
class CaseProgress:
    selected_tests: list[str] = field(default_factory=list)
    selected_diagnoses: list[str] = field(default_factory=list)
    test_attempts: dict[str, int] = field(default_factory=dict)
    diagnosis_attempts: dict[str, int] = field(default_factory=dict)
    test_feedback: dict[str, Feedback] = field(default_factory=dict)
    diagnosis_feedback: dict[str, Feedback] = field(default_factory=dict)
    phase: Phase = Phase.tests
    test_solved: bool = False
    completed: bool = False
    test_score: int = 0
    diagnosis_score: int = 0

    @property
    def score(self) -> int:
        return self.test_score + self.diagnosis_score

    def selected_for(self, action_type: ActionType) -> list[str]:
        return self.selected_tests if action_type == ActionType.test else self.selected_diagnoses

    def attempts_for(self, action_type: ActionType) -> dict[str, int]:
        return self.test_attempts if action_type == ActionType.test else self.diagnosis_attempts

    def feedback_for(self, action_type: ActionType) -> dict[str, Feedback]:
        return self.test_feedback if action_type == ActionType.test else self.diagnosis_feedback


def _apply(progress: CaseProgress, case: Case, action: CaseAction) -> None:
    """Fold one action into *progress*; the phase is left to the caller."""
    attempts = progress.attempts_for(action.type)
    attempts[action.value] = attempts.get(action.value, 0) + 1

    feedback = progress.feedback_for(action.type)
    if action.value not in feedback:
        progress.selected_for(action.type).append(action.value)
        option = case.find_option(action.type, action.value)
        if option is None:
            logger.warning("Case %s has no %s option named %r", case.id, action.type.value, action.value)
            feedback[action.value] = Feedback(reply="", is_correct=action.is_correct)
        else:
            feedback[action.value] = Feedback(reply=option.reply, is_correct=option.is_correct)

    # correctness comes from the logged snapshot, not the current options
    if action.is_correct:
        if action.type == ActionType.test:
            progress.test_solved = True
        else:
            progress.completed = True


def _rescore(progress: CaseProgress, case: Case) -> None:
    progress.test_score = score(progress.test_attempts, case.correct_names(ActionType.test))
    progress.diagnosis_score = score(progress.diagnosis_attempts, case.correct_names(ActionType.diagnosis))


def replay(case: Case, actions: Iterable[CaseAction]) -> CaseProgress:
    """
    Rebuild the state of *case* from its action log.

    Pure: the same log always yields an equal ``CaseProgress``.  Actions
    are visited in ascending ``created_at`` order (stable for ties).
    """
    progress = CaseProgress()
    for action in sorted(actions, key=lambda a: a.created_at):
        _apply(progress, case, action)
        if progress.test_solved:
            progress.phase = Phase.diagnosis
    _rescore(progress, case)
    return progress


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Live session
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SelectionResult:
    accepted: bool
    reason: Optional[str] = None
    feedback: Optional[Feedback] = None
    action: Optional[CaseAction] = None


class CaseSession:
    """
    One user's interaction with one case.

    Every accepted selection is appended to the store before the in-memory
    state changes; a failed append leaves the state untouched so the view
    never runs ahead of the durable log.
    """

    def __init__(
        self,
        store: CaseStore,
        case: Case,
        actions: Iterable[CaseAction] = (),
        *,
        observation_delay: float = OBSERVATION_DELAY,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], str] = _now,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self.store = store
        self.case = case
        self.actions: list[CaseAction] = sorted(actions, key=lambda a: a.created_at)
        self.progress = replay(case, self.actions)
        self.observation_delay = observation_delay
        self._clock = clock
        self._now = now
        self._id_factory = id_factory
        self._diagnosis_due: Optional[float] = None

    @classmethod
    def resume(cls, store: CaseStore, case_id: str, **kwargs) -> Optional["CaseSession"]:
        """Load *case_id* and its log; ``None`` if either cannot be read."""
        case = store.get_case_by_id(case_id)
        if case is None:
            logger.warning("resume: case %s not found", case_id)
            return None
        actions = store.get_case_actions(case_id)
        if actions is None:
            logger.warning("resume: action log for case %s unreadable", case_id)
            return None
        return cls(store, case, actions, **kwargs)

    @property
    def phase(self) -> Phase:
        if self._diagnosis_due is not None and self._clock() >= self._diagnosis_due:
            self.progress.phase = Phase.diagnosis
            self._diagnosis_due = None
        return self.progress.phase

    @property
    def transition_pending(self) -> bool:
        return self._diagnosis_due is not None and self.phase == Phase.tests

    @property
    def completed(self) -> bool:
        return self.progress.completed

    @property
    def score(self) -> int:
        return self.progress.score

    def select_test(self, name: str) -> SelectionResult:
        return self._select(ActionType.test, name)

    def select_diagnosis(self, name: str) -> SelectionResult:
        return self._select(ActionType.diagnosis, name)

    def _rejection(self, action_type: ActionType, name: str) -> Optional[str]:
        if self.progress.completed:
            return "case_complete"
        if action_type == ActionType.test and self.progress.test_solved:
            return "phase_complete"
        if action_type == ActionType.diagnosis and self.phase != Phase.diagnosis:
            return "wrong_phase"
        if self.case.find_option(action_type, name) is None:
            return "unknown_option"
        if name in self.progress.selected_for(action_type):
            return "already_selected"
        return None

    def _next_timestamp(self) -> str:
        ts = self._now()
        if self.actions and ts < self.actions[-1].created_at:
            ts = self.actions[-1].created_at
        return ts

    def _select(self, action_type: ActionType, name: str) -> SelectionResult:
        reason = self._rejection(action_type, name)
        if reason is not None:
            logger.debug("Rejected %s %r on case %s: %s", action_type.value, name, self.case.id, reason)
            return SelectionResult(accepted=False, reason=reason)

        option = self.case.find_option(action_type, name)
        prior = self.progress.attempts_for(action_type).get(name, 0)
        action = CaseAction(
            id=self._id_factory(),
            case_id=self.case.id,
            type=action_type,
            value=name,
            is_correct=option.is_correct,
            attempt=prior + 1,
            synced=self.store.replicated,
            created_at=self._next_timestamp(),
        )
        if not self.store.insert_case_action(action):
            logger.error("Could not log %s %r for case %s", action_type.value, name, self.case.id)
            return SelectionResult(accepted=False, reason="not_saved")

        self.actions.append(action)
        _apply(self.progress, self.case, action)
        _rescore(self.progress, self.case)

        if action_type == ActionType.test and option.is_correct:
            if self.observation_delay <= 0:
                self.progress.phase = Phase.diagnosis
            else:
                self._diagnosis_due = self._clock() + self.observation_delay
        elif self.progress.completed:
            logger.info("Case %s complete, score %d/10", self.case.id, self.progress.score)

        return SelectionResult(
            accepted=True,
            feedback=self.progress.feedback_for(action_type)[name],
            action=action,
        )
