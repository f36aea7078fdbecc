"""
app/pages/case.py

One case session:
- Tests first; the correct test opens the diagnosis step after a short pause
- Each option can be chosen once; feedback stays visible
- Running score out of 10, restored from the action log on reopen
"""

from __future__ import annotations

import time

import streamlit as st

from pipelines.progression import CaseSession, Phase
from pipelines.scoring import max_total
from storage.case_manager import open_case_session
from storage.db import get_store
from storage.models import ActionType

try:
    from app.ui import card_close, card_open, feedback_card, inject_theme, metric_card
except ModuleNotFoundError:
    from ui import card_close, card_open, feedback_card, inject_theme, metric_card  # type: ignore

_REJECTIONS = {
    "not_saved": "Your answer could not be saved. Please try again.",
    "already_selected": "You already chose that option.",
    "wrong_phase": "Find the right test first.",
    "phase_complete": "The test step is already solved.",
    "case_complete": "This case is complete.",
    "unknown_option": "That option is not part of this case.",
}


def _get_session() -> CaseSession | None:
    session = st.session_state.get("case_session")
    case_id = st.session_state.get("current_case_id")
    if session is None or session.case.id != case_id:
        session = open_case_session(get_store(st.session_state["settings"]), case_id)
        st.session_state["case_session"] = session
    return session


def _option_buttons(session: CaseSession, action_type: ActionType, enabled: bool) -> None:
    selected = session.progress.selected_for(action_type)
    cols = st.columns(2)
    for i, option in enumerate(session.case.options_for(action_type)):
        with cols[i % 2]:
            clicked = st.button(
                option.name,
                key=f"{action_type.value}_{option.name}",
                disabled=not enabled or option.name in selected,
                use_container_width=True,
            )
        if clicked:
            if action_type == ActionType.test:
                result = session.select_test(option.name)
            else:
                result = session.select_diagnosis(option.name)
            if not result.accepted:
                st.warning(_REJECTIONS.get(result.reason or "", "Selection not accepted."))
            else:
                st.rerun()


def _feedback(session: CaseSession, action_type: ActionType) -> None:
    feedback = session.progress.feedback_for(action_type)
    for name in session.progress.selected_for(action_type):
        fb = feedback[name]
        feedback_card(name, fb.reply, fb.is_correct)


def render() -> None:
    inject_theme()
    session = _get_session()
    if session is None:
        st.error("This case could not be loaded from the local database.")
        return

    case = session.case
    st.title(case.patient)

    c1, c2, c3 = st.columns(3)
    with c1:
        metric_card("Test step", f"{session.progress.test_score}/5")
    with c2:
        metric_card("Diagnosis step", f"{session.progress.diagnosis_score}/5")
    with c3:
        metric_card("Score", f"{session.score}/{max_total()}", "Complete" if session.completed else None)

    card_open("Presenting symptoms")
    st.markdown(case.symptoms)
    card_close()

    phase = session.phase

    st.subheader("Which test do you order?")
    _option_buttons(session, ActionType.test, enabled=not session.progress.test_solved)
    _feedback(session, ActionType.test)

    if session.transition_pending:
        time.sleep(session.observation_delay)
        st.rerun()

    if phase == Phase.diagnosis:
        st.subheader("What is your diagnosis?")
        _option_buttons(session, ActionType.diagnosis, enabled=not session.completed)
        _feedback(session, ActionType.diagnosis)

    if session.completed:
        st.success(f"Case complete. Final score {session.score}/{max_total()}.")
        st.session_state.pop("listing", None)
