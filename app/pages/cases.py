"""
app/pages/cases.py

Case list:
- Shows local unused cases (fewer than two correct answers recorded)
- Tops the pool up to the configured minimum on first load / refresh
- Falls back to whatever is available if the case service is down
"""

from __future__ import annotations

import streamlit as st

from generation.case_service import get_client
from pipelines.supply import CaseSupplyController
from storage.case_manager import CaseListing, fetch_cases_with_status
from storage.db import get_store

try:
    from app.ui import card_close, card_open, inject_theme
except ModuleNotFoundError:
    from ui import card_close, card_open, inject_theme  # type: ignore


def _load_listing() -> CaseListing:
    settings = st.session_state["settings"]
    store = get_store(settings)
    supply = CaseSupplyController(store, get_client(settings), threshold=settings.min_unused_cases)
    with st.spinner("Loading cases..."):
        listing = fetch_cases_with_status(store, st.session_state["sync"], supply)
    st.session_state["db_status"] = listing.status
    return listing


def _open_case(case_id: str) -> None:
    st.session_state["current_case_id"] = case_id
    st.session_state["case_session"] = None
    st.session_state["current_page"] = "case"


def render() -> None:
    inject_theme()
    st.title("Cases")
    st.caption("Pick a patient to start. Solved cases drop off this list.")

    if st.button("Refresh"):
        st.session_state.pop("listing", None)

    if "listing" not in st.session_state:
        st.session_state["listing"] = _load_listing()
    listing: CaseListing = st.session_state["listing"]

    if listing.error:
        st.warning(
            "There was an issue loading new cases. The app will continue in offline mode.\n\n"
            f"Details: {listing.error}"
        )

    if not listing.cases:
        st.info("No cases available right now. Try again once you are back online.")
        return

    for case in listing.cases:
        card_open(case.patient, case.symptoms[:180] + ("..." if len(case.symptoms) > 180 else ""))
        card_close()
        if st.button("Open case", key=f"open_{case.id}"):
            _open_case(case.id)
            st.rerun()
