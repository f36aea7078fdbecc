"""
app/main.py

CaseQuiz: Streamlit entry point.
- Local store bootstrap (sync with the replica when configured, then migrate)
- Sidebar connectivity badge + manual sync
- Case list and case pages
- Global theme injection
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import streamlit as st

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storage.case_manager import handle_manual_sync  # noqa: E402
from storage.db import MigrationError, get_store  # noqa: E402
from storage.models import ConnectionStatus  # noqa: E402
from storage.settings import load_settings  # noqa: E402
from storage.sync import SyncManager, initialize_database  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="CaseQuiz",
    page_icon="🩺",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ---------------------------------------------------------------------------
# Session defaults
# ---------------------------------------------------------------------------
if "db_status" not in st.session_state:
    st.session_state["db_status"] = ConnectionStatus.unknown
if "current_page" not in st.session_state:
    st.session_state["current_page"] = "cases"
if "current_case_id" not in st.session_state:
    st.session_state["current_case_id"] = None
if "case_session" not in st.session_state:
    st.session_state["case_session"] = None  # CaseSession | None


# ---------------------------------------------------------------------------
# Store bootstrap (once per browser session)
# ---------------------------------------------------------------------------
def _bootstrap() -> None:
    settings = load_settings()
    store = get_store(settings)
    sync = SyncManager(store.conn)
    try:
        status = initialize_database(store, sync, settings)
    except MigrationError as exc:
        logger.exception("Local database unusable")
        st.error(f"The local database could not be prepared: {exc}")
        st.stop()
    st.session_state["settings"] = settings
    st.session_state["sync"] = sync
    st.session_state["db_status"] = status
    st.session_state["bootstrapped"] = True


if not st.session_state.get("bootstrapped"):
    _bootstrap()


def _import_render(module_name: str):
    """
    Import `render` from a page module, handling both:
    - package-style imports: app.pages.<module>
    - script-root imports: pages.<module>
    """
    try:
        mod = __import__(f"app.pages.{module_name}", fromlist=["render"])
        return mod.render
    except ModuleNotFoundError:
        mod = __import__(f"pages.{module_name}", fromlist=["render"])
        return mod.render


try:
    from app.ui import inject_theme, status_pill
except ModuleNotFoundError:
    from ui import inject_theme, status_pill  # type: ignore

inject_theme()

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("🩺 CaseQuiz")
st.sidebar.markdown("Work up a patient: pick the right test, then the right diagnosis.")
st.sidebar.divider()

st.sidebar.markdown(
    f"Database: {status_pill(st.session_state['db_status'])}",
    unsafe_allow_html=True,
)
if st.sidebar.button("🔄 Sync now"):
    status = handle_manual_sync(st.session_state["sync"])
    st.session_state["db_status"] = status
    if status == ConnectionStatus.online:
        st.sidebar.success("Database has been synced with the server.")
        st.session_state.pop("listing", None)
    else:
        st.sidebar.warning("Unable to sync with server. Check your internet connection.")

st.sidebar.divider()
if st.sidebar.button("📋 Case list"):
    st.session_state["current_page"] = "cases"
    st.session_state["case_session"] = None
    st.rerun()

st.sidebar.caption("Educational tool. Generated cases are not medical advice.")

# ---------------------------------------------------------------------------
# Page routing
# ---------------------------------------------------------------------------
if st.session_state["current_page"] == "case" and st.session_state["current_case_id"]:
    _import_render("case")()
else:
    _import_render("cases")()
