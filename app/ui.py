# =========================
# app/ui.py
# =========================
from __future__ import annotations

import html

import streamlit as st

from storage.models import ConnectionStatus


def inject_theme() -> None:
    st.markdown(
        """
<style>
/* ============================================================
   CaseQuiz theme
   - Dark navy sidebar
   - Light canvas + white cards
   - Teal accent
   - Status / feedback pills
   ============================================================ */

[data-testid="stSidebarNav"] { display: none !important; }

:root{
  --primary-2: 212 72% 16%;
  --accent: 177 60% 38%;
  --sidebar-text: 210 40% 92%;

  --canvas: #F6F8FB;
  --card: #FFFFFF;
  --border: rgba(15,23,42,0.10);
  --muted: rgba(15,23,42,0.55);
  --text: rgba(15,23,42,0.92);
}

.stApp { background: var(--canvas); }

.stApp, .stMarkdown, .stMarkdown p, .stCaption, .stText, .stAlert, label,
h1, h2, h3, h4, h5, h6, div[data-testid="stMarkdownContainer"] {
  color: var(--text) !important;
}

div.block-container {
  padding-top: 2.2rem;
  padding-bottom: 2.2rem;
}

section[data-testid="stSidebar"]{
  background: hsl(var(--primary-2)) !important;
  border-right: 1px solid rgba(255,255,255,0.07);
}
section[data-testid="stSidebar"] *{
  color: hsl(var(--sidebar-text)) !important;
}

.stButton>button{
  border-radius: 12px;
  border: 1px solid rgba(15,23,42,0.14);
}
.stButton>button[kind="primary"]{
  background: hsl(var(--accent)) !important;
  border: 1px solid hsl(var(--accent)) !important;
  color: white !important;
}

.mc-card{
  background: var(--card);
  border: 1px solid var(--border);
  border-radius: 16px;
  padding: 16px 16px;
  margin-bottom: 12px;
}
.mc-title{ font-weight: 800; font-size: 16px; margin-bottom: 2px; color: var(--text); }
.mc-sub{ color: var(--muted); font-size: 13px; margin-bottom: 0px; }

.mc-metric-label{ color: var(--muted); font-size: 13px; margin-bottom: 6px; }
.mc-metric-value{ font-size: 30px; font-weight: 900; color: var(--text); line-height: 1.0; }
.mc-metric-foot{ margin-top: 6px; color: var(--muted); font-size: 12px; }

.status-pill{
  display:inline-block;
  padding: 4px 10px;
  border-radius: 999px;
  font-size: 12px;
  font-weight: 800;
  color: white !important;
}
.fb-correct{ border-left: 4px solid #4CAF50; }
.fb-wrong{ border-left: 4px solid #E53935; }
</style>
        """,
        unsafe_allow_html=True,
    )


def _esc(x: str) -> str:
    """Escape any user/DB-provided strings before injecting into HTML."""
    return html.escape(str(x or ""), quote=True)


_STATUS_COLORS = {
    ConnectionStatus.online: "#4CAF50",
    ConnectionStatus.offline: "#FF9800",
}
_STATUS_TEXT = {
    ConnectionStatus.online: "Online",
    ConnectionStatus.offline: "Offline",
}


def status_color(status: ConnectionStatus) -> str:
    return _STATUS_COLORS.get(status, "#9E9E9E")


def status_text(status: ConnectionStatus) -> str:
    return _STATUS_TEXT.get(status, "Checking...")


def status_pill(status: ConnectionStatus) -> str:
    return (
        f'<span class="status-pill" style="background:{status_color(status)};">'
        f"{_esc(status_text(status))}</span>"
    )


def card_open(title: str, subtitle: str = "", extra_class: str = "") -> None:
    sub = f'<div class="mc-sub">{_esc(subtitle)}</div>' if subtitle else ""
    st.markdown(
        f'<div class="mc-card {_esc(extra_class)}"><div class="mc-title">{_esc(title)}</div>{sub}',
        unsafe_allow_html=True,
    )


def card_close() -> None:
    st.markdown("</div>", unsafe_allow_html=True)


def metric_card(label: str, value: str, foot: str | None = None) -> None:
    """Plain-text metric tile (all values escaped)."""
    foot_html = f'<div class="mc-metric-foot">{_esc(foot)}</div>' if foot else ""
    st.markdown(
        f"""
<div class="mc-card">
  <div class="mc-metric-label">{_esc(label)}</div>
  <div class="mc-metric-value">{_esc(value)}</div>
  {foot_html}
</div>
        """,
        unsafe_allow_html=True,
    )


def feedback_card(name: str, reply: str, is_correct: bool) -> None:
    verdict = "Correct" if is_correct else "Not quite"
    css = "fb-correct" if is_correct else "fb-wrong"
    st.markdown(
        f"""
<div class="mc-card {css}">
  <div class="mc-title">{_esc(name)} · {verdict}</div>
  <div class="mc-sub">{_esc(reply)}</div>
</div>
        """,
        unsafe_allow_html=True,
    )
