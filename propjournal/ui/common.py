import logging
import traceback

import streamlit as st

from propjournal.backend import AuthSession, JournalBackend, create_backend
from propjournal.config import Settings


logger = logging.getLogger(__name__)

PUBLIC_PAGES = ("login", "register", "signup", "forgot-password", "reset-password")
NAV_PAGES = {
    "home": "Home",
    "accounts": "Accounts",
    "trades": "Trade journal",
    "backtest": "Backtest",
    "backtest/dashboard": "Backtest dashboard",
    "profile": "Profile",
}
ROUTES = PUBLIC_PAGES + tuple(NAV_PAGES) + ("accounts/new", "accounts/edit")


def init_session_state(settings: Settings) -> None:
    defaults = {
        "page": "home",
        "auth_session": None,
        "edit_account_id": None,
        "edit_trade_id": None,
        "paste_widget_version": 0,
        "debug_mode": settings.debug,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value

    requested = str(st.query_params.get("page", "")).strip().strip("/")
    if requested in ROUTES and st.session_state.get("query_page_applied") != requested:
        st.session_state["page"] = requested
        st.session_state["query_page_applied"] = requested


def get_backend(settings: Settings) -> JournalBackend:
    """One backend per browser session, so auth state never leaks between users."""
    backend = st.session_state.get("backend")
    if backend is None:
        backend = create_backend(settings)
        st.session_state["backend"] = backend
    return backend


def current_session() -> AuthSession | None:
    return st.session_state.get("auth_session")


def set_session(session: AuthSession | None) -> None:
    st.session_state["auth_session"] = session


def navigate_to(page: str, **params: str) -> None:
    st.session_state["page"] = page
    st.query_params.clear()
    st.query_params["page"] = page
    for key, value in params.items():
        st.query_params[key] = value
    st.session_state["query_page_applied"] = page
    st.rerun()


def report_exception(context: str, exc: Exception) -> None:
    logger.error("%s: %s", context, exc)
    st.error(f"{context}: {exc}")
    if st.session_state.get("debug_mode", False):
        st.exception(exc)
        st.code(traceback.format_exc(), language="text")


def fmt_usd(value: float) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def fmt_pct(value: float, digits: int = 2) -> str:
    return f"{value:.{digits}f}%"


def render_sidebar(backend: JournalBackend, session: AuthSession) -> None:
    with st.sidebar:
        st.markdown(f"**Signed in:** {session.email}")
        current = st.session_state.get("page")
        for page, label in NAV_PAGES.items():
            if st.button(label, key=f"nav_{page}", use_container_width=True, disabled=current == page):
                navigate_to(page)
        st.toggle("Debug Mode", key="debug_mode")
        if st.button("Logout", use_container_width=True):
            try:
                backend.sign_out()
            except Exception as exc:
                report_exception("Logout failed", exc)
            set_session(None)
            navigate_to("login")


def inject_responsive_css() -> None:
    st.markdown(
        """
        <style>
        @media (max-width: 900px) {
            section.main > div[data-testid="stMainBlockContainer"] {
                padding-left: 0.75rem !important;
                padding-right: 0.75rem !important;
            }
            div[data-testid="stHorizontalBlock"] {
                flex-wrap: wrap !important;
                row-gap: 0.5rem !important;
            }
            div[data-testid="column"] {
                min-width: 100% !important;
                flex: 1 1 100% !important;
            }
            .pnl-wrap {
                overflow-x: auto !important;
            }
            .pnl-grid {
                min-width: 980px !important;
            }
        }
        @media (max-width: 600px) {
            .auth-title {
                font-size: 30px !important;
            }
            .day-cell, .week-cell {
                min-height: 80px !important;
            }
            button, input, textarea, [data-baseweb="select"] {
                font-size: 16px !important;
            }
        }
        .outcome-chip {
            display: inline-block;
            border-radius: 999px;
            border: 1px solid #2b313f;
            padding: 2px 12px;
            margin-right: 6px;
            font-weight: 700;
            font-size: 13px;
        }
        .chip-win { color: #2acc74; border-color: #226e49; }
        .chip-loss { color: #ef5350; border-color: #8d313b; }
        </style>
        """,
        unsafe_allow_html=True,
    )
