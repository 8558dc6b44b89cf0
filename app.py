import logging
import os

import streamlit as st

from propjournal.config import configure_logging, load_settings
from propjournal.ui.accounts import render_account_form_page, render_accounts_page
from propjournal.ui.auth import (
    render_forgot_password_page,
    render_login_page,
    render_register_page,
    render_reset_password_page,
)
from propjournal.ui.backtest_dashboard import render_backtest_dashboard
from propjournal.ui.common import (
    PUBLIC_PAGES,
    current_session,
    get_backend,
    init_session_state,
    inject_responsive_css,
    render_sidebar,
    report_exception,
)
from propjournal.ui.home import render_home
from propjournal.ui.profile import render_profile_page
from propjournal.ui.trades import render_backtest_page, render_trades_page


logger = logging.getLogger("propjournal.app")


def route(page: str, settings) -> None:
    backend = get_backend(settings)
    session = current_session()

    if page == "login":
        render_login_page(backend)
        return
    if page in ("register", "signup"):
        render_register_page(backend)
        return
    if page == "forgot-password":
        render_forgot_password_page(backend, settings)
        return
    if page == "reset-password":
        render_reset_password_page(backend)
        return

    if session is None:
        render_login_page(backend)
        return

    render_sidebar(backend, session)
    user_id = session.user_id
    if page == "accounts":
        render_accounts_page(backend, settings, user_id)
    elif page == "accounts/new":
        render_account_form_page(backend, user_id)
    elif page == "accounts/edit":
        render_account_form_page(backend, user_id, edit=True)
    elif page == "trades":
        render_trades_page(backend, settings, user_id)
    elif page == "backtest":
        render_backtest_page(backend, settings, user_id)
    elif page == "backtest/dashboard":
        render_backtest_dashboard(backend, user_id)
    elif page == "profile":
        render_profile_page(backend, session)
    else:
        render_home(backend, settings, user_id)


def main() -> None:
    configure_logging(os.getenv("LOG_LEVEL", "INFO").upper())
    settings = load_settings()
    configure_logging(settings.log_level)
    st.set_page_config(page_title="Prop Journal", page_icon="📈", layout="wide")
    init_session_state(settings)
    inject_responsive_css()

    page = st.session_state["page"]
    if current_session() is not None and page in PUBLIC_PAGES and page != "reset-password":
        page = "home"
        st.session_state["page"] = page

    try:
        route(page, settings)
    except Exception as exc:
        logger.exception("Unhandled error on page %s", page)
        report_exception("Unexpected app error", exc)


if __name__ == "__main__":
    main()
