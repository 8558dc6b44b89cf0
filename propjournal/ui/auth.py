import streamlit as st
import streamlit.components.v1 as components

from propjournal import journal
from propjournal.backend import AuthenticationError, JournalBackend
from propjournal.config import Settings
from propjournal.ui.common import navigate_to, report_exception, set_session

AUTH_CSS = """
<style>
.auth-title {
    font-size: 36px;
    font-weight: 800;
    line-height: 1.1;
    margin-bottom: 6px;
    text-align: center;
}
.auth-subtitle {
    font-size: 14px;
    color: #9ba8bf;
    text-align: center;
    margin-bottom: 14px;
}
div[data-testid="stForm"] {
    border: 1px solid #2e3546;
    border-radius: 14px;
    padding: 16px 14px 6px 14px;
}
</style>
"""

FRAGMENT_TO_QUERY_JS = """
<script>
const page = window.parent.location;
const fragment = new URLSearchParams(page.hash.replace(/^#/, ""));
if (fragment.get("access_token") || fragment.get("token_hash")) {
  const search = new URLSearchParams(page.search);
  fragment.forEach((value, key) => search.set(key, value));
  search.set("page", "reset-password");
  page.replace(page.pathname + "?" + search.toString());
}
</script>
"""


def _auth_header(title: str, subtitle: str) -> None:
    st.markdown(AUTH_CSS, unsafe_allow_html=True)
    st.markdown(f'<div class="auth-title">{title}</div>', unsafe_allow_html=True)
    st.markdown(f'<div class="auth-subtitle">{subtitle}</div>', unsafe_allow_html=True)


def render_login_page(backend: JournalBackend) -> None:
    _, auth_col, _ = st.columns([1, 1.25, 1])
    with auth_col:
        with st.container(border=True):
            _auth_header("Welcome Back", "Sign in to your prop journal.")
            with st.form("login_form"):
                email = st.text_input("Email", placeholder="name@email.com")
                password = st.text_input("Password", type="password", placeholder="Enter your password")
                submitted = st.form_submit_button("Sign In", use_container_width=True)
            if submitted:
                try:
                    session = journal.login(backend, email, password)
                    set_session(session)
                    navigate_to("home")
                except journal.ValidationError as exc:
                    st.warning(str(exc))
                except AuthenticationError as exc:
                    st.error(str(exc))

            b1, b2 = st.columns(2)
            if b1.button("Forgot password?", use_container_width=True):
                navigate_to("forgot-password")
            if b2.button("Create account", use_container_width=True):
                navigate_to("register")


def render_register_page(backend: JournalBackend) -> None:
    _, auth_col, _ = st.columns([1, 1.25, 1])
    with auth_col:
        with st.container(border=True):
            _auth_header("Create Account", "Set up your profile to start tracking accounts.")
            with st.form("register_form"):
                username = st.text_input("Username (optional)", placeholder="Trader name")
                email = st.text_input("Email", placeholder="name@email.com")
                password = st.text_input("Password", type="password", placeholder="At least 6 characters")
                confirm = st.text_input("Confirm Password", type="password", placeholder="Repeat password")
                submitted = st.form_submit_button("Create Account", use_container_width=True)
            if submitted:
                try:
                    session = journal.register(backend, email, password, confirm, username)
                except journal.ValidationError as exc:
                    st.warning(str(exc))
                except AuthenticationError as exc:
                    st.error(str(exc))
                else:
                    if session is not None:
                        set_session(session)
                        navigate_to("home")
                    st.success("Account created. Check your email to confirm it, then sign in.")

            if st.button("Already have an account? Sign in", use_container_width=True):
                navigate_to("login")


def render_forgot_password_page(backend: JournalBackend, settings: Settings) -> None:
    _, auth_col, _ = st.columns([1, 1.25, 1])
    with auth_col:
        with st.container(border=True):
            _auth_header("Reset Password", "We will send a reset link to your email.")
            with st.form("forgot_form"):
                email = st.text_input("Email", placeholder="name@email.com")
                submitted = st.form_submit_button("Send reset link", use_container_width=True)
            if submitted:
                try:
                    backend.request_password_reset(journal.validate_email(email), settings.site_url)
                    st.success("If this email is registered, a reset link is on its way.")
                except journal.ValidationError as exc:
                    st.warning(str(exc))
                except Exception as exc:
                    report_exception("Reset request failed", exc)
            if st.button("Back to sign in", use_container_width=True):
                navigate_to("login")


def render_reset_password_page(backend: JournalBackend) -> None:
    token, refresh_token = journal.recovery_tokens(st.query_params)
    if not token:
        # hosted recovery links put their tokens after "#", which never reaches the server
        components.html(FRAGMENT_TO_QUERY_JS, height=0)
    _, auth_col, _ = st.columns([1, 1.25, 1])
    with auth_col:
        with st.container(border=True):
            _auth_header("Choose a New Password", "Set the password you will sign in with.")
            with st.form("reset_form"):
                pasted = ""
                if not token:
                    pasted = st.text_input(
                        "Reset link or token",
                        help="Paste the full link from the email (or the address bar) if it was not filled in.",
                    )
                password = st.text_input("New password", type="password")
                confirm = st.text_input("Confirm new password", type="password")
                submitted = st.form_submit_button("Update password", use_container_width=True)
            if submitted:
                if pasted:
                    token, refresh_token = journal.recovery_tokens_from_link(pasted)
                try:
                    journal.reset_password(backend, token, password, confirm, refresh_token)
                    backend.sign_out()
                    set_session(None)
                    st.success("Password updated. Sign in with the new password.")
                except journal.ValidationError as exc:
                    st.warning(str(exc))
                except AuthenticationError as exc:
                    st.error(str(exc))
            if st.button("Back to sign in", use_container_width=True):
                navigate_to("login")
