import streamlit as st

from propjournal import analytics, journal
from propjournal.backend import AuthenticationError, AuthSession, JournalBackend
from propjournal.models import TRADES_TABLE
from propjournal.ui.common import fmt_pct, fmt_usd, navigate_to, report_exception
from propjournal.ui.home import render_best_worst, render_outcome_chips

FORM_TONES = {"On Fire": "green", "Tilt": "red", "Neutral": "gray"}


def render_profile_page(backend: JournalBackend, session: AuthSession) -> None:
    user_id = session.user_id
    head, link = st.columns([4, 1])
    head.title("Profile")
    if link.button("Trade journal", use_container_width=True):
        navigate_to("trades")

    profile = journal.get_profile(backend, user_id)
    username = str(profile.get("username") or session.email.split("@")[0])
    trades_df = journal.get_trades(backend, user_id, TRADES_TABLE)
    summary = analytics.trade_summary(trades_df)
    level = summary["level"]
    form = summary["form"]

    st.markdown(f"### {username}  \n{session.email}")
    lvl_col, form_col = st.columns(2)
    with lvl_col:
        with st.container(border=True):
            st.markdown(f"**Level {level.level}** • {level.title}")
            st.progress(min(1.0, level.progress_pct / 100))
            st.caption(f"XP {level.xp} • {level.current_xp}/{level.next_need} • {level.to_next} to next level")
    with form_col:
        with st.container(border=True):
            tone = FORM_TONES.get(form.label, "gray")
            st.markdown(f"**Trader form:** :{tone}[{form.label}] ({form.value:.0f}/100)")
            st.progress(min(1.0, form.value / 100))
            st.caption(f"Last {analytics.FORM_WINDOW} trades: WR {fmt_pct(form.recent_win_rate, 0)} • score {form.score_sum:+.1f}")

    c1, c2, c3, c4, c5, c6 = st.columns(6)
    c1.metric("Trades", summary["trades"])
    c2.metric("Win rate", fmt_pct(summary["win_rate"], 0), help=f"W:{summary['wins']} / L:{summary['losses']}")
    c3.metric("Profit factor", f"{summary['profit_factor']:.2f}")
    c4.metric("Average RR", f"{summary['avg_rr']:.2f}")
    c5.metric("Average risk %", f"{summary['avg_risk']:.2f}")
    c6.metric("Expectancy", fmt_usd(summary["expectancy"]))

    d1, d2 = st.columns(2)
    with d1:
        st.markdown(f"Discipline: **{summary['discipline']:.0f}/100**")
        st.progress(summary["discipline"] / 100)
    with d2:
        st.markdown(f"Risk control: **{summary['risk_control']:.0f}/100**")
        st.progress(summary["risk_control"] / 100)

    st.markdown(f"Win streak: **{summary['win_streak']}** • Loss streak: **{summary['loss_streak']}**")
    render_outcome_chips(analytics.recent_outcomes(trades_df, analytics.FORM_WINDOW))

    g1, g2, g3 = st.columns(3)
    with g1:
        render_best_worst("Setups", analytics.best_worst(trades_df, "setup"))
    with g2:
        render_best_worst("Assets", analytics.best_worst(trades_df, "asset"))
    with g3:
        render_best_worst("Killzones", analytics.best_worst(trades_df, "killzone"))

    st.subheader("Settings")
    name_col, pass_col = st.columns(2)
    with name_col:
        with st.form("username_form"):
            new_name = st.text_input("Username", value=username)
            if st.form_submit_button("Save username"):
                try:
                    journal.save_username(backend, user_id, new_name)
                    st.success("Username saved.")
                except journal.ValidationError as exc:
                    st.warning(str(exc))
                except Exception as exc:
                    report_exception("Save username failed", exc)
    with pass_col:
        with st.form("password_form", clear_on_submit=True):
            new_password = st.text_input("New password", type="password")
            confirm = st.text_input("Confirm new password", type="password")
            if st.form_submit_button("Change password"):
                try:
                    journal.change_password(backend, new_password, confirm)
                    st.success("Password changed.")
                except journal.ValidationError as exc:
                    st.warning(str(exc))
                except AuthenticationError as exc:
                    st.error(str(exc))
