from datetime import date

import pandas as pd
import streamlit as st

from propjournal import analytics, journal
from propjournal.backend import JournalBackend
from propjournal.config import Settings
from propjournal.metrics import closest_to_blown, closest_to_pass, portfolio_summary, split_active_blown, with_metrics
from propjournal.models import OUTCOMES, TRADES_TABLE, account_label
from propjournal.ui.charts import allocation_donut, render_trade_calendar
from propjournal.ui.common import fmt_pct, fmt_usd, navigate_to


def render_outcome_chips(outcomes: list[str]) -> None:
    if not outcomes:
        st.caption("No trades")
        return
    chips = []
    for outcome in outcomes:
        tone = "chip-win" if analytics.is_win(outcome) else "chip-loss"
        chips.append(f'<span class="outcome-chip {tone}">{OUTCOMES.get(outcome, outcome)}</span>')
    st.markdown("".join(chips), unsafe_allow_html=True)


def render_best_worst(title: str, pair: analytics.BestWorst) -> None:
    with st.container(border=True):
        st.markdown(f"**{title}**")
        if pair.best is None:
            st.caption(f"Insufficient data (need at least {analytics.MIN_GROUP_SAMPLES} trades per group)")
            return
        st.markdown(f"Best: **{pair.best.key}**")
        st.caption(pair.best.describe())
        st.markdown(f"Worst: **{pair.worst.key}**")
        st.caption(pair.worst.describe())


def render_home(backend: JournalBackend, settings: Settings, user_id: str) -> None:
    st.title("Home")
    accounts_df = with_metrics(journal.get_accounts(backend, user_id), settings.blown_rule)
    summary = portfolio_summary(accounts_df, settings.blown_rule)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Active accounts", summary.active_count, help=fmt_usd(summary.active_size))
    c2.metric("Blown accounts", summary.blown_count, help=fmt_usd(summary.blown_size))
    c3.metric("Current balance (active)", fmt_usd(summary.active_balance))
    c4.metric("Payout ready (live)", fmt_usd(summary.payout_ready))

    chart_col, stats_col = st.columns([1, 1])
    with chart_col:
        st.subheader("Allocation (active)")
        st.plotly_chart(allocation_donut(summary.allocation), use_container_width=True)
    with stats_col:
        st.subheader("By phase")
        for phase, label in (("phase1", "Phase 1"), ("phase2", "Phase 2"), ("live", "Live")):
            st.markdown(
                f"{label}: **{summary.phase_counts.get(phase, 0)}** accounts, "
                f"{fmt_usd(summary.allocation.get(phase, 0.0))}"
            )
        if st.button("Manage accounts", use_container_width=True):
            navigate_to("accounts")

    near_dd, near_pass = st.columns(2)
    with near_dd:
        with st.container(border=True):
            st.markdown("**Closest to drawdown limit**")
            ranked = closest_to_blown(accounts_df, rule=settings.blown_rule)
            if ranked.empty:
                st.caption("No active accounts with a drawdown limit.")
            for _, row in ranked.iterrows():
                st.markdown(
                    f"{account_label(row)}: {fmt_pct(row['distance_to_blown_pct'])} "
                    f"{'below' if row['below_limit'] else 'to'} limit "
                    f"(min {fmt_usd(row['min_balance'])})"
                )
    with near_pass:
        with st.container(border=True):
            st.markdown("**Closest to passing**")
            ranked = closest_to_pass(accounts_df, rule=settings.blown_rule)
            if ranked.empty:
                st.caption("No challenge accounts with a profit target.")
            for _, row in ranked.iterrows():
                st.markdown(f"{account_label(row)}: {fmt_pct(row['distance_to_pass_pct'])} left")

    _, blown = split_active_blown(accounts_df, settings.blown_rule)
    if not blown.empty:
        with st.expander(f"Blown accounts: {len(blown)} • {fmt_usd(summary.blown_size)}"):
            for _, row in blown.iterrows():
                st.markdown(f"{account_label(row)}: balance {fmt_usd(row['balance'])}")

    render_trade_stats(journal.get_trades(backend, user_id, TRADES_TABLE), key="home", journal_page="trades")


def render_trade_stats(trades_df: pd.DataFrame, key: str, journal_page: str) -> None:
    st.subheader("Trade analytics")
    week_df = analytics.trailing_days(trades_df, 7)
    cursor = st.session_state.get(f"calendar_state_{key}")
    month_anchor = cursor.cursor_month if cursor is not None else date.today()
    month_df = analytics.trades_in_month(trades_df, month_anchor.year, month_anchor.month)
    wr_month = analytics.win_rate(month_df)
    wr_week = analytics.win_rate(week_df)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric(f"Trades in {month_anchor:%B}", len(month_df))
    c2.metric("Trades in last 7 days", len(week_df))
    c3.metric("Win rate (month)", fmt_pct(wr_month.pct, 0), help=f"W:{wr_month.wins} / L:{wr_month.losses}")
    c4.metric("Win rate (7 days)", fmt_pct(wr_week.pct, 0), help=f"W:{wr_week.wins} / L:{wr_week.losses}")

    st.markdown("**Last 5 trades**")
    render_outcome_chips(analytics.recent_outcomes(trades_df, 5))

    g1, g2, g3 = st.columns(3)
    with g1:
        render_best_worst("Setups", analytics.best_worst(trades_df, "setup"))
    with g2:
        render_best_worst("Assets", analytics.best_worst(trades_df, "asset"))
    with g3:
        render_best_worst("Killzones", analytics.best_worst(trades_df, "killzone"))

    if st.button("Open journal", key=f"{key}_open_journal"):
        navigate_to(journal_page)
    render_trade_calendar(trades_df, key=key)
