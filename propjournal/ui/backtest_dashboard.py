import streamlit as st

from propjournal import analytics, journal
from propjournal.backend import JournalBackend
from propjournal.models import BACKTEST_TABLE
from propjournal.ui.charts import equity_curve
from propjournal.ui.common import fmt_usd
from propjournal.ui.home import render_trade_stats


def render_backtest_dashboard(backend: JournalBackend, user_id: str) -> None:
    st.title("Backtest • Dashboard")
    trades_df = journal.get_trades(backend, user_id, BACKTEST_TABLE)
    if trades_df.empty:
        st.info("No backtest trades yet.")

    summary = analytics.trade_summary(trades_df)
    c1, c2, c3 = st.columns(3)
    c1.metric("Backtest trades", summary["trades"])
    c2.metric("Total P&L", fmt_usd(summary["total_pnl"]))
    c3.metric("Profit factor", f"{summary['profit_factor']:.2f}")

    render_trade_stats(trades_df, key="backtest", journal_page="backtest")
    if not trades_df.empty:
        st.plotly_chart(equity_curve(trades_df, "Backtest equity curve"), use_container_width=True)
