from datetime import date

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from propjournal.calendar_view import (
    WEEKDAY_HEADERS,
    CalendarState,
    daily_counts,
    daily_pnl,
    month_grid,
    pnl_tone,
    trades_on,
    weekly_totals,
)
from propjournal.metrics import EMPTY_COLOR, PHASE_COLORS
from propjournal.models import OUTCOMES, PHASE_LABELS, PHASES, to_num

CALENDAR_CSS = """
<style>
.pnl-wrap {
    border: 1px solid #232733;
    border-radius: 12px;
    background: radial-gradient(circle at top left, #1b202d 0%, #121620 70%);
    padding: 14px;
}
.pnl-grid {
    display: grid;
    grid-template-columns: repeat(8, minmax(90px, 1fr));
    gap: 8px;
}
.pnl-head {
    color: #9ba3b4;
    font-size: 13px;
    font-weight: 600;
    letter-spacing: 0.4px;
    padding: 4px 6px 8px 6px;
}
.pnl-head-last {
    background: linear-gradient(90deg, #5536d6 0%, #7b4ef2 100%);
    color: #f3edff;
    border-radius: 8px;
    text-align: center;
}
.day-cell, .week-cell {
    border: 1px solid #2b313f;
    border-radius: 10px;
    min-height: 92px;
    padding: 8px;
    background: rgba(15, 18, 25, 0.7);
}
.day-selected { border-color: #7b4ef2; box-shadow: 0 0 0 1px #7b4ef2; }
.day-num { color: #eef3ff; font-size: 17px; font-weight: 700; }
.day-pnl { margin-top: 20px; font-size: 15px; font-weight: 700; }
.day-trades { margin-top: 3px; color: #91a0b8; font-size: 12px; }
.pnl-pos { color: #2acc74; }
.pnl-neg { color: #ef5350; }
.pnl-flat { color: #7f8ca3; }
.week-cell { display: flex; align-items: center; justify-content: center; }
.week-pos {
    background: linear-gradient(180deg, rgba(30, 114, 69, 0.72) 0%, rgba(25, 82, 53, 0.85) 100%);
    border-color: #226e49;
}
.week-neg {
    background: linear-gradient(180deg, rgba(138, 39, 45, 0.75) 0%, rgba(97, 26, 30, 0.9) 100%);
    border-color: #8d313b;
}
.week-flat { background: rgba(35, 39, 49, 0.55); }
.week-body { text-align: center; }
.week-label { color: #b6bfce; font-size: 11px; font-weight: 700; letter-spacing: 0.8px; }
.week-pnl { margin-top: 8px; font-size: 24px; font-weight: 800; line-height: 1.05; }
.week-trades { margin-top: 10px; color: #c3cad7; font-size: 12px; font-weight: 600; }
</style>
"""


def _plural(count: int) -> str:
    return f'{count} trade{"s" if count != 1 else ""}'


def allocation_donut(allocation: dict[str, float]) -> go.Figure:
    total = allocation.get("total", 0.0)
    if total <= 0:
        labels, values, colors = ["No active accounts"], [1], [EMPTY_COLOR]
    else:
        labels = [PHASE_LABELS[phase] for phase in PHASES]
        values = [allocation.get(phase, 0.0) for phase in PHASES]
        colors = [PHASE_COLORS[phase] for phase in PHASES]
    fig = go.Figure(
        go.Pie(
            labels=labels,
            values=values,
            hole=0.6,
            marker={"colors": colors},
            sort=False,
            textinfo="none" if total <= 0 else "percent",
            hovertemplate="%{label}: $%{value:,.0f}<extra></extra>",
        )
    )
    fig.update_layout(
        showlegend=total > 0,
        margin={"t": 10, "b": 10, "l": 10, "r": 10},
        height=260,
        annotations=[{"text": f"${total:,.0f}", "showarrow": False, "font": {"size": 18}}],
    )
    return fig


def equity_curve(trades_df: pd.DataFrame, title: str = "Equity Curve"):
    chart_df = (
        trades_df.sort_values(["trade_date", "created_at"])
        .assign(cumulative_pnl=lambda x: x["pnl_money"].map(to_num).cumsum())
    )
    return px.line(chart_df, x="trade_date", y="cumulative_pnl", title=title, markers=True)


def render_pnl_calendar(trades_df: pd.DataFrame, state: CalendarState) -> None:
    year, month = state.cursor_month.year, state.cursor_month.month
    grid = month_grid(year, month)
    pnl_by_day = daily_pnl(trades_df, year, month)
    counts_by_day = daily_counts(trades_df, year, month)
    weeks = weekly_totals(grid, pnl_by_day, counts_by_day)

    st.markdown(CALENDAR_CSS, unsafe_allow_html=True)
    headers = WEEKDAY_HEADERS + ["P&L"]
    html_parts = ['<div class="pnl-wrap"><div class="pnl-grid">']
    for i, h in enumerate(headers):
        extra = " pnl-head-last" if i == len(headers) - 1 else ""
        html_parts.append(f'<div class="pnl-head{extra}">{h}</div>')

    for week, (week_pnl, week_trades) in zip(grid, weeks):
        for day in week:
            if day is None:
                html_parts.append('<div class="day-cell"></div>')
                continue
            day_trades = counts_by_day.get(day, 0)
            day_pnl = pnl_by_day.get(day, 0.0)
            pnl_html = ""
            if day_trades > 0:
                pnl_html = (
                    f'<div class="day-pnl pnl-{pnl_tone(day_pnl)}">${day_pnl:,.0f}</div>'
                    f'<div class="day-trades">{_plural(day_trades)}</div>'
                )
            selected = " day-selected" if day == state.selected_date else ""
            html_parts.append(f'<div class="day-cell{selected}"><div class="day-num">{day.day}</div>{pnl_html}</div>')

        tone = pnl_tone(week_pnl)
        html_parts.append(
            f"""
            <div class="week-cell week-{tone}">
                <div class="week-body">
                    <div class="week-label">WEEK</div>
                    <div class="week-pnl pnl-{tone}">${week_pnl:,.0f}</div>
                    <div class="week-trades">{_plural(week_trades)}</div>
                </div>
            </div>
            """
        )

    html_parts.append("</div></div>")
    st.markdown("".join(html_parts), unsafe_allow_html=True)


def render_trade_calendar(trades_df: pd.DataFrame, key: str) -> None:
    state_key = f"calendar_state_{key}"
    state = st.session_state.get(state_key)
    if state is None:
        state = CalendarState()
        st.session_state[state_key] = state

    st.subheader("P&L Calendar")
    prev_col, label_col, next_col = st.columns([1, 3, 1])
    if prev_col.button("◀ Previous", key=f"{key}_prev", use_container_width=True):
        state.previous_month()
        st.rerun()
    label_col.markdown(f"<h4 style='text-align:center'>{state.cursor_month:%B %Y}</h4>", unsafe_allow_html=True)
    if next_col.button("Next ▶", key=f"{key}_next", use_container_width=True):
        state.next_month()
        st.rerun()

    render_pnl_calendar(trades_df, state)

    counts = daily_counts(trades_df, state.cursor_month.year, state.cursor_month.month)
    trading_days = sorted(counts)
    if not trading_days:
        st.caption("No trades this month.")
        return

    picked = st.pills(
        "Show trades for day",
        options=trading_days,
        format_func=lambda d: f"{d.day} ({counts[d]})",
        key=f"{key}_day_pick_{state.cursor_month:%Y%m}",
    )
    if picked != state.selected_date:
        if picked is None:
            state.selected_date = None
        else:
            state.toggle(picked)
        st.rerun()

    if state.selected_date is not None:
        render_day_trades(trades_df, state.selected_date)


def render_day_trades(trades_df: pd.DataFrame, day: date) -> None:
    selected = trades_on(trades_df, day)
    st.markdown(f"**Trades on {day.isoformat()}**")
    if selected.empty:
        st.info("No trades on this day.")
        return
    view = selected[["asset", "direction", "killzone", "setup", "outcome", "rr", "pnl_money", "comment"]].copy()
    view["outcome"] = view["outcome"].map(lambda o: OUTCOMES.get(o, o))
    st.dataframe(view, use_container_width=True, hide_index=True)
