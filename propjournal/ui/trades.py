import io
from dataclasses import replace
from datetime import date

import pandas as pd
import streamlit as st
from streamlit_paste_button import paste_image_button

from propjournal import journal
from propjournal.backend import JournalBackend
from propjournal.config import Settings
from propjournal.models import (
    BACKTEST_TABLE,
    DIRECTIONS,
    KILLZONES,
    MARKET_PHASES,
    OUTCOMES,
    TRADES_TABLE,
    account_label,
    normalize_pnl,
    to_num,
)
from propjournal.ui.charts import equity_curve
from propjournal.ui.common import fmt_usd, navigate_to, report_exception

SHOTS = (("htf", "HTF screenshot"), ("ltf", "LTF screenshot"))
LIST_COLUMNS = ["trade_date", "asset", "killzone", "direction", "market_phase", "setup", "risk_pct", "rr", "outcome", "pnl_money"]


def _pick(label: str, options: dict, key: str, current=None):
    keys = list(options)
    index = keys.index(current) if current in keys else 0
    return st.selectbox(label, options=keys, index=index, format_func=lambda k: options[k], key=key)


def _pasted_image(prefix: str, shot: str) -> bytes | None:
    state_key = f"pending_{prefix}_{shot}_image_bytes"
    version = st.session_state.get("paste_widget_version", 0)
    result = paste_image_button(f"Paste {shot.upper()} image", key=f"paste_{prefix}_{shot}_{version}")
    pending = st.session_state.get(state_key)
    if result.image_data is not None and pending is None:
        buffer = io.BytesIO()
        result.image_data.save(buffer, format="PNG")
        st.session_state[state_key] = buffer.getvalue()
        pending = st.session_state[state_key]
    if pending:
        st.image(pending, width=180)
    return pending


def _clear_pasted(prefix: str) -> None:
    for shot, _ in SHOTS:
        st.session_state[f"pending_{prefix}_{shot}_image_bytes"] = None
    st.session_state["paste_widget_version"] = st.session_state.get("paste_widget_version", 0) + 1


def _screenshot_inputs(prefix: str, current: dict) -> dict:
    refs = {}
    cols = st.columns(2)
    for col, (shot, label) in zip(cols, SHOTS):
        with col:
            refs[shot] = st.text_input(
                f"{label} URL",
                value=str(current.get(f"{shot}_screenshot_url") or ""),
                key=f"{prefix}_{shot}_url",
            )
            refs[f"{shot}_upload"] = st.file_uploader(
                f"or upload {label}",
                type=["png", "jpg", "jpeg", "webp"],
                accept_multiple_files=False,
                key=f"{prefix}_{shot}_upload",
            )
            refs[f"{shot}_pasted"] = _pasted_image(prefix, shot)
    return refs


def _resolve_screenshots(settings: Settings, user_id: str, refs: dict) -> dict:
    resolved = {}
    for shot, _ in SHOTS:
        stored = journal.save_trade_image(
            settings.image_dir,
            user_id,
            uploaded_file=refs.get(f"{shot}_upload"),
            pasted_image_bytes=refs.get(f"{shot}_pasted"),
        )
        resolved[f"{shot}_screenshot_url"] = stored or refs.get(shot, "")
    return resolved


def render_trade_form(
    backend: JournalBackend,
    settings: Settings,
    user_id: str,
    table: str,
    accounts_df: pd.DataFrame,
    current: dict | None = None,
) -> None:
    live = table == TRADES_TABLE
    editing = current is not None
    current = current or {}
    prefix = f"{table}_edit_{current['id']}" if editing else f"{table}_new"

    c1, c2, c3 = st.columns(3)
    default_date = date.fromisoformat(current["trade_date"]) if current.get("trade_date") else date.today()
    trade_date = c1.date_input("Date", value=default_date, key=f"{prefix}_date")
    asset = c2.text_input("Asset", value=str(current.get("asset", "")), placeholder="XAUUSD", key=f"{prefix}_asset")
    account_id = None
    if live:
        ids = accounts_df["id"].tolist()
        labels = {str(r["id"]): account_label(r) for _, r in accounts_df.iterrows()}
        index = ids.index(current.get("account_id")) if current.get("account_id") in ids else 0
        account_id = c3.selectbox(
            "Account", options=ids, index=index, format_func=lambda i: labels.get(i, i), key=f"{prefix}_account"
        )
    else:
        setup_value = c3.text_input("Setup", value=str(current.get("setup") or ""), key=f"{prefix}_setup_bt")

    d1, d2, d3 = st.columns(3)
    with d1:
        killzone = _pick("Killzone", KILLZONES, f"{prefix}_killzone", current.get("killzone"))
    with d2:
        direction = _pick("Direction", DIRECTIONS, f"{prefix}_direction", current.get("direction"))
    with d3:
        market_phase = _pick("Market phase", MARKET_PHASES, f"{prefix}_market_phase", current.get("market_phase"))

    if live:
        setup_value = st.text_input("Setup", value=str(current.get("setup") or ""), key=f"{prefix}_setup")

    e1, e2, e3, e4 = st.columns(4)
    risk_pct = e1.number_input("Risk %", value=float(to_num(current.get("risk_pct", 1.0))), step=0.25, key=f"{prefix}_risk")
    rr = e2.number_input("RR", value=float(to_num(current.get("rr", 2.0))), step=0.5, key=f"{prefix}_rr")
    with e3:
        outcome = _pick("Outcome", OUTCOMES, f"{prefix}_outcome", current.get("outcome"))
    pnl_money = e4.number_input(
        "P&L ($)",
        value=float(abs(to_num(current.get("pnl_money", 0.0)))),
        step=10.0,
        key=f"{prefix}_pnl",
        help="Sign follows the outcome: SL and BE- are saved as losses.",
    )
    st.caption(f"Will be saved as {fmt_usd(normalize_pnl(outcome, pnl_money))}")

    refs = _screenshot_inputs(prefix, current)
    comment = st.text_area("Comment", value=str(current.get("comment") or ""), key=f"{prefix}_comment")

    label = "Save changes" if editing else "Add trade"
    if st.button(label, type="primary", key=f"{prefix}_submit"):
        form = {
            "trade_date": trade_date,
            "asset": asset,
            "killzone": killzone,
            "direction": direction,
            "market_phase": market_phase,
            "setup": setup_value,
            "risk_pct": risk_pct,
            "rr": rr,
            "outcome": outcome,
            "pnl_money": pnl_money,
            "comment": comment,
            "account_id": account_id,
        }
        try:
            trade = journal.parse_trade_form(form, live)
            trade = replace(trade, **_resolve_screenshots(settings, user_id, refs))
            if editing:
                if not journal.update_trade(backend, user_id, str(current["id"]), trade, table, settings.image_dir):
                    st.warning("Trade not found.")
                    return
                st.session_state["edit_trade_id"] = None
            else:
                journal.save_trade(backend, user_id, trade, table)
            _clear_pasted(prefix)
            st.rerun()
        except journal.ValidationError as exc:
            st.warning(str(exc))
        except Exception as exc:
            report_exception("Save trade failed", exc)


def render_trade_list(backend: JournalBackend, settings: Settings, user_id: str, table: str, trades_df: pd.DataFrame) -> None:
    if trades_df.empty:
        st.info("No trades yet.")
        return
    view = trades_df[LIST_COLUMNS].copy()
    view["outcome"] = view["outcome"].map(lambda o: OUTCOMES.get(o, o))
    st.dataframe(view, use_container_width=True, hide_index=True)

    options = trades_df["id"].tolist()
    labels = {
        str(r["id"]): f"{r['trade_date']} | {r['asset']} | {OUTCOMES.get(r['outcome'], r['outcome'])} | {fmt_usd(r['pnl_money'])}"
        for _, r in trades_df.iterrows()
    }
    selected = st.selectbox("Select trade", options=options, format_func=lambda i: labels.get(i, i), key=f"{table}_selected")
    row = trades_df[trades_df["id"] == selected].iloc[0].to_dict()

    for shot, label in SHOTS:
        ref = str(row.get(f"{shot}_screenshot_url") or "")
        if not ref:
            continue
        if journal.is_local_image(ref, settings.image_dir, user_id):
            st.image(ref, caption=label, width=420)
        elif ref.startswith(("http://", "https://")):
            st.markdown(f"[{label}]({ref})")
        else:
            st.caption(f"{label}: file not available")

    a1, a2, a3 = st.columns([1, 2, 1])
    if a1.button("Edit", key=f"{table}_edit_btn"):
        st.session_state["edit_trade_id"] = selected
        st.rerun()
    confirm = a2.checkbox("Confirm deletion", key=f"{table}_confirm_delete")
    if a3.button("Delete", key=f"{table}_delete_btn"):
        if not confirm:
            st.warning("Tick confirm before deleting the trade.")
        else:
            try:
                if not journal.delete_trade(backend, user_id, selected, table, settings.image_dir):
                    st.warning("Trade not found.")
                st.session_state["edit_trade_id"] = None
                st.rerun()
            except Exception as exc:
                report_exception("Delete trade failed", exc)


def render_journal_page(backend: JournalBackend, settings: Settings, user_id: str, table: str) -> None:
    live = table == TRADES_TABLE
    head, side = st.columns([4, 1])
    head.title("Trade journal" if live else "Backtest")
    if not live and side.button("Dashboard", use_container_width=True):
        navigate_to("backtest/dashboard")
    if not live:
        st.caption("Separate mode: backtest trades never touch your accounts or live trades.")

    accounts_df = journal.get_accounts(backend, user_id) if live else pd.DataFrame()
    trades_df = journal.get_trades(backend, user_id, table)

    if live and accounts_df.empty:
        st.info("Add an account before logging live trades.")
        if st.button("Add account"):
            navigate_to("accounts/new")
        return

    edit_id = st.session_state.get("edit_trade_id")
    editing = None
    if edit_id is not None and not trades_df.empty and (trades_df["id"] == edit_id).any():
        editing = trades_df[trades_df["id"] == edit_id].iloc[0].to_dict()

    with st.expander("Edit trade" if editing else "New trade", expanded=True):
        render_trade_form(backend, settings, user_id, table, accounts_df, editing)
        if editing and st.button("Cancel edit", key=f"{table}_cancel_edit"):
            st.session_state["edit_trade_id"] = None
            st.rerun()

    if live and not trades_df.empty:
        labels = {str(r["id"]): account_label(r) for _, r in accounts_df.iterrows()}
        scope = st.selectbox(
            "Account filter",
            options=["all"] + accounts_df["id"].tolist(),
            format_func=lambda i: "All accounts" if i == "all" else labels.get(i, i),
        )
        if scope != "all":
            trades_df = trades_df[trades_df["account_id"] == scope]

    render_trade_list(backend, settings, user_id, table, trades_df)
    if not trades_df.empty:
        st.plotly_chart(equity_curve(trades_df), use_container_width=True)


def render_trades_page(backend: JournalBackend, settings: Settings, user_id: str) -> None:
    render_journal_page(backend, settings, user_id, TRADES_TABLE)


def render_backtest_page(backend: JournalBackend, settings: Settings, user_id: str) -> None:
    render_journal_page(backend, settings, user_id, BACKTEST_TABLE)
