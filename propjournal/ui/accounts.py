import streamlit as st

from propjournal import journal
from propjournal.backend import JournalBackend
from propjournal.config import Settings
from propjournal.metrics import split_active_blown, with_metrics
from propjournal.models import PHASE_LABELS, PHASES, account_label
from propjournal.ui.common import fmt_pct, fmt_usd, navigate_to, report_exception


def render_accounts_page(backend: JournalBackend, settings: Settings, user_id: str) -> None:
    head_col, add_col = st.columns([4, 1])
    head_col.title("Accounts")
    if add_col.button("Add account", type="primary", use_container_width=True):
        navigate_to("accounts/new")

    accounts_df = with_metrics(journal.get_accounts(backend, user_id), settings.blown_rule)
    active, blown = split_active_blown(accounts_df, settings.blown_rule)

    if active.empty:
        st.info("No active accounts yet.")
    for phase in PHASES:
        phase_df = active[active["phase"] == phase]
        if phase_df.empty:
            continue
        st.subheader(PHASE_LABELS[phase])
        for _, row in phase_df.iterrows():
            render_account_card(backend, user_id, row.to_dict())
    other = active[~active["phase"].isin(PHASES)]
    if not other.empty:
        st.subheader(PHASE_LABELS["other"])
        for _, row in other.iterrows():
            render_account_card(backend, user_id, row.to_dict())

    st.subheader(f"Blown accounts ({len(blown)})")
    if blown.empty:
        st.caption("None.")
    for _, row in blown.iterrows():
        render_blown_card(backend, user_id, row.to_dict())

    payouts_df = journal.get_payouts(backend, user_id)
    if not payouts_df.empty:
        st.subheader("Payouts")
        labels = {str(r["id"]): account_label(r) for _, r in accounts_df.iterrows()}
        view = payouts_df.assign(account=payouts_df["account_id"].map(lambda a: labels.get(a, a)))
        st.dataframe(view[["created_at", "account", "amount"]], use_container_width=True, hide_index=True)
        st.caption(f"Total withdrawn: {fmt_usd(float(payouts_df['amount'].sum()))}")


def render_account_card(backend: JournalBackend, user_id: str, row: dict) -> None:
    account_id = str(row["id"])
    with st.container(border=True):
        st.markdown(f"**{account_label(row)}** ({PHASE_LABELS.get(row['phase'], row['phase'])})")
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Balance", fmt_usd(row["balance"]), delta=fmt_pct(row["result_pct"]))
        dd_label = "Below drawdown limit by" if row["below_limit"] else "To drawdown limit"
        c2.metric(dd_label, fmt_pct(row["distance_to_blown_pct"]), help=f"Min balance {fmt_usd(row['min_balance'])}")
        if row["phase"] == "live":
            c3.metric("Profit", fmt_usd(row["profit_money"]))
        else:
            c3.metric("To profit target", fmt_pct(row["distance_to_pass_pct"]))
        c4.metric("Drawdown", fmt_pct(max(0.0, row["drawdown_pct"])))

        b1, b2, b3, b4 = st.columns(4)
        if b1.button("Edit", key=f"edit_{account_id}", use_container_width=True):
            st.session_state["edit_account_id"] = account_id
            navigate_to("accounts/edit", id=account_id)
        if row["phase"] == "live" and row["profit_money"] > 0:
            if b2.button("Withdraw profit", key=f"withdraw_{account_id}", use_container_width=True):
                try:
                    amount = journal.withdraw_profit(backend, user_id, row)
                    st.success(f"Withdrew {fmt_usd(amount)}.")
                    st.rerun()
                except journal.ValidationError as exc:
                    st.warning(str(exc))
                except Exception as exc:
                    report_exception("Withdraw profit failed", exc)
        if b3.button("Mark blown", key=f"blown_{account_id}", use_container_width=True):
            try:
                journal.mark_blown(backend, user_id, account_id)
                st.rerun()
            except Exception as exc:
                report_exception("Update account failed", exc)
        render_delete_button(backend, user_id, account_id, b4)


def render_blown_card(backend: JournalBackend, user_id: str, row: dict) -> None:
    account_id = str(row["id"])
    with st.container(border=True):
        info_col, action_col = st.columns([4, 1])
        info_col.markdown(
            f"~~{account_label(row)}~~ • balance {fmt_usd(row['balance'])} ({fmt_pct(row['result_pct'])})"
        )
        render_delete_button(backend, user_id, account_id, action_col)


def render_delete_button(backend: JournalBackend, user_id: str, account_id: str, column) -> None:
    confirm_key = f"confirm_delete_{account_id}"
    if not st.session_state.get(confirm_key):
        if column.button("Delete", key=f"delete_{account_id}", use_container_width=True):
            st.session_state[confirm_key] = True
            st.rerun()
        return
    column.caption("Deletes its trades and payouts too.")
    yes, no = column.columns(2)
    if yes.button("Yes", key=f"delete_yes_{account_id}", type="primary"):
        try:
            if not journal.delete_account(backend, user_id, account_id):
                st.warning("Account not found.")
            st.session_state[confirm_key] = False
            st.rerun()
        except Exception as exc:
            report_exception("Delete account failed", exc)
    if no.button("No", key=f"delete_no_{account_id}"):
        st.session_state[confirm_key] = False
        st.rerun()


def render_account_form_page(backend: JournalBackend, user_id: str, edit: bool = False) -> None:
    account = None
    account_id = ""
    if edit:
        account_id = str(st.query_params.get("id") or st.session_state.get("edit_account_id") or "")
        if account_id:
            account = journal.get_account(backend, user_id, account_id)
        if account is None:
            st.warning("Account not found.")
            if st.button("Back to accounts"):
                navigate_to("accounts")
            return

    st.title("Edit account" if edit else "Add account")
    defaults = account or {}
    phase_default = defaults.get("phase") if defaults.get("phase") in PHASES else "phase1"

    phase = st.selectbox(
        "Phase",
        options=list(PHASES),
        index=list(PHASES).index(phase_default),
        format_func=lambda p: PHASE_LABELS[p],
    )
    with st.form("account_form"):
        a1, a2 = st.columns(2)
        account_number = a1.text_input("Account number", value=str(defaults.get("account_number", "")))
        firm = a2.text_input("Firm", value=str(defaults.get("firm", "")), placeholder="FTMO")
        a3, a4 = st.columns(2)
        size = a3.text_input("Size ($)", value=_num_text(defaults.get("size")), placeholder="100000")
        balance = a4.text_input("Balance ($)", value=_num_text(defaults.get("balance")), placeholder="100000")
        a5, a6 = st.columns(2)
        max_dd = a5.text_input(
            "Max drawdown %",
            value=_num_text(defaults.get("max_drawdown_percent")),
            placeholder="10",
            help="Balance may not fall below size × (1 − drawdown / 100).",
        )
        target = ""
        if phase != "live":
            target = a6.text_input(
                "Profit target %",
                value=_num_text(defaults.get("profit_target_percent")),
                placeholder="8",
            )
        submitted = st.form_submit_button("Save", type="primary")

    if submitted:
        form = {
            "account_number": account_number,
            "firm": firm,
            "size": size,
            "phase": phase,
            "balance": balance,
            "max_drawdown_percent": max_dd,
            "profit_target_percent": target,
        }
        try:
            parsed = journal.parse_account_form(form)
            if edit:
                if not journal.update_account(backend, user_id, account_id, parsed):
                    st.warning("Account not found.")
                    return
            else:
                journal.add_account(backend, user_id, parsed)
            st.session_state["edit_account_id"] = None
            navigate_to("accounts")
        except journal.ValidationError as exc:
            st.warning(str(exc))
        except Exception as exc:
            report_exception("Save account failed", exc)

    if st.button("Cancel"):
        navigate_to("accounts")


def _num_text(value) -> str:
    if value in (None, ""):
        return ""
    number = float(value)
    return f"{number:g}" if number != int(number) else str(int(number))
