import logging
import re
from datetime import date
from pathlib import Path
from types import SimpleNamespace

import pytest

from propjournal import journal
from propjournal.backend import AuthenticationError, BackendError
from propjournal.backend.sqlite_backend import SqliteBackend
from propjournal.journal import ValidationError
from propjournal.models import BACKTEST_TABLE, TRADES_TABLE


ACCOUNT_FORM = {
    "account_number": "FT-1001",
    "firm": "FTMO",
    "phase": "phase1",
    "size": "100 000",
    "balance": "100000",
    "max_drawdown_percent": "10%",
    "profit_target_percent": "8",
}

TRADE_FORM = {
    "trade_date": date(2024, 5, 7),
    "asset": "xauusd",
    "killzone": "london",
    "direction": "long",
    "market_phase": "continuation",
    "setup": "breaker",
    "risk_pct": 1,
    "rr": 3,
    "outcome": "sl",
    "pnl_money": 120,
}


class TestParseNumber:
    @pytest.mark.parametrize("value, expected", [("1 000", 1000.0), ("10%", 10.0), ("$250", 250.0), ("2,5", 2.5)])
    def test_accepts(self, value, expected):
        assert journal.parse_number(value, "Size") == expected

    @pytest.mark.parametrize("value", ["", None, "abc", "nan", "inf"])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            journal.parse_number(value, "Size")


class TestAccountForm:
    def test_valid(self):
        account = journal.parse_account_form(ACCOUNT_FORM)
        assert account.size == 100000
        assert account.max_drawdown_percent == 10
        assert account.profit_target_percent == 8

    @pytest.mark.parametrize(
        "changes, message",
        [
            ({"firm": " "}, "required"),
            ({"phase": "phase3"}, "phase"),
            ({"size": "0"}, "Size"),
            ({"balance": "-1"}, "Balance"),
            ({"max_drawdown_percent": "100"}, "drawdown"),
            ({"max_drawdown_percent": "0"}, "drawdown"),
            ({"profit_target_percent": "-2"}, "target"),
            ({"size": "lots"}, "number"),
        ],
    )
    def test_invalid(self, changes, message):
        with pytest.raises(ValidationError, match=message):
            journal.parse_account_form({**ACCOUNT_FORM, **changes})

    def test_live_ignores_target(self):
        account = journal.parse_account_form({**ACCOUNT_FORM, "phase": "live", "profit_target_percent": ""})
        assert account.profit_target_percent == 0.0


class TestAccounts:
    def test_add_get_update(self, backend, user):
        account = journal.parse_account_form(ACCOUNT_FORM)
        row = journal.add_account(backend, user.user_id, account)
        fetched = journal.get_account(backend, user.user_id, row["id"])
        assert fetched["firm"] == "FTMO"

        changed = journal.parse_account_form({**ACCOUNT_FORM, "balance": "104000"})
        assert journal.update_account(backend, user.user_id, row["id"], changed)
        assert journal.get_accounts(backend, user.user_id)["balance"].tolist() == [104000.0]

    def test_get_account_other_user(self, backend, user, other_user, live_account):
        assert journal.get_account(backend, other_user.user_id, live_account["id"]) is None

    def test_update_keeps_blown_status(self, backend, user, live_account):
        assert journal.mark_blown(backend, user.user_id, live_account["id"])
        edited = journal.parse_account_form({**ACCOUNT_FORM, "phase": "live"})
        journal.update_account(backend, user.user_id, live_account["id"], edited)
        assert journal.get_account(backend, user.user_id, live_account["id"])["status"] == "blown"

    def test_delete(self, backend, user, live_account):
        assert journal.delete_account(backend, user.user_id, live_account["id"])
        assert journal.get_accounts(backend, user.user_id).empty


class TestWithdraw:
    def test_records_payout_then_resets_balance(self, backend, user, live_account):
        account = journal.get_account(backend, user.user_id, live_account["id"])
        assert journal.withdraw_profit(backend, user.user_id, account) == 3500
        assert journal.get_account(backend, user.user_id, live_account["id"])["balance"] == 100000
        payouts = journal.get_payouts(backend, user.user_id, live_account["id"])
        assert payouts["amount"].tolist() == [3500.0]

    def test_only_live_accounts(self, backend, user):
        with pytest.raises(ValidationError, match="live"):
            journal.withdraw_profit(backend, user.user_id, {"id": "x", "phase": "phase2", "size": 1, "balance": 2})

    def test_needs_profit(self, backend, user, live_account):
        account = {**live_account, "balance": 99000}
        with pytest.raises(ValidationError, match="no profit"):
            journal.withdraw_profit(backend, user.user_id, account)
        assert journal.get_payouts(backend, user.user_id).empty

    def test_reports_partial_failure(self, tmp_path, caplog):
        class NoResetBackend(SqliteBackend):
            def update(self, table, user_id, row_id, values):
                return False

        store = NoResetBackend(tmp_path / "partial.db")
        session = store.sign_up("trader@example.com", "secret123")
        account = store.insert(
            "accounts",
            session.user_id,
            {"account_number": "L", "firm": "E8", "size": 1000, "phase": "live", "balance": 1200},
        )
        with pytest.raises(BackendError, match="was recorded but the balance was not reset"):
            journal.withdraw_profit(store, session.user_id, account)
        assert journal.get_payouts(store, session.user_id)["amount"].tolist() == [200.0]
        assert "recorded but account" in caplog.text
        store.close()

    def test_reports_failed_reset(self, tmp_path):
        class BrokenBackend(SqliteBackend):
            def update(self, table, user_id, row_id, values):
                raise BackendError("disk I/O error")

        store = BrokenBackend(tmp_path / "broken.db")
        session = store.sign_up("trader@example.com", "secret123")
        account = store.insert(
            "accounts",
            session.user_id,
            {"account_number": "L", "firm": "E8", "size": 1000, "phase": "live", "balance": 1200},
        )
        with pytest.raises(BackendError, match="disk I/O error"):
            journal.withdraw_profit(store, session.user_id, account)
        store.close()


class TestTradeForm:
    def test_valid(self):
        trade = journal.parse_trade_form(TRADE_FORM)
        assert trade.trade_date == "2024-05-07"
        assert trade.account_id is None
        row = trade.to_row()
        assert row["pnl_money"] == -120
        assert row["asset"] == "XAUUSD"

    @pytest.mark.parametrize(
        "changes, message",
        [
            ({"trade_date": ""}, "date"),
            ({"trade_date": "07/05/2024"}, "YYYY-MM-DD"),
            ({"asset": ""}, "asset"),
            ({"killzone": "tokyo"}, "killzone"),
            ({"outcome": "win"}, "outcome"),
            ({"market_phase": None}, "market phase"),
        ],
    )
    def test_invalid(self, changes, message):
        with pytest.raises(ValidationError, match=message):
            journal.parse_trade_form({**TRADE_FORM, **changes})

    def test_live_trade_needs_account(self):
        with pytest.raises(ValidationError, match="account"):
            journal.parse_trade_form(TRADE_FORM, live=True)
        trade = journal.parse_trade_form({**TRADE_FORM, "account_id": "a1"}, live=True)
        assert trade.account_id == "a1"


class TestTrades:
    def test_backtest_crud(self, backend, user):
        trade = journal.parse_trade_form(TRADE_FORM)
        row = journal.save_trade(backend, user.user_id, trade)
        later = journal.parse_trade_form({**TRADE_FORM, "trade_date": "2024-05-09", "outcome": "tp"})
        journal.save_trade(backend, user.user_id, later)

        trades = journal.get_trades(backend, user.user_id, BACKTEST_TABLE)
        assert trades["trade_date"].tolist() == ["2024-05-09", "2024-05-07"]
        window = journal.get_trades(backend, user.user_id, BACKTEST_TABLE, start=date(2024, 5, 8))
        assert len(window) == 1

        edited = journal.parse_trade_form({**TRADE_FORM, "outcome": "be_plus", "pnl_money": 5})
        assert journal.update_trade(backend, user.user_id, row["id"], edited)
        assert journal.delete_trade(backend, user.user_id, row["id"])
        assert journal.get_trades(backend, user.user_id, BACKTEST_TABLE)["outcome"].tolist() == ["tp"]

    def test_backtest_rows_drop_account(self, backend, user, live_account):
        trade = journal.parse_trade_form({**TRADE_FORM, "account_id": live_account["id"]}, live=True)
        row = journal.save_trade(backend, user.user_id, trade, table=BACKTEST_TABLE)
        assert "account_id" not in row

    def test_live_trades_filter_by_account(self, backend, user, live_account):
        trade = journal.parse_trade_form({**TRADE_FORM, "account_id": live_account["id"]}, live=True)
        journal.save_trade(backend, user.user_id, trade, table=TRADES_TABLE)
        assert len(journal.get_trades(backend, user.user_id, account_id=live_account["id"])) == 1
        assert journal.get_trades(backend, user.user_id, account_id="missing").empty

    def test_rejects_other_tables(self, backend, user):
        with pytest.raises(BackendError, match="Not a trade table"):
            journal.get_trades(backend, user.user_id, "accounts")

    def test_delete_removes_local_screenshot(self, backend, user, tmp_path):
        image_dir = tmp_path / "images"
        path = journal.save_trade_image(image_dir, user.user_id, pasted_image_bytes=b"\x89PNG")
        trade = journal.parse_trade_form({**TRADE_FORM, "htf_screenshot_url": path})
        row = journal.save_trade(backend, user.user_id, trade)
        assert journal.is_local_image(path, image_dir, user.user_id)
        assert journal.delete_trade(backend, user.user_id, row["id"], image_dir=image_dir)
        assert not journal.is_local_image(path, image_dir, user.user_id)

    def test_delete_leaves_other_users_screenshot(self, backend, user, other_user, tmp_path):
        image_dir = tmp_path / "images"
        path = journal.save_trade_image(image_dir, user.user_id, pasted_image_bytes=b"\x89PNG")
        trade = journal.parse_trade_form({**TRADE_FORM, "htf_screenshot_url": path})
        row = journal.save_trade(backend, other_user.user_id, trade)
        assert not journal.is_local_image(path, image_dir, other_user.user_id)
        assert journal.delete_trade(backend, other_user.user_id, row["id"], image_dir=image_dir)
        assert Path(path).is_file()

    def test_update_removes_replaced_screenshot(self, backend, user, tmp_path):
        image_dir = tmp_path / "images"
        first = journal.save_trade_image(image_dir, user.user_id, pasted_image_bytes=b"first")
        second = journal.save_trade_image(image_dir, user.user_id, pasted_image_bytes=b"second")
        row = journal.save_trade(backend, user.user_id, journal.parse_trade_form({**TRADE_FORM, "htf_screenshot_url": first}))

        edited = journal.parse_trade_form({**TRADE_FORM, "htf_screenshot_url": second})
        assert journal.update_trade(backend, user.user_id, row["id"], edited, image_dir=image_dir)
        assert not Path(first).exists()
        assert Path(second).is_file()

    def test_update_keeps_unchanged_screenshot(self, backend, user, tmp_path):
        image_dir = tmp_path / "images"
        path = journal.save_trade_image(image_dir, user.user_id, pasted_image_bytes=b"\x89PNG")
        trade = journal.parse_trade_form({**TRADE_FORM, "htf_screenshot_url": path})
        row = journal.save_trade(backend, user.user_id, trade)
        edited = journal.parse_trade_form({**TRADE_FORM, "htf_screenshot_url": path, "outcome": "tp"})
        assert journal.update_trade(backend, user.user_id, row["id"], edited, image_dir=image_dir)
        assert Path(path).is_file()

    def test_update_of_missing_trade_keeps_files(self, backend, user, tmp_path):
        image_dir = tmp_path / "images"
        path = journal.save_trade_image(image_dir, user.user_id, pasted_image_bytes=b"\x89PNG")
        assert not journal.update_trade(backend, user.user_id, "missing", journal.parse_trade_form(TRADE_FORM), image_dir=image_dir)
        assert Path(path).is_file()


class TestImages:
    def test_nothing_to_save(self, tmp_path):
        assert journal.save_trade_image(tmp_path, "u1") == ""

    def test_upload_keeps_suffix(self, tmp_path):
        upload = SimpleNamespace(name="Chart.JPG", getvalue=lambda: b"jpeg-bytes")
        path = journal.save_trade_image(tmp_path, "u1", uploaded_file=upload)
        assert path.endswith(".jpg")
        assert "user_u1" in path

    def test_rejects_unknown_suffix(self, tmp_path):
        upload = SimpleNamespace(name="notes.txt", getvalue=lambda: b"text")
        with pytest.raises(ValidationError):
            journal.save_trade_image(tmp_path, "u1", uploaded_file=upload)

    def test_urls_are_not_local(self, tmp_path):
        assert not journal.is_local_image("https://www.tradingview.com/x/abc/", tmp_path, "u1")
        assert not journal.is_local_image("", tmp_path, "u1")


class TestAuthFlows:
    def test_register_and_login(self, backend):
        session = journal.register(backend, "new@example.com", "secret123", "secret123", "newbie")
        assert journal.get_profile(backend, session.user_id)["username"] == "newbie"
        backend.sign_out()
        assert journal.login(backend, "new@example.com", "secret123").user_id == session.user_id

    @pytest.mark.parametrize(
        "email, password, confirm, username",
        [
            ("not-an-email", "secret123", "secret123", ""),
            ("new@example.com", "123", "123", ""),
            ("new@example.com", "secret123", "secret124", ""),
            ("new@example.com", "secret123", "secret123", "x"),
        ],
    )
    def test_register_validation(self, backend, email, password, confirm, username):
        with pytest.raises(ValidationError):
            journal.register(backend, email, password, confirm, username)

    def test_login_requires_fields(self, backend):
        with pytest.raises(ValidationError):
            journal.login(backend, " ", "secret123")

    def test_change_password(self, backend, user):
        journal.change_password(backend, "changed123", "changed123")
        with pytest.raises(AuthenticationError):
            backend.sign_in("trader@example.com", "secret123")

    def test_reset_needs_token(self, backend):
        with pytest.raises(ValidationError, match="token"):
            journal.reset_password(backend, " ", "secret123", "secret123")

    @pytest.mark.parametrize(
        "params, expected",
        [
            ({"access_token": "acc", "refresh_token": "ref"}, ("acc", "ref")),
            ({"page": "reset-password", "token": " abc "}, ("abc", "")),
            ({"token_hash": "hash123"}, ("hash123", "")),
            ({"page": "reset-password"}, ("", "")),
        ],
    )
    def test_recovery_tokens(self, params, expected):
        assert journal.recovery_tokens(params) == expected

    @pytest.mark.parametrize(
        "text, expected",
        [
            (
                "https://journal.example.com/?page=reset-password#access_token=acc&refresh_token=ref&type=recovery",
                ("acc", "ref"),
            ),
            ("http://localhost:8501/?page=reset-password&token=abc", ("abc", "")),
            ("  abc123  ", ("abc123", "")),
        ],
    )
    def test_recovery_tokens_from_link(self, text, expected):
        assert journal.recovery_tokens_from_link(text) == expected

    def test_reset_with_pasted_link(self, backend, user, caplog):
        with caplog.at_level(logging.INFO, logger="propjournal.backend.sqlite_backend"):
            backend.request_password_reset("trader@example.com", "http://localhost:8501")
        link = re.search(r"http://localhost:8501\?\S+", caplog.text).group(0)
        token, refresh_token = journal.recovery_tokens_from_link(link)
        journal.reset_password(backend, token, "changed123", "changed123", refresh_token)
        assert backend.sign_in("trader@example.com", "changed123").user_id == user.user_id

    def test_save_username(self, backend, user):
        assert journal.save_username(backend, user.user_id, "  swing  ")["username"] == "swing"
        with pytest.raises(ValidationError):
            journal.save_username(backend, user.user_id, "a" * 40)
