import pytest

from propjournal.backend.sqlite_backend import SqliteBackend
from propjournal.models import AccountInput, accounts_frame, trades_frame


@pytest.fixture
def backend(tmp_path):
    store = SqliteBackend(tmp_path / "journal.db")
    yield store
    store.close()


@pytest.fixture
def user(backend):
    return backend.sign_up("trader@example.com", "secret123", "trader")


@pytest.fixture
def other_user(backend, user):
    return backend.sign_up("other@example.com", "secret456", "other")


@pytest.fixture
def live_account(backend, user):
    account = AccountInput(
        account_number="L-1",
        firm="FTMO",
        size=100000,
        phase="live",
        balance=103500,
        max_drawdown_percent=10,
    )
    return backend.insert("accounts", user.user_id, account.to_row())


def make_trade(trade_date: str, outcome: str, pnl: float = 100.0, **extra) -> dict:
    row = {
        "id": extra.pop("id", f"{trade_date}-{outcome}-{pnl}"),
        "trade_date": trade_date,
        "asset": "XAUUSD",
        "killzone": "london",
        "direction": "long",
        "market_phase": "continuation",
        "setup": "breaker",
        "risk_pct": 1.0,
        "rr": 2.0,
        "outcome": outcome,
        "pnl_money": pnl,
        "created_at": f"{trade_date}T10:00:00",
    }
    row.update(extra)
    return row


@pytest.fixture
def trade_rows():
    return make_trade


@pytest.fixture
def sample_trades():
    rows = [
        make_trade("2024-05-06", "tp", 200, setup="breaker", asset="xauusd", killzone="london"),
        make_trade("2024-05-06", "sl", -100, setup="fvg", asset="EURUSD", killzone="ny",
                   created_at="2024-05-06T15:00:00"),
        make_trade("2024-05-07", "tp", 150, setup="breaker", asset="XAUUSD", killzone="london"),
        make_trade("2024-05-08", "be_plus", 10, setup="fvg", asset="EURUSD", killzone="ny"),
        make_trade("2024-05-09", "be_minus", -5, setup="ob", asset="NAS100", killzone="asia"),
        make_trade("2024-05-20", "sl", -100, setup="fvg", asset="EURUSD", killzone="ny"),
    ]
    return trades_frame(rows)


@pytest.fixture
def sample_accounts():
    rows = [
        {"id": "a1", "account_number": "P1", "firm": "FTMO", "size": 100000, "phase": "phase1",
         "balance": 104000, "max_drawdown_percent": 10, "profit_target_percent": 8},
        {"id": "a2", "account_number": "P2", "firm": "FundedNext", "size": 50000, "phase": "phase2",
         "balance": 48000, "max_drawdown_percent": 10, "profit_target_percent": 5},
        {"id": "a3", "account_number": "L1", "firm": "FTMO", "size": 25000, "phase": "live",
         "balance": 26000, "max_drawdown_percent": 10, "profit_target_percent": 0},
        {"id": "a4", "account_number": "L2", "firm": "E8", "size": 10000, "phase": "live",
         "balance": 8900, "max_drawdown_percent": 8, "profit_target_percent": 0},
        {"id": "a5", "account_number": "P3", "firm": "E8", "size": 20000, "phase": "phase1",
         "balance": 20500, "max_drawdown_percent": 6, "profit_target_percent": 8, "status": "Blown"},
    ]
    return accounts_frame(rows)


@pytest.fixture
def empty_trades():
    return trades_frame([])


@pytest.fixture
def empty_accounts():
    return accounts_frame([])
