import math
import re
from dataclasses import dataclass
from datetime import date, datetime

import pandas as pd


PHASES = ("phase1", "phase2", "live")
PHASE_LABELS = {"phase1": "Phase 1", "phase2": "Phase 2", "live": "Live", "other": "Other"}
BLOWN_STATUS = "blown"

KILLZONES = {
    "asia": "Asia",
    "frank": "Frankfurt",
    "london": "London",
    "lunch": "Lunch",
    "ny": "New York",
    "late_ny": "Late NY",
}
DIRECTIONS = {"long": "Long", "short": "Short"}
MARKET_PHASES = {"reverse": "Reversal", "continuation": "Continuation", "range": "Range"}
OUTCOMES = {"sl": "Stop loss", "tp": "Take profit", "be_plus": "BE+", "be_minus": "BE-"}
WIN_OUTCOMES = ("tp", "be_plus")
LOSS_OUTCOMES = ("sl", "be_minus")

ACCOUNTS_TABLE = "accounts"
PAYOUTS_TABLE = "payouts"
TRADES_TABLE = "trades"
BACKTEST_TABLE = "backtest_trades"
PROFILES_TABLE = "profiles"
TRADE_TABLES = (TRADES_TABLE, BACKTEST_TABLE)

ACCOUNT_COLUMNS = [
    "id",
    "user_id",
    "account_number",
    "firm",
    "size",
    "phase",
    "balance",
    "max_drawdown_percent",
    "profit_target_percent",
    "status",
    "created_at",
]
ACCOUNT_NUMERIC = ["size", "balance", "max_drawdown_percent", "profit_target_percent"]

PAYOUT_COLUMNS = ["id", "user_id", "account_id", "amount", "created_at"]
PAYOUT_NUMERIC = ["amount"]

TRADE_COLUMNS = [
    "id",
    "user_id",
    "account_id",
    "trade_date",
    "day_of_week",
    "asset",
    "killzone",
    "direction",
    "market_phase",
    "setup",
    "risk_pct",
    "rr",
    "outcome",
    "pnl_money",
    "htf_screenshot_url",
    "ltf_screenshot_url",
    "comment",
    "created_at",
    "updated_at",
]
TRADE_NUMERIC = ["risk_pct", "rr", "pnl_money"]

PROFILE_COLUMNS = ["id", "username", "created_at"]

TABLE_COLUMNS = {
    ACCOUNTS_TABLE: ACCOUNT_COLUMNS,
    PAYOUTS_TABLE: PAYOUT_COLUMNS,
    TRADES_TABLE: TRADE_COLUMNS,
    BACKTEST_TABLE: [c for c in TRADE_COLUMNS if c != "account_id"],
    PROFILES_TABLE: PROFILE_COLUMNS,
}

_NUMBER_JUNK = re.compile(r"[^0-9.\-]")


def to_num(value) -> float:
    """Lenient number parsing: "10%", "$ 200", "1 000" and "10,5" all parse; junk is 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    text = str(value).strip()
    if not text:
        return 0.0
    text = re.sub(r"\s+", "", text).replace(",", ".", 1)
    text = _NUMBER_JUNK.sub("", text)
    try:
        number = float(text)
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def normalize_phase(value) -> str:
    text = str(value or "").strip().lower()
    return text if text in PHASES else "other"


def normalize_pnl(outcome: str, pnl) -> float:
    amount = abs(to_num(pnl))
    if outcome in LOSS_OUTCOMES:
        return -amount
    return amount


def day_of_week(trade_date: str | date) -> int:
    """0 = Sunday ... 6 = Saturday, the convention stored in the day_of_week column."""
    if isinstance(trade_date, str):
        trade_date = date.fromisoformat(trade_date[:10])
    return (trade_date.weekday() + 1) % 7


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


@dataclass
class AccountInput:
    account_number: str
    firm: str
    size: float
    phase: str
    balance: float
    max_drawdown_percent: float
    profit_target_percent: float = 0.0
    status: str | None = None

    def to_row(self) -> dict:
        return {
            "account_number": self.account_number.strip(),
            "firm": self.firm.strip(),
            "size": float(self.size),
            "phase": self.phase,
            "balance": float(self.balance),
            "max_drawdown_percent": float(self.max_drawdown_percent),
            "profit_target_percent": 0.0 if self.phase == "live" else float(self.profit_target_percent),
            "status": self.status,
        }


@dataclass
class TradeInput:
    trade_date: str
    asset: str
    killzone: str
    direction: str
    market_phase: str
    outcome: str
    pnl_money: float
    risk_pct: float = 1.0
    rr: float = 2.0
    setup: str = ""
    htf_screenshot_url: str = ""
    ltf_screenshot_url: str = ""
    comment: str = ""
    account_id: str | None = None

    def to_row(self) -> dict:
        row = {
            "trade_date": self.trade_date,
            "day_of_week": day_of_week(self.trade_date),
            "asset": self.asset.strip().upper(),
            "killzone": self.killzone,
            "direction": self.direction,
            "market_phase": self.market_phase,
            "setup": self.setup.strip() or None,
            "risk_pct": to_num(self.risk_pct),
            "rr": to_num(self.rr),
            "outcome": self.outcome,
            "pnl_money": normalize_pnl(self.outcome, self.pnl_money),
            "htf_screenshot_url": self.htf_screenshot_url.strip() or None,
            "ltf_screenshot_url": self.ltf_screenshot_url.strip() or None,
            "comment": self.comment.strip() or None,
        }
        if self.account_id is not None:
            row["account_id"] = self.account_id
        return row


def _coerce_frame(rows: list[dict], columns: list[str], numeric: list[str]) -> pd.DataFrame:
    df = pd.DataFrame(rows)
    for column in columns:
        if column not in df.columns:
            df[column] = None
    df = df[columns + [c for c in df.columns if c not in columns]].copy()
    for column in numeric:
        df[column] = df[column].map(to_num).astype(float)
    for column in columns:
        if column not in numeric:
            df[column] = df[column].where(df[column].notna(), "")
            if column in ("id", "user_id", "account_id"):
                df[column] = df[column].astype(str)
    return df


def accounts_frame(rows: list[dict]) -> pd.DataFrame:
    df = _coerce_frame(rows, ACCOUNT_COLUMNS, ACCOUNT_NUMERIC)
    df["phase"] = df["phase"].map(normalize_phase)
    df["status"] = df["status"].astype(str).str.strip().str.lower()
    return df


def trades_frame(rows: list[dict]) -> pd.DataFrame:
    df = _coerce_frame(rows, TRADE_COLUMNS, TRADE_NUMERIC)
    df["trade_date"] = df["trade_date"].astype(str).str.slice(0, 10)
    df["outcome"] = df["outcome"].astype(str).str.strip()
    return df


def payouts_frame(rows: list[dict]) -> pd.DataFrame:
    return _coerce_frame(rows, PAYOUT_COLUMNS, PAYOUT_NUMERIC)


def account_label(row) -> str:
    number = str(row.get("account_number") or "").strip()
    firm = str(row.get("firm") or "").strip()
    size = to_num(row.get("size"))
    parts = [number or "Account"]
    if firm:
        parts.append(firm)
    if size:
        parts.append(f"${size:,.0f}")
    return " • ".join(parts)
