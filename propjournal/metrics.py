from dataclasses import dataclass, field
from enum import Enum

import pandas as pd

from propjournal.models import BLOWN_STATUS, PHASES, to_num


BLOWN_FALLBACK_RATIO = 0.9
PAYOUT_READY_MIN_PCT = 1.0
PHASE_COLORS = {"phase1": "#3B82F6", "phase2": "#F59E0B", "live": "#22C55E"}
EMPTY_COLOR = "#E5E7EB"


class BlownRule(str, Enum):
    FIXED = "fixed"
    DRAWDOWN_LIMIT = "drawdown"


def result_pct(size, balance) -> float:
    size, balance = to_num(size), to_num(balance)
    if size <= 0:
        return 0.0
    return (balance - size) / size * 100


def min_balance(size, max_drawdown_percent) -> float:
    return to_num(size) * (1 - to_num(max_drawdown_percent) / 100)


def target_balance(size, profit_target_percent) -> float:
    return to_num(size) * (1 + to_num(profit_target_percent) / 100)


def distance_to_blown_pct(size, balance, max_drawdown_percent) -> float:
    # Non-positive: the gap between balance and the drawdown floor, 0 only at the floor.
    size = to_num(size)
    if size <= 0:
        return 0.0
    gap = (to_num(balance) - min_balance(size, max_drawdown_percent)) / size * 100
    return -abs(gap)


def below_limit(size, balance, max_drawdown_percent) -> bool:
    if to_num(size) <= 0:
        return False
    return to_num(balance) < min_balance(size, max_drawdown_percent)


def blown_cushion_pct(size, balance, max_drawdown_percent) -> float:
    size = to_num(size)
    if size <= 0:
        return 0.0
    return max(0.0, (to_num(balance) - min_balance(size, max_drawdown_percent)) / size * 100)


def distance_to_pass_pct(size, balance, profit_target_percent, phase: str = "phase1") -> float:
    size = to_num(size)
    if size <= 0 or phase not in ("phase1", "phase2"):
        return 0.0
    remaining = target_balance(size, profit_target_percent) - to_num(balance)
    return max(0.0, remaining / size * 100)


def profit_money(size, balance) -> float:
    return to_num(balance) - to_num(size)


def drawdown_pct(size, balance) -> float:
    size = to_num(size)
    if size <= 0:
        return 0.0
    return (size - to_num(balance)) / size * 100


def is_blown(
    size,
    balance,
    status=None,
    max_drawdown_percent=0,
    rule: BlownRule = BlownRule.FIXED,
) -> bool:
    if str(status or "").strip().lower() == BLOWN_STATUS:
        return True
    size, balance = to_num(size), to_num(balance)
    if size <= 0:
        return False
    if rule == BlownRule.DRAWDOWN_LIMIT and to_num(max_drawdown_percent) > 0:
        return balance <= min_balance(size, max_drawdown_percent)
    return balance <= size * BLOWN_FALLBACK_RATIO


def blown_mask(accounts_df: pd.DataFrame, rule: BlownRule = BlownRule.FIXED) -> pd.Series:
    if accounts_df.empty:
        return pd.Series([], dtype=bool, index=accounts_df.index)
    return accounts_df.apply(
        lambda row: is_blown(
            row["size"],
            row["balance"],
            row.get("status"),
            row.get("max_drawdown_percent", 0),
            rule,
        ),
        axis=1,
    ).astype(bool)


def split_active_blown(
    accounts_df: pd.DataFrame, rule: BlownRule = BlownRule.FIXED
) -> tuple[pd.DataFrame, pd.DataFrame]:
    mask = blown_mask(accounts_df, rule)
    return accounts_df[~mask], accounts_df[mask]


def with_metrics(accounts_df: pd.DataFrame, rule: BlownRule = BlownRule.FIXED) -> pd.DataFrame:
    df = accounts_df.copy()
    if df.empty:
        for column in (
            "result_pct",
            "profit_money",
            "min_balance",
            "distance_to_blown_pct",
            "blown_cushion_pct",
            "distance_to_pass_pct",
            "drawdown_pct",
        ):
            df[column] = pd.Series(dtype=float)
        df["blown"] = pd.Series(dtype=bool)
        df["below_limit"] = pd.Series(dtype=bool)
        return df
    df["result_pct"] = [result_pct(s, b) for s, b in zip(df["size"], df["balance"])]
    df["profit_money"] = df["balance"] - df["size"]
    df["min_balance"] = [min_balance(s, d) for s, d in zip(df["size"], df["max_drawdown_percent"])]
    df["distance_to_blown_pct"] = [
        distance_to_blown_pct(s, b, d)
        for s, b, d in zip(df["size"], df["balance"], df["max_drawdown_percent"])
    ]
    df["blown_cushion_pct"] = [
        blown_cushion_pct(s, b, d)
        for s, b, d in zip(df["size"], df["balance"], df["max_drawdown_percent"])
    ]
    df["distance_to_pass_pct"] = [
        distance_to_pass_pct(s, b, t, p)
        for s, b, t, p in zip(df["size"], df["balance"], df["profit_target_percent"], df["phase"])
    ]
    df["drawdown_pct"] = [drawdown_pct(s, b) for s, b in zip(df["size"], df["balance"])]
    df["below_limit"] = [
        below_limit(s, b, d) for s, b, d in zip(df["size"], df["balance"], df["max_drawdown_percent"])
    ]
    df["blown"] = blown_mask(df, rule)
    return df


def allocation_by_phase(accounts_df: pd.DataFrame, rule: BlownRule = BlownRule.FIXED) -> dict[str, float]:
    active, _ = split_active_blown(accounts_df, rule)
    allocation = {phase: 0.0 for phase in PHASES}
    for phase, size in zip(active["phase"], active["size"]):
        if phase in allocation:
            allocation[phase] += to_num(size)
    allocation["total"] = sum(allocation[phase] for phase in PHASES)
    return allocation


def payout_ready(accounts_df: pd.DataFrame, rule: BlownRule = BlownRule.FIXED) -> float:
    active, _ = split_active_blown(accounts_df, rule)
    total = 0.0
    for phase, size, balance in zip(active["phase"], active["size"], active["balance"]):
        if phase != "live" or to_num(size) <= 0:
            continue
        if result_pct(size, balance) >= PAYOUT_READY_MIN_PCT:
            total += max(0.0, profit_money(size, balance))
    return total


def closest_to_blown(accounts_df: pd.DataFrame, limit: int = 3, rule: BlownRule = BlownRule.FIXED) -> pd.DataFrame:
    active, _ = split_active_blown(with_metrics(accounts_df, rule), rule)
    ranked = active[(active["size"] > 0) & (active["max_drawdown_percent"] > 0)]
    return ranked.sort_values("blown_cushion_pct", kind="stable").head(limit)


def closest_to_pass(accounts_df: pd.DataFrame, limit: int = 3, rule: BlownRule = BlownRule.FIXED) -> pd.DataFrame:
    active, _ = split_active_blown(with_metrics(accounts_df, rule), rule)
    ranked = active[
        active["phase"].isin(["phase1", "phase2"])
        & (active["size"] > 0)
        & (active["profit_target_percent"] > 0)
    ]
    return ranked.sort_values("distance_to_pass_pct", kind="stable").head(limit)


@dataclass
class PortfolioSummary:
    active_count: int = 0
    blown_count: int = 0
    active_size: float = 0.0
    active_balance: float = 0.0
    blown_size: float = 0.0
    phase_counts: dict[str, int] = field(default_factory=lambda: {phase: 0 for phase in PHASES})
    allocation: dict[str, float] = field(default_factory=dict)
    payout_ready: float = 0.0


def portfolio_summary(accounts_df: pd.DataFrame, rule: BlownRule = BlownRule.FIXED) -> PortfolioSummary:
    active, blown = split_active_blown(accounts_df, rule)
    summary = PortfolioSummary(
        active_count=len(active),
        blown_count=len(blown),
        active_size=float(active["size"].sum()) if not active.empty else 0.0,
        active_balance=float(active["balance"].sum()) if not active.empty else 0.0,
        blown_size=float(blown["size"].sum()) if not blown.empty else 0.0,
        allocation=allocation_by_phase(accounts_df, rule),
        payout_ready=payout_ready(accounts_df, rule),
    )
    for phase in active["phase"]:
        if phase in summary.phase_counts:
            summary.phase_counts[phase] += 1
    return summary
