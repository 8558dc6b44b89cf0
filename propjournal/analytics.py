from dataclasses import dataclass
from datetime import date, timedelta

import pandas as pd

from propjournal.models import LOSS_OUTCOMES, WIN_OUTCOMES, to_num


OUTCOME_SCORES = {"tp": 1.0, "be_plus": 0.5, "be_minus": -0.5, "sl": -1.0}
MIN_GROUP_SAMPLES = 2
XP_PER_TRADE = 3
MAX_LEVEL = 50
FORM_WINDOW = 10
FORM_ON_FIRE = 68.0
FORM_TILT = 42.0
LEVEL_TITLES = [(35, "Elite"), (20, "Pro"), (10, "Advanced"), (5, "Consistent"), (1, "Novice")]


def is_win(outcome) -> bool:
    return str(outcome or "") in WIN_OUTCOMES


def is_loss(outcome) -> bool:
    return str(outcome or "") in LOSS_OUTCOMES


def outcome_score(outcome) -> float:
    return OUTCOME_SCORES.get(str(outcome or ""), 0.0)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def newest_first(trades_df: pd.DataFrame) -> pd.DataFrame:
    if trades_df.empty:
        return trades_df
    return trades_df.sort_values(["trade_date", "created_at"], ascending=False, kind="stable")


@dataclass
class WinRate:
    wins: int
    losses: int
    pct: float

    @property
    def total(self) -> int:
        return self.wins + self.losses


def win_rate(trades_df: pd.DataFrame) -> WinRate:
    if trades_df.empty:
        return WinRate(0, 0, 0.0)
    wins = int(trades_df["outcome"].map(is_win).sum())
    losses = int(trades_df["outcome"].map(is_loss).sum())
    denominator = wins + losses
    pct = wins / denominator * 100 if denominator else 0.0
    return WinRate(wins, losses, pct)


def trades_between(trades_df: pd.DataFrame, start: date, end: date) -> pd.DataFrame:
    if trades_df.empty:
        return trades_df
    dates = trades_df["trade_date"].astype(str)
    return trades_df[(dates >= start.isoformat()) & (dates <= end.isoformat())]


def trailing_days(trades_df: pd.DataFrame, days: int = 7, today: date | None = None) -> pd.DataFrame:
    today = today or date.today()
    return trades_between(trades_df, today - timedelta(days=days - 1), today)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    start = date(year, month, 1)
    next_month = date(year + month // 12, month % 12 + 1, 1)
    return start, next_month - timedelta(days=1)


def trades_in_month(trades_df: pd.DataFrame, year: int, month: int) -> pd.DataFrame:
    start, end = month_bounds(year, month)
    return trades_between(trades_df, start, end)


@dataclass
class GroupScore:
    key: str
    count: int
    avg_score: float
    win_rate: float

    def describe(self) -> str:
        return f"AVG(score): {self.avg_score:.3f} • WR: {self.win_rate:.0f}% • N: {self.count}"


@dataclass
class BestWorst:
    best: GroupScore | None
    worst: GroupScore | None


def group_scores(trades_df: pd.DataFrame, key: str, min_samples: int = MIN_GROUP_SAMPLES) -> list[GroupScore]:
    """Average outcome score per group, best first. Groups under min_samples are dropped."""
    if trades_df.empty or key not in trades_df.columns:
        return []
    keys = trades_df[key].fillna("").astype(str).str.strip()
    if key == "asset":
        keys = keys.str.upper()
    frame = pd.DataFrame(
        {
            "key": keys,
            "score": trades_df["outcome"].map(outcome_score),
            "win": trades_df["outcome"].map(is_win).astype(int),
        }
    )
    frame = frame[frame["key"] != ""]
    if frame.empty:
        return []
    grouped = frame.groupby("key").agg(count=("score", "size"), avg_score=("score", "mean"), wins=("win", "sum"))
    grouped = grouped[grouped["count"] >= min_samples]
    grouped = grouped.sort_values("avg_score", ascending=False, kind="stable")
    return [
        GroupScore(
            key=str(group_key),
            count=int(row["count"]),
            avg_score=float(row["avg_score"]),
            win_rate=float(row["wins"]) / int(row["count"]) * 100,
        )
        for group_key, row in grouped.iterrows()
    ]


def best_worst(trades_df: pd.DataFrame, key: str, min_samples: int = MIN_GROUP_SAMPLES) -> BestWorst:
    ranked = group_scores(trades_df, key, min_samples)
    if not ranked:
        return BestWorst(None, None)
    return BestWorst(ranked[0], ranked[-1])


def win_streak(trades_df: pd.DataFrame) -> int:
    streak = 0
    for outcome in newest_first(trades_df)["outcome"] if not trades_df.empty else []:
        if not is_win(outcome):
            break
        streak += 1
    return streak


def loss_streak(trades_df: pd.DataFrame) -> int:
    streak = 0
    for outcome in newest_first(trades_df)["outcome"] if not trades_df.empty else []:
        if is_win(outcome):
            break
        streak += 1
    return streak


def recent_outcomes(trades_df: pd.DataFrame, count: int = 5) -> list[str]:
    if trades_df.empty:
        return []
    return newest_first(trades_df)["outcome"].head(count).tolist()


def level_need(level: int) -> int:
    return 50 + max(0, level - 2) * 20


@dataclass
class Level:
    level: int
    xp: int
    current_xp: int
    next_need: int
    to_next: int
    progress_pct: float
    title: str


def level_from_trades(trade_count: int) -> Level:
    xp = max(0, int(trade_count)) * XP_PER_TRADE
    level = 1
    current = xp
    need = level_need(level)
    while level < MAX_LEVEL and current >= need:
        current -= need
        level += 1
        need = level_need(level)
    title = next(name for floor, name in LEVEL_TITLES if level >= floor)
    return Level(
        level=level,
        xp=xp,
        current_xp=current,
        next_need=need,
        to_next=max(0, need - current),
        progress_pct=current / need * 100 if need else 0.0,
        title=title,
    )


@dataclass
class Form:
    value: float
    label: str
    recent_win_rate: float
    score_sum: float


def form_index(trades_df: pd.DataFrame) -> Form:
    recent = newest_first(trades_df).head(FORM_WINDOW) if not trades_df.empty else trades_df
    outcomes = recent["outcome"].tolist() if not recent.empty else []
    score_sum = sum(outcome_score(o) for o in outcomes)
    wins = sum(1 for o in outcomes if is_win(o))
    recent_wr = wins / len(outcomes) * 100 if outcomes else 0.0
    score_norm = clamp((score_sum + FORM_WINDOW) / (2 * FORM_WINDOW) * 100, 0, 100)
    value = clamp(score_norm * 0.6 + recent_wr * 0.35 + clamp(win_streak(trades_df), 0, 5) * 1.0, 0, 100)
    label = "Neutral"
    if value >= FORM_ON_FIRE:
        label = "On Fire"
    elif value <= FORM_TILT:
        label = "Tilt"
    return Form(value=value, label=label, recent_win_rate=recent_wr, score_sum=score_sum)


def profit_factor(trades_df: pd.DataFrame) -> float:
    if trades_df.empty:
        return 0.0
    pnl = trades_df["pnl_money"].map(to_num)
    gross_profit = float(pnl[pnl > 0].sum())
    gross_loss = abs(float(pnl[pnl < 0].sum()))
    if gross_loss > 0:
        return gross_profit / gross_loss
    return 99.0 if gross_profit > 0 else 0.0


def trade_summary(trades_df: pd.DataFrame) -> dict:
    count = len(trades_df)
    wr = win_rate(trades_df)
    pf = profit_factor(trades_df)
    if count:
        avg_rr = float(trades_df["rr"].map(to_num).mean())
        avg_risk = float(trades_df["risk_pct"].map(to_num).mean())
        expectancy = float(trades_df["pnl_money"].map(to_num).mean())
        total_pnl = float(trades_df["pnl_money"].map(to_num).sum())
    else:
        avg_rr = avg_risk = expectancy = total_pnl = 0.0
    losses_in_row = loss_streak(trades_df)
    return {
        "trades": count,
        "wins": wr.wins,
        "losses": wr.losses,
        "win_rate": wr.pct,
        "total_pnl": total_pnl,
        "profit_factor": pf,
        "avg_rr": avg_rr,
        "avg_risk": avg_risk,
        "expectancy": expectancy,
        "win_streak": win_streak(trades_df),
        "loss_streak": losses_in_row,
        "discipline": clamp(wr.pct * 0.6 + min(pf, 5) * 10 - losses_in_row * 4, 0, 100),
        "risk_control": clamp(100 - abs(avg_risk - 1) * 120, 0, 100) if count else 0.0,
        "form": form_index(trades_df),
        "level": level_from_trades(count),
    }
