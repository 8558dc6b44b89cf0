import calendar
from dataclasses import dataclass, field
from datetime import date

import pandas as pd

from propjournal.analytics import trades_in_month
from propjournal.models import to_num


GRID_WEEKS = 6
WEEKDAY_HEADERS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def first_of_month(day: date) -> date:
    return day.replace(day=1)


def shift_month(cursor: date, delta: int) -> date:
    index = cursor.year * 12 + (cursor.month - 1) + delta
    return date(index // 12, index % 12 + 1, 1)


def month_grid(year: int, month: int) -> list[list[date | None]]:
    """Monday-first weeks for the month, padded with None to a fixed 6x7 grid."""
    cal = calendar.Calendar(firstweekday=calendar.MONDAY)
    weeks = [
        [date(year, month, day) if day else None for day in week]
        for week in cal.monthdayscalendar(year, month)
    ]
    while len(weeks) < GRID_WEEKS:
        weeks.append([None] * 7)
    return weeks


def daily_pnl(trades_df: pd.DataFrame, year: int, month: int) -> dict[date, float]:
    month_df = trades_in_month(trades_df, year, month)
    totals: dict[date, float] = {}
    for trade_date, pnl in zip(month_df["trade_date"], month_df["pnl_money"]) if not month_df.empty else []:
        day = date.fromisoformat(str(trade_date)[:10])
        totals[day] = totals.get(day, 0.0) + to_num(pnl)
    return totals


def daily_counts(trades_df: pd.DataFrame, year: int, month: int) -> dict[date, int]:
    month_df = trades_in_month(trades_df, year, month)
    counts: dict[date, int] = {}
    for trade_date in month_df["trade_date"] if not month_df.empty else []:
        day = date.fromisoformat(str(trade_date)[:10])
        counts[day] = counts.get(day, 0) + 1
    return counts


def weekly_totals(
    grid: list[list[date | None]], pnl_by_day: dict[date, float], counts_by_day: dict[date, int]
) -> list[tuple[float, int]]:
    totals = []
    for week in grid:
        days = [d for d in week if d is not None]
        totals.append(
            (
                sum(pnl_by_day.get(d, 0.0) for d in days),
                sum(counts_by_day.get(d, 0) for d in days),
            )
        )
    return totals


def trades_on(trades_df: pd.DataFrame, day: date) -> pd.DataFrame:
    if trades_df.empty:
        return trades_df
    selected = trades_df[trades_df["trade_date"].astype(str).str.slice(0, 10) == day.isoformat()]
    return selected.sort_values("created_at", ascending=False, kind="stable")


def pnl_tone(value: float) -> str:
    if value > 0:
        return "pos"
    if value < 0:
        return "neg"
    return "flat"


@dataclass
class CalendarState:
    cursor_month: date = field(default_factory=lambda: first_of_month(date.today()))
    selected_date: date | None = None

    def next_month(self) -> None:
        self.cursor_month = shift_month(self.cursor_month, 1)
        self.selected_date = None

    def previous_month(self) -> None:
        self.cursor_month = shift_month(self.cursor_month, -1)
        self.selected_date = None

    def toggle(self, day: date) -> None:
        self.selected_date = None if self.selected_date == day else day
