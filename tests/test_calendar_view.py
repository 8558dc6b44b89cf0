from datetime import date

from propjournal.calendar_view import (
    CalendarState,
    daily_counts,
    daily_pnl,
    month_grid,
    pnl_tone,
    shift_month,
    trades_on,
    weekly_totals,
)


def test_month_grid_is_monday_first_and_fixed_size():
    grid = month_grid(2024, 5)
    assert len(grid) == 6
    assert all(len(week) == 7 for week in grid)
    # 1 May 2024 was a Wednesday
    assert grid[0][:2] == [None, None]
    assert grid[0][2] == date(2024, 5, 1)
    assert grid[5] == [None] * 7


def test_month_grid_six_week_month():
    grid = month_grid(2024, 9)
    assert grid[0][6] == date(2024, 9, 1)
    assert grid[5][0] == date(2024, 9, 30)


def test_shift_month_wraps_years():
    assert shift_month(date(2024, 12, 1), 1) == date(2025, 1, 1)
    assert shift_month(date(2024, 1, 1), -1) == date(2023, 12, 1)
    assert shift_month(date(2024, 5, 1), -17) == date(2022, 12, 1)


def test_daily_pnl_and_counts(sample_trades):
    pnl = daily_pnl(sample_trades, 2024, 5)
    assert pnl[date(2024, 5, 6)] == 100.0
    assert pnl[date(2024, 5, 20)] == -100.0
    assert date(2024, 5, 10) not in pnl
    counts = daily_counts(sample_trades, 2024, 5)
    assert counts[date(2024, 5, 6)] == 2
    assert daily_pnl(sample_trades, 2024, 6) == {}


def test_weekly_totals(sample_trades):
    grid = month_grid(2024, 5)
    totals = weekly_totals(grid, daily_pnl(sample_trades, 2024, 5), daily_counts(sample_trades, 2024, 5))
    assert totals[0] == (0.0, 0)
    assert totals[1] == (255.0, 5)
    assert totals[3] == (-100.0, 1)
    assert totals[5] == (0.0, 0)


def test_trades_on_newest_first(sample_trades):
    day = trades_on(sample_trades, date(2024, 5, 6))
    assert day["outcome"].tolist() == ["sl", "tp"]


def test_pnl_tone():
    assert pnl_tone(5) == "pos"
    assert pnl_tone(-0.5) == "neg"
    assert pnl_tone(0) == "flat"


def test_calendar_state_selection():
    state = CalendarState(cursor_month=date(2024, 5, 1))
    state.toggle(date(2024, 5, 6))
    assert state.selected_date == date(2024, 5, 6)
    state.toggle(date(2024, 5, 6))
    assert state.selected_date is None

    state.toggle(date(2024, 5, 7))
    state.next_month()
    assert state.cursor_month == date(2024, 6, 1)
    assert state.selected_date is None

    state.toggle(date(2024, 6, 3))
    state.previous_month()
    assert state.cursor_month == date(2024, 5, 1)
    assert state.selected_date is None
