from datetime import date

import pytest

from propjournal import analytics
from propjournal.models import trades_frame


def test_win_rate_counts_break_even_on_its_side(sample_trades):
    wr = analytics.win_rate(sample_trades)
    assert (wr.wins, wr.losses) == (3, 3)
    assert wr.pct == pytest.approx(50.0)


def test_win_rate_empty_window_is_zero(empty_trades):
    wr = analytics.win_rate(empty_trades)
    assert wr.pct == 0.0
    assert wr.total == 0


def test_win_rate_ignores_unknown_outcomes(trade_rows):
    df = trades_frame([trade_rows("2024-05-01", "tp"), trade_rows("2024-05-02", "skipped")])
    assert analytics.win_rate(df).pct == 100.0


def test_windows(sample_trades):
    assert len(analytics.trades_in_month(sample_trades, 2024, 5)) == 6
    assert len(analytics.trades_in_month(sample_trades, 2024, 4)) == 0
    assert len(analytics.trailing_days(sample_trades, 7, today=date(2024, 5, 9))) == 5
    assert len(analytics.trades_between(sample_trades, date(2024, 5, 6), date(2024, 5, 8))) == 4


def test_month_bounds_december():
    assert analytics.month_bounds(2024, 12) == (date(2024, 12, 1), date(2024, 12, 31))
    assert analytics.month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))


def test_best_worst_by_setup(sample_trades):
    pair = analytics.best_worst(sample_trades, "setup")
    assert pair.best.key == "breaker"
    assert pair.best.avg_score == pytest.approx(1.0)
    assert pair.worst.key == "fvg"
    assert pair.worst.avg_score == pytest.approx(-0.5)
    assert pair.worst.count == 3


def test_groups_under_two_samples_are_excluded(sample_trades):
    keys = [group.key for group in analytics.group_scores(sample_trades, "setup")]
    assert "ob" not in keys
    assert analytics.best_worst(sample_trades.head(1), "setup").best is None


def test_asset_groups_are_case_insensitive(sample_trades):
    groups = {group.key: group for group in analytics.group_scores(sample_trades, "asset")}
    assert groups["XAUUSD"].count == 2
    assert groups["XAUUSD"].win_rate == pytest.approx(100.0)
    assert "NAS100" not in groups


def test_blank_group_keys_are_skipped(trade_rows):
    df = trades_frame([trade_rows("2024-05-01", "tp", setup=""), trade_rows("2024-05-02", "sl", setup=None)])
    assert analytics.group_scores(df, "setup") == []


def test_streaks_and_recent(sample_trades):
    assert analytics.win_streak(sample_trades) == 0
    assert analytics.loss_streak(sample_trades) == 2
    assert analytics.recent_outcomes(sample_trades, 3) == ["sl", "be_minus", "be_plus"]


def test_win_streak_from_most_recent(trade_rows):
    df = trades_frame(
        [
            trade_rows("2024-05-01", "sl"),
            trade_rows("2024-05-02", "tp"),
            trade_rows("2024-05-03", "be_plus"),
        ]
    )
    assert analytics.win_streak(df) == 2
    assert analytics.loss_streak(df) == 0


@pytest.mark.parametrize(
    "trades, level, title",
    [
        (0, 1, "Novice"),
        (16, 1, "Novice"),
        (17, 2, "Novice"),
        (34, 3, "Novice"),
        (86, 4, "Novice"),
        (87, 5, "Consistent"),
        (100000, 50, "Elite"),
    ],
)
def test_level_thresholds(trades, level, title):
    result = analytics.level_from_trades(trades)
    assert result.level == level
    assert result.title == title


def test_level_progress():
    result = analytics.level_from_trades(17)
    assert result.xp == 51
    assert result.current_xp == 1
    assert result.next_need == 50
    assert result.to_next == 49
    assert result.progress_pct == pytest.approx(2.0)


def test_form_labels(trade_rows):
    wins = trades_frame([trade_rows(f"2024-05-{day:02d}", "tp") for day in range(1, 11)])
    losses = trades_frame([trade_rows(f"2024-05-{day:02d}", "sl") for day in range(1, 11)])
    assert analytics.form_index(wins).label == "On Fire"
    assert analytics.form_index(wins).value == pytest.approx(100.0)
    assert analytics.form_index(losses).label == "Tilt"
    assert analytics.form_index(losses).value == pytest.approx(0.0)


def test_form_neutral(sample_trades):
    form = analytics.form_index(sample_trades)
    assert form.value == pytest.approx(47.5)
    assert form.label == "Neutral"


def test_profit_factor(sample_trades, trade_rows, empty_trades):
    assert analytics.profit_factor(sample_trades) == pytest.approx(360 / 205)
    only_wins = trades_frame([trade_rows("2024-05-01", "tp", 50)])
    assert analytics.profit_factor(only_wins) == 99.0
    assert analytics.profit_factor(empty_trades) == 0.0


def test_trade_summary(sample_trades):
    summary = analytics.trade_summary(sample_trades)
    assert summary["trades"] == 6
    assert summary["total_pnl"] == pytest.approx(155.0)
    assert summary["avg_rr"] == pytest.approx(2.0)
    assert summary["risk_control"] == pytest.approx(100.0)
    assert summary["discipline"] == pytest.approx(30 + 360 / 205 * 10 - 8)
    assert summary["level"].level == 1


def test_trade_summary_empty(empty_trades):
    summary = analytics.trade_summary(empty_trades)
    assert summary["trades"] == 0
    assert summary["win_rate"] == 0.0
    assert summary["expectancy"] == 0.0
    assert summary["risk_control"] == 0.0
