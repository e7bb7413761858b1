"""Deterministic tests for the signal analyzers.

All tests use fixed bar fixtures. Same input = same output, always.
"""

import pytest

from confluence.analysis.bands import analyze_bollinger
from confluence.analysis.base import round_half_up, score_signals
from confluence.analysis.candlesticks import analyze_candlesticks
from confluence.analysis.fibonacci import (
    analyze_fibonacci,
    extension_levels,
    retracement_levels,
)
from confluence.analysis.indicators import calculate_rsi, calculate_sma
from confluence.analysis.levels import (
    analyze_support_resistance,
    find_resistance_levels,
    find_support_levels,
)
from confluence.analysis.models import BUY, NEUTRAL, SELL, Bar, Signal
from confluence.analysis.moving_averages import analyze_moving_averages
from confluence.analysis.oscillators import analyze_macd, analyze_rsi
from confluence.analysis.sentiment import analyze_sentiment
from confluence.analysis.trend_strength import analyze_trend_strength
from confluence.analysis.volume import analyze_volume
from confluence.news.models import NewsItem


# ── Bar fixtures ─────────────────────────────────────────────────────────

def _make_bar(
    i: int,
    o: float,
    h: float,
    l: float,
    c: float,
    vol: float = 1000,
) -> Bar:
    return Bar(
        timestamp=f"2025-01-01T{i // 60:02d}:{i % 60:02d}:00Z",
        open=o, high=h, low=l, close=c, volume=vol,
    )


def _bars_from_closes(closes: list[float], spread: float = 0.5) -> list[Bar]:
    return [
        _make_bar(i, c, c + spread, c - spread, c)
        for i, c in enumerate(closes)
    ]


def _names(result) -> list[str]:
    return [s.name for s in result.signals]


# ── Shared scoring ───────────────────────────────────────────────────────


class TestScoreSignals:
    def test_buy_wins(self):
        result = score_signals(
            [Signal("a", BUY, 80), Signal("b", SELL, 20)], cap=90
        )
        assert result.direction == BUY
        assert result.confidence == 80  # 50 + round(60 / 2)

    def test_cap_applies(self):
        result = score_signals([Signal("a", SELL, 200)], cap=85)
        assert result.direction == SELL
        assert result.confidence == 85

    def test_tie_is_neutral(self):
        result = score_signals(
            [Signal("a", BUY, 65), Signal("b", SELL, 65)], cap=90
        )
        assert result.direction == NEUTRAL
        assert result.confidence == 50

    def test_neutral_signals_do_not_vote(self):
        result = score_signals([Signal("Doji", NEUTRAL, 50)], cap=85)
        assert result.direction == NEUTRAL
        assert result.confidence == 50
        assert len(result.signals) == 1

    def test_half_rounds_up(self):
        assert round_half_up(32.5) == 33
        assert round_half_up(-0.5) == 0
        assert round_half_up(2.4) == 2


# ── Moving averages ──────────────────────────────────────────────────────


def _golden_cross_bars() -> list[Bar]:
    """Long decline then a sharp rally, cut at the bar where SMA50 crosses SMA200."""
    closes = [100.0 - 0.2 * k for k in range(200)]
    closes += [closes[-1] + 1.0 * j for j in range(1, 151)]

    sma50 = calculate_sma(closes, 50)
    sma200 = calculate_sma(closes, 200)
    for i in range(200, len(closes)):
        if sma50[i] > sma200[i] and sma50[i - 1] <= sma200[i - 1]:
            return _bars_from_closes(closes[: i + 1])
    raise AssertionError("fixture never crosses")


class TestMovingAverages:
    def test_golden_cross(self):
        result = analyze_moving_averages(_golden_cross_bars())
        golden = [s for s in result.signals if s.name == "Golden Cross"]
        assert len(golden) == 1
        assert golden[0].direction == BUY
        assert golden[0].strength == 80
        assert result.direction == BUY
        assert 50 < result.confidence <= 90

    def test_price_above_all_mas_in_rally(self):
        result = analyze_moving_averages(_golden_cross_bars())
        assert "Price Above All MAs" in _names(result)

    def test_flat_market_neutral(self):
        result = analyze_moving_averages(_bars_from_closes([100.0] * 210))
        assert result.direction == NEUTRAL
        assert result.confidence == 50
        assert set(result.values) == {"ema9", "sma20", "sma50", "sma200"}

    def test_decline_below_all_mas(self):
        closes = [300.0 - k for k in range(220)]
        result = analyze_moving_averages(_bars_from_closes(closes))
        assert "Price Below All MAs" in _names(result)
        assert result.direction == SELL


# ── RSI ──────────────────────────────────────────────────────────────────


def _oversold_closes() -> list[float]:
    """Choppy range followed by three strong down bars."""
    closes = [100.0 if i % 2 == 0 else 100.5 for i in range(30)]
    return closes + [99.0, 96.0, 92.0]


class TestRSI:
    def test_oversold_strength_scales(self):
        closes = _oversold_closes()
        rsi = calculate_rsi(closes, 14)[-1]
        assert rsi < 30

        result = analyze_rsi(_bars_from_closes(closes))
        oversold = [s for s in result.signals if s.name == "RSI Oversold"]
        assert len(oversold) == 1
        assert oversold[0].direction == BUY
        assert oversold[0].strength == pytest.approx(70 + (30 - rsi) * 2)
        assert result.direction == BUY
        assert result.confidence == 90

    def test_overbought_on_straight_rally(self):
        closes = [100.0 + i for i in range(25)]
        result = analyze_rsi(_bars_from_closes(closes))
        overbought = [s for s in result.signals if s.name == "RSI Overbought"]
        # RSI pinned at 100
        assert overbought[0].strength == pytest.approx(130.0)
        assert result.direction == SELL
        assert result.confidence == 90


# ── MACD ─────────────────────────────────────────────────────────────────


class TestMACD:
    def test_jump_gives_bullish_momentum(self):
        closes = [100.0] * 40 + [104.0]
        result = analyze_macd(_bars_from_closes(closes))
        assert "MACD Bullish Momentum" in _names(result)
        assert result.direction == BUY
        assert result.values["macd"] > 0

    def test_drop_gives_bearish_momentum(self):
        closes = [100.0] * 40 + [96.0]
        result = analyze_macd(_bars_from_closes(closes))
        assert "MACD Bearish Momentum" in _names(result)
        assert result.direction == SELL


# ── Bollinger ────────────────────────────────────────────────────────────


class TestBollinger:
    def test_price_above_upper_band(self):
        closes = [99.0 if i % 2 == 0 else 101.0 for i in range(23)] + [110.0]
        result = analyze_bollinger(_bars_from_closes(closes))
        assert _names(result) == ["Price Above Upper Band"]
        assert result.direction == SELL
        assert result.confidence == 85
        assert result.values["percentB"] > 1.0

    def test_price_below_lower_band(self):
        closes = [99.0 if i % 2 == 0 else 101.0 for i in range(23)] + [90.0]
        result = analyze_bollinger(_bars_from_closes(closes))
        assert "Price Below Lower Band" in _names(result)
        assert result.direction == BUY


# ── Support / Resistance ─────────────────────────────────────────────────


def _breakout_bars() -> list[Bar]:
    bars = [_make_bar(i, 100, 101, 99, 100) for i in range(5)]
    bars.append(_make_bar(5, 100, 105, 99, 104))
    bars += [_make_bar(i, 100, 101, 99, 100) for i in range(6, 11)]
    bars.append(_make_bar(11, 100, 103, 99, 104))
    bars.append(_make_bar(12, 105, 107, 105, 106))
    return bars


class TestSupportResistance:
    def test_flat_lows_merge_into_one_level(self):
        levels = find_support_levels([10.0] * 13)
        assert len(levels) == 1
        assert levels[0].price == 10.0
        assert levels[0].strength == 3

    def test_single_peak_resistance(self):
        highs = [101.0] * 5 + [105.0] + [101.0] * 5
        levels = find_resistance_levels(highs)
        assert [lv.price for lv in levels] == [105.0]

    def test_breakout_above_resistance(self):
        result = analyze_support_resistance(_breakout_bars())
        breakout = [s for s in result.signals if s.name == "Breakout Above Resistance"]
        assert len(breakout) == 1
        assert breakout[0].strength == 78
        assert result.direction == BUY
        assert result.values["resistances"] == [105.0]
        assert result.values["supports"] == [99.0]

    def test_no_levels_neutral(self):
        closes = [100.0 + i for i in range(15)]
        result = analyze_support_resistance(_bars_from_closes(closes))
        assert result.direction == NEUTRAL
        assert result.values["nearestResistance"] is None


# ── Volume ───────────────────────────────────────────────────────────────


class TestVolume:
    def test_high_volume_rally_with_climax(self):
        bars = [_make_bar(i, 100, 100.5, 99.5, 100, 1000) for i in range(20)]
        bars.append(_make_bar(20, 100, 101.5, 99.5, 101, 3000))
        result = analyze_volume(bars)
        signals = {s.name: s for s in result.signals}
        assert signals["High Volume Price Increase"].strength == 72
        assert signals["Volume Climax"].direction == SELL
        assert result.direction == BUY
        assert result.confidence == 51

    def test_low_volume_drop_is_contrarian_buy(self):
        bars = [_make_bar(i, 100, 100.5, 99.5, 100, 1000) for i in range(20)]
        bars.append(_make_bar(20, 100, 100.5, 98.5, 99, 500))
        result = analyze_volume(bars)
        assert _names(result) == ["Low Volume Price Movement"]
        assert result.direction == BUY
        assert result.confidence == 78


# ── Candlesticks ─────────────────────────────────────────────────────────


class TestCandlesticks:
    def test_hammer(self):
        result = analyze_candlesticks([_make_bar(0, 10.0, 10.6, 8.5, 10.5)])
        assert _names(result) == ["Hammer"]
        assert result.direction == BUY
        assert result.confidence == 83

    def test_doji_is_neutral(self):
        result = analyze_candlesticks([_make_bar(0, 10.0, 10.5, 9.5, 10.01)])
        assert _names(result) == ["Doji"]
        assert result.direction == NEUTRAL
        assert result.confidence == 50

    def test_bullish_engulfing(self):
        bars = [
            _make_bar(0, 11.0, 11.1, 9.9, 10.0),
            _make_bar(1, 9.8, 11.6, 9.7, 11.5),
        ]
        result = analyze_candlesticks(bars)
        assert "Bullish Engulfing" in _names(result)
        assert result.confidence == 85

    def test_morning_star(self):
        bars = [
            _make_bar(0, 12.0, 12.1, 9.9, 10.0),
            _make_bar(1, 9.9, 10.0, 9.7, 9.8),
            _make_bar(2, 10.0, 11.6, 9.9, 11.5),
        ]
        result = analyze_candlesticks(bars)
        assert "Morning Star" in _names(result)
        assert result.direction == BUY
        assert result.confidence == 85


# ── Fibonacci ────────────────────────────────────────────────────────────


class TestFibonacci:
    def test_uptrend_ordering(self):
        levels = {lv.name: lv.price for lv in retracement_levels(110.0, 100.0, True)}
        assert levels["0"] == 110.0
        assert levels["1"] == 100.0
        assert (
            levels["0.236"] >= levels["0.382"] >= levels["0.5"]
            >= levels["0.618"] >= levels["0.786"]
        )
        assert all(100.0 <= p <= 110.0 for p in levels.values())

    def test_downtrend_mirrors(self):
        levels = {lv.name: lv.price for lv in retracement_levels(110.0, 100.0, False)}
        assert levels["0"] == 100.0
        assert levels["0.618"] == pytest.approx(106.18)

    def test_extensions_beyond_swing(self):
        up = {lv.name: lv.price for lv in extension_levels(110.0, 100.0, True)}
        down = {lv.name: lv.price for lv in extension_levels(110.0, 100.0, False)}
        assert up["1.272"] == pytest.approx(112.72)
        assert up["2.618"] == pytest.approx(126.18)
        assert down["1.618"] == pytest.approx(93.82)

    def test_price_at_golden_retracement(self):
        closes = [100.0] * 10 + [110.0] * 5 + [101.0] * 14 + [103.8]
        bars = [_make_bar(i, c, c, c, c) for i, c in enumerate(closes)]
        result = analyze_fibonacci(bars)
        assert result.values["nearestLevel"] == "0.618"
        assert _names(result) == ["Price at 0.618 Retracement in Uptrend"]
        assert result.direction == BUY
        assert result.confidence == 83


# ── Trend strength ───────────────────────────────────────────────────────


class TestTrendStrength:
    def test_strong_uptrend(self):
        result = analyze_trend_strength(_bars_from_closes([100.0 + i for i in range(40)]))
        assert _names(result) == ["Strong Uptrend"]
        assert result.signals[0].strength == 90
        assert result.confidence == 90

    def test_flat_is_weak_trend(self):
        result = analyze_trend_strength(_bars_from_closes([100.0] * 35))
        assert _names(result) == ["Weak Trend"]
        assert result.direction == NEUTRAL


# ── Sentiment ────────────────────────────────────────────────────────────


def _news(*scores: float) -> list[NewsItem]:
    return [NewsItem(headline=f"h{i}", source="wire", sentiment=s) for i, s in enumerate(scores)]


class TestSentiment:
    def test_positive(self):
        result = analyze_sentiment(_news(0.5, 0.5))
        assert result.direction == BUY
        assert result.confidence == 80
        assert result.signals[0].name == "Positive Market Sentiment"
        assert result.signals[0].strength == 80

    def test_moderate_negative(self):
        result = analyze_sentiment(_news(-0.25, -0.25))
        assert result.direction == SELL
        assert result.confidence == 75

    def test_inside_band_is_neutral(self):
        result = analyze_sentiment(_news(0.1, 0.2, 0.15))
        assert result.direction == NEUTRAL
        assert result.confidence == 50
        assert result.signals == ()

    def test_no_news_neutral(self):
        result = analyze_sentiment([])
        assert result.direction == NEUTRAL
        assert result.confidence == 50

    def test_only_first_five_count(self):
        result = analyze_sentiment(_news(0.0, 0.0, 0.0, 0.0, 0.0, 1.0, 1.0))
        assert result.direction == NEUTRAL

    def test_recent_news_lists_notable_items(self):
        result = analyze_sentiment(_news(0.9, -0.6, 0.1))
        notable = result.values["recentNews"]
        assert [n["sentiment"] for n in notable] == ["positive", "negative"]
