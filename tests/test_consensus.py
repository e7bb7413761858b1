"""Tests for the consensus engine, danger signals and the analysis pipeline."""

from datetime import datetime, timezone

import pytest

from confluence.analysis import pipeline
from confluence.analysis.consensus import compute_consensus, extract_danger_signals, side_scores
from confluence.analysis.models import (
    BUY,
    NEUTRAL,
    SELL,
    AnalyzerResult,
    DangerSignal,
    Signal,
    WeightedAnalysis,
)
from confluence.analysis.pipeline import INSUFFICIENT_HISTORY, run_analysis
from confluence.analysis.registry import (
    BAR_ANALYZERS,
    AnalyzerSpec,
    get_analyzer,
    total_weight,
)
from confluence.data.sources import SyntheticDataSource
from confluence.news.models import NewsItem

_FIXED_NOW = datetime(2025, 1, 10, 15, 0, tzinfo=timezone.utc)

REPORT_ORDER = [
    "Moving Averages",
    "RSI",
    "MACD",
    "Bollinger Bands",
    "Support/Resistance",
    "Volume",
    "Candlestick Patterns",
    "Fibonacci",
    "Trend Strength",
    "Market Sentiment",
]


# ── Helpers ──────────────────────────────────────────────────────────────


def _vote(name: str, direction: str, confidence: int, weight: int, *signals) -> WeightedAnalysis:
    return WeightedAnalysis(name, AnalyzerResult(direction, confidence, tuple(signals)), weight)


def _synthetic_bars(symbol: str = "AAPL", limit: int = 250):
    return SyntheticDataSource(clock=lambda: _FIXED_NOW).generate(symbol, "5Min", limit)


# ── Consensus ────────────────────────────────────────────────────────────


class TestConsensus:
    def test_small_margin_is_neutral(self):
        analyses = [
            _vote("A", BUY, 60, 50),
            _vote("B", SELL, 50, 50),
        ]
        # buy 0.30 vs sell 0.25
        assert compute_consensus(analyses) == (NEUTRAL, 50)

    def test_clear_buy(self):
        analyses = [
            _vote("A", BUY, 90, 60),
            _vote("B", BUY, 80, 30),
            _vote("C", SELL, 70, 10),
        ]
        buy, sell = side_scores(analyses)
        assert buy == pytest.approx(0.78)
        assert sell == pytest.approx(0.07)
        assert compute_consensus(analyses) == (BUY, 78)

    def test_clear_sell(self):
        analyses = [
            _vote("A", SELL, 90, 50),
            _vote("B", NEUTRAL, 50, 50),
        ]
        assert compute_consensus(analyses) == (SELL, 50)

    def test_confidence_clamped_to_fifty(self):
        """A winning side below 50% still reports 50."""
        analyses = [
            _vote("A", BUY, 80, 30),
            _vote("B", NEUTRAL, 50, 70),
        ]
        assert compute_consensus(analyses) == (BUY, 50)

    def test_unanimous_buy(self):
        analyses = [_vote(str(i), BUY, 90, 10) for i in range(10)]
        assert compute_consensus(analyses) == (BUY, 90)

    def test_empty_is_neutral(self):
        assert compute_consensus([]) == (NEUTRAL, 50)

    def test_zero_weight_is_neutral(self):
        assert compute_consensus([_vote("A", BUY, 90, 0)]) == (NEUTRAL, 50)

    def test_confidence_always_in_range(self):
        for buy_conf in range(50, 91, 5):
            for sell_conf in range(50, 91, 5):
                for buy_weight in (0, 10, 40, 90):
                    analyses = [
                        _vote("A", BUY, buy_conf, buy_weight),
                        _vote("B", SELL, sell_conf, 100 - buy_weight),
                    ]
                    _, confidence = compute_consensus(analyses)
                    assert 50 <= confidence <= 100


# ── Danger signals ───────────────────────────────────────────────────────


class TestDangerSignals:
    def test_bollinger_and_volume(self):
        analyses = [
            _vote("Bollinger Bands", SELL, 85, 10,
                  Signal("Price Above Upper Band", SELL, 70)),
            _vote("Volume", SELL, 85, 8,
                  Signal("Volume Climax", SELL, 70)),
        ]
        assert extract_danger_signals(analyses) == (
            DangerSignal("Extreme Overbought on Bollinger Bands", 8),
            DangerSignal("Volume Climax Detected", 9),
        )

    def test_rsi_threshold_is_75(self):
        weak = [_vote("RSI", BUY, 87, 10, Signal("RSI Oversold", BUY, 74))]
        strong = [_vote("RSI", BUY, 90, 10, Signal("RSI Oversold", BUY, 75))]
        assert extract_danger_signals(weak) == ()
        assert extract_danger_signals(strong) == (
            DangerSignal("Extreme Oversold on RSI", 7),
        )

    def test_signal_on_wrong_analyzer_ignored(self):
        analyses = [_vote("MACD", SELL, 90, 12, Signal("Volume Climax", SELL, 99))]
        assert extract_danger_signals(analyses) == ()

    def test_independent_of_consensus_direction(self):
        analyses = [
            _vote("Moving Averages", BUY, 90, 90),
            _vote("Bollinger Bands", BUY, 85, 10,
                  Signal("Price Below Lower Band", BUY, 70)),
        ]
        assert compute_consensus(analyses)[0] == BUY
        assert extract_danger_signals(analyses) == (
            DangerSignal("Extreme Oversold on Bollinger Bands", 8),
        )


# ── Registry ─────────────────────────────────────────────────────────────


class TestRegistry:
    def test_weights_sum_to_100(self):
        assert total_weight() == 100

    def test_report_order(self):
        assert [s.name for s in BAR_ANALYZERS] == REPORT_ORDER[:-1]

    def test_lookup(self):
        assert get_analyzer("MACD").weight == 12
        with pytest.raises(KeyError, match="Unknown analyzer"):
            get_analyzer("Ichimoku")


# ── Pipeline ─────────────────────────────────────────────────────────────


class TestPipeline:
    def test_report_shape(self):
        bars = _synthetic_bars()
        report = run_analysis("AAPL", bars, timestamp="t0", source="synthetic")

        assert [a.name for a in report.analyses] == REPORT_ORDER
        assert sum(a.weight for a in report.analyses) == 100
        assert report.price == bars[-1].close
        assert report.source == "synthetic"
        assert report.direction in (BUY, SELL, NEUTRAL)
        assert 50 <= report.confidence <= 100

    def test_deterministic(self):
        first = run_analysis("AAPL", _synthetic_bars(), timestamp="t0")
        second = run_analysis("AAPL", _synthetic_bars(), timestamp="t0")
        assert first == second

    def test_report_serialises(self):
        report = run_analysis("AAPL", _synthetic_bars(), timestamp="t0")
        data = report.to_dict()
        assert data["symbol"] == "AAPL"
        assert len(data["analyses"]) == 10
        assert {"name", "weight", "direction", "confidence", "signals", "values", "error"} <= set(
            data["analyses"][0]
        )

    def test_short_history_skips_long_analyzers(self):
        report = run_analysis("AAPL", _synthetic_bars(limit=25), timestamp="t0")
        by_name = {a.name: a.result for a in report.analyses}

        ma = by_name["Moving Averages"]
        assert ma.direction == NEUTRAL
        assert ma.confidence == 50
        assert ma.error == INSUFFICIENT_HISTORY

        assert by_name["Fibonacci"].error == INSUFFICIENT_HISTORY
        assert by_name["RSI"].error != INSUFFICIENT_HISTORY
        assert by_name["Candlestick Patterns"].error is None

    def test_failing_analyzer_isolated(self, monkeypatch):
        def _boom(bars):
            raise RuntimeError("kaput")

        monkeypatch.setattr(
            pipeline, "BAR_ANALYZERS", (AnalyzerSpec("Broken", 50, 1, _boom),)
        )
        report = run_analysis("AAPL", _synthetic_bars(limit=5), timestamp="t0")
        broken = report.analyses[0].result

        assert broken.direction == NEUTRAL
        assert broken.confidence == 70
        assert "RuntimeError" in broken.error
        assert report.analyses[1].name == "Market Sentiment"

    def test_malformed_result_replaced(self, monkeypatch):
        monkeypatch.setattr(
            pipeline,
            "BAR_ANALYZERS",
            (AnalyzerSpec("Sloppy", 50, 1, lambda bars: {"direction": "BUY"}),),
        )
        report = run_analysis("AAPL", _synthetic_bars(limit=5), timestamp="t0")
        result = report.analyses[0].result
        assert (result.direction, result.confidence) == (NEUTRAL, 70)
        assert result.error == "malformed result"

    def test_positive_news_votes_buy(self):
        news = [NewsItem("Upgrade", "Wire", 0.5), NewsItem("Record sales", "Wire", 0.3)]
        report = run_analysis("AAPL", _synthetic_bars(limit=5), news, timestamp="t0")
        sentiment = report.analyses[-1].result
        assert sentiment.direction == BUY
        assert sentiment.confidence == 80

    def test_empty_bars_rejected(self):
        with pytest.raises(ValueError, match="No bars"):
            run_analysis("AAPL", [], timestamp="t0")
