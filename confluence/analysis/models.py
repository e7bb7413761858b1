"""Analysis data models — bars, signals, analyzer results and reports."""

from dataclasses import dataclass, field, asdict
from typing import Any, Optional


BUY = "BUY"
SELL = "SELL"
NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class Bar:
    """A single OHLCV bar. Sequences of bars are ordered oldest first."""

    timestamp: str
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Signal:
    """A named directional observation emitted by an analyzer."""

    name: str
    direction: str  # BUY, SELL or NEUTRAL
    strength: float  # unbounded upward


@dataclass(frozen=True)
class AnalyzerResult:
    """One analyzer's vote for one evaluation."""

    direction: str
    confidence: int
    signals: tuple[Signal, ...] = ()
    values: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass(frozen=True)
class WeightedAnalysis:
    """An analyzer result tagged with the analyzer's name and weight."""

    name: str
    result: AnalyzerResult
    weight: int


@dataclass(frozen=True)
class DangerSignal:
    """Out-of-band risk flag used to force early position closure."""

    name: str
    importance: int  # 1–10


@dataclass(frozen=True)
class AnalysisReport:
    """Consensus output for one symbol in one evaluation cycle."""

    symbol: str
    price: float
    timestamp: str
    analyses: tuple[WeightedAnalysis, ...]
    direction: str
    confidence: int
    danger_signals: tuple[DangerSignal, ...] = ()
    source: str = "live"

    def to_dict(self) -> dict:
        """Plain-dict form for events and the HTTP API."""
        data = asdict(self)
        data["analyses"] = [
            {
                "name": a.name,
                "weight": a.weight,
                "direction": a.result.direction,
                "confidence": a.result.confidence,
                "signals": [asdict(s) for s in a.result.signals],
                "values": a.result.values,
                "error": a.result.error,
            }
            for a in self.analyses
        ]
        return data
