"""Technical indicators — SMA, EMA, RSI, MACD, Bollinger Bands, ADX/DMI. Pure functions, no I/O.

Every series function returns a list the same length as its input, with
entries before the indicator is ready set to ``float('nan')``.
"""

import math
from typing import Sequence

from confluence.analysis.models import Bar


_NAN = float("nan")


def _require(count: int, needed: int, label: str) -> None:
    if count < needed:
        raise ValueError(
            f"Need at least {needed} values for {label}, got {count}"
        )


# ── Moving averages ──────────────────────────────────────────────────────


def calculate_sma(values: Sequence[float], period: int) -> list[float]:
    """Simple moving average of *values* over a rolling *period* window.

    Raises ``ValueError`` if fewer than *period* values are provided.
    """
    _require(len(values), period, f"SMA({period})")

    sma: list[float] = [_NAN] * len(values)
    window_sum = sum(values[:period])
    sma[period - 1] = window_sum / period
    for i in range(period, len(values)):
        window_sum += values[i] - values[i - period]
        sma[i] = window_sum / period
    return sma


def calculate_ema(values: Sequence[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    Uses the standard EMA formula:
        ``EMA_today = value × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    The first EMA value is seeded with the SMA of the first *period*
    values.

    Raises ``ValueError`` if fewer than *period* values are provided.
    """
    _require(len(values), period, f"EMA({period})")

    k = 2.0 / (period + 1)
    ema: list[float] = [_NAN] * len(values)

    # Seed: SMA of first *period* values
    ema[period - 1] = sum(values[:period]) / period

    for i in range(period, len(values)):
        ema[i] = values[i] * k + ema[i - 1] * (1 - k)

    return ema


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(closes: Sequence[float], period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RS = avg_gain / avg_loss
        6. RSI = 100 - 100 / (1 + RS)

    Requires at least ``period + 1`` closes.
    """
    _require(len(closes), period + 1, f"RSI({period})")

    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    rsi: list[float] = [_NAN] * len(closes)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            return 100.0
        rs = ag / al
        return 100.0 - 100.0 / (1.0 + rs)

    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # Index in rsi is i+1 because deltas are offset by 1
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate MACD line, signal line and histogram.

    MACD = EMA(fast) − EMA(slow); signal = EMA(signal) of the MACD line;
    histogram = MACD − signal.

    Requires at least ``slow + signal − 1`` closes so that the last bar
    carries a signal value.

    Returns ``(macd, signal_line, histogram)``.
    """
    _require(len(closes), slow + signal - 1, f"MACD({fast},{slow},{signal})")

    n = len(closes)
    fast_ema = calculate_ema(closes, fast)
    slow_ema = calculate_ema(closes, slow)

    macd: list[float] = [_NAN] * n
    for i in range(slow - 1, n):
        macd[i] = fast_ema[i] - slow_ema[i]

    signal_tail = calculate_ema(macd[slow - 1:], signal)
    signal_line: list[float] = [_NAN] * (slow - 1) + signal_tail

    histogram: list[float] = [_NAN] * n
    for i in range(slow + signal - 2, n):
        histogram[i] = macd[i] - signal_line[i]

    return macd, signal_line, histogram


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    closes: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate Bollinger Bands.

    Middle = SMA(close, *period*)
    Upper  = middle + *std_dev* × σ
    Lower  = middle − *std_dev* × σ

    σ is the population standard deviation of the window.

    Returns ``(upper, middle, lower)``.
    """
    _require(len(closes), period, f"Bollinger({period})")

    n = len(closes)
    upper: list[float] = [_NAN] * n
    middle: list[float] = [_NAN] * n
    lower: list[float] = [_NAN] * n

    for i in range(period - 1, n):
        window = closes[i - period + 1: i + 1]
        sma = sum(window) / period
        variance = sum((x - sma) ** 2 for x in window) / period
        sigma = math.sqrt(variance)

        middle[i] = sma
        upper[i] = sma + std_dev * sigma
        lower[i] = sma - std_dev * sigma

    return upper, middle, lower


# ── ADX / DMI ────────────────────────────────────────────────────────────


def calculate_dmi(
    bars: Sequence[Bar],
    period: int = 14,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate the Average Directional Index with its directional lines.

    Algorithm:
        1. +DM / -DM directional movement per bar.
        2. Wilder-smooth +DM, -DM, and TR over *period*.
        3. +DI = 100 × smoothed_+DM / smoothed_TR
        4. -DI = 100 × smoothed_-DM / smoothed_TR
        5. DX = 100 × |+DI − −DI| / (+DI + −DI)
        6. ADX = Wilder-smoothed DX over *period*.

    Requires at least ``2 × period + 1`` bars.  +DI/-DI are ready from
    index *period*; ADX from index ``2 × period − 1``.

    Returns ``(adx, plus_di, minus_di)``.
    """
    _require(len(bars), 2 * period + 1, f"ADX({period})")

    n = len(bars)

    plus_dm_raw: list[float] = [0.0]
    minus_dm_raw: list[float] = [0.0]
    tr_raw: list[float] = [0.0]

    for i in range(1, n):
        high = bars[i].high
        low = bars[i].low
        prev_high = bars[i - 1].high
        prev_low = bars[i - 1].low
        prev_close = bars[i - 1].close

        up_move = high - prev_high
        down_move = prev_low - low

        pdm = up_move if (up_move > down_move and up_move > 0) else 0.0
        mdm = down_move if (down_move > up_move and down_move > 0) else 0.0
        tr = max(high - low, abs(high - prev_close), abs(low - prev_close))

        plus_dm_raw.append(pdm)
        minus_dm_raw.append(mdm)
        tr_raw.append(tr)

    smoothed_plus_dm = sum(plus_dm_raw[1: period + 1])
    smoothed_minus_dm = sum(minus_dm_raw[1: period + 1])
    smoothed_tr = sum(tr_raw[1: period + 1])

    plus_di: list[float] = [_NAN] * n
    minus_di: list[float] = [_NAN] * n
    dx_values: list[float] = []

    def _record(i: int) -> None:
        if smoothed_tr == 0:
            pdi = mdi = 0.0
        else:
            pdi = 100.0 * smoothed_plus_dm / smoothed_tr
            mdi = 100.0 * smoothed_minus_dm / smoothed_tr
        plus_di[i] = pdi
        minus_di[i] = mdi
        di_sum = pdi + mdi
        dx_values.append(0.0 if di_sum == 0 else 100.0 * abs(pdi - mdi) / di_sum)

    _record(period)

    for i in range(period + 1, n):
        smoothed_plus_dm = smoothed_plus_dm - smoothed_plus_dm / period + plus_dm_raw[i]
        smoothed_minus_dm = smoothed_minus_dm - smoothed_minus_dm / period + minus_dm_raw[i]
        smoothed_tr = smoothed_tr - smoothed_tr / period + tr_raw[i]
        _record(i)

    # dx_values[0] corresponds to bar index *period*
    adx: list[float] = [_NAN] * n
    adx_prev = sum(dx_values[:period]) / period
    adx[2 * period - 1] = adx_prev
    for j in range(period, len(dx_values)):
        adx_prev = (adx_prev * (period - 1) + dx_values[j]) / period
        adx[period + j] = adx_prev

    return adx, plus_di, minus_di
