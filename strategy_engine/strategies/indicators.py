from __future__ import annotations

import math
from typing import Dict, List, Sequence

NAN = float("nan")


def _get_value(candle, key: str) -> float:
    if hasattr(candle, key):
        return float(getattr(candle, key))
    return float(candle[key])


def closes(candles: Sequence) -> List[float]:
    return [_get_value(c, "c") for c in candles]


def sma(values: Sequence[float], period: int) -> List[float]:
    if period <= 0:
        raise ValueError("period must be positive")
    result: List[float] = []
    window_sum = 0.0
    for idx, value in enumerate(values):
        window_sum += value
        if idx >= period:
            window_sum -= values[idx - period]
        result.append(window_sum / period if idx >= period - 1 else NAN)
    return result


def ema(values: Sequence[float], period: int) -> List[float]:
    """EMA seeded with the SMA of the first ``period`` values."""
    if period <= 0:
        raise ValueError("period must be positive")
    if len(values) < period:
        return [NAN] * len(values)
    multiplier = 2.0 / (period + 1)
    result: List[float] = [NAN] * (period - 1)
    current = sum(values[:period]) / period
    result.append(current)
    for value in values[period:]:
        current = (value - current) * multiplier + current
        result.append(current)
    return result


def rsi(values: Sequence[float], period: int = 14) -> List[float]:
    """RSI over simple average gains and losses; 100 when the window had no losses."""
    if period <= 0:
        raise ValueError("period must be positive")
    gains: List[float] = []
    losses: List[float] = []
    for idx in range(1, len(values)):
        change = values[idx] - values[idx - 1]
        gains.append(change if change > 0 else 0.0)
        losses.append(-change if change < 0 else 0.0)

    result: List[float] = []
    for idx in range(len(values)):
        if idx < period:
            result.append(NAN)
            continue
        avg_gain = sum(gains[idx - period : idx]) / period
        avg_loss = sum(losses[idx - period : idx]) / period
        if avg_loss == 0:
            result.append(100.0)
            continue
        rs = avg_gain / avg_loss
        result.append(100.0 - 100.0 / (1.0 + rs))
    return result


def macd(
    values: Sequence[float], fast_period: int = 12, slow_period: int = 26, signal_period: int = 9
) -> Dict[str, List[float]]:
    fast = ema(values, fast_period)
    slow = ema(values, slow_period)
    line = [f - s for f, s in zip(fast, slow)]

    defined = [value for value in line if not math.isnan(value)]
    signal_values = ema(defined, signal_period) if defined else []
    signal: List[float] = []
    cursor = 0
    for value in line:
        if math.isnan(value):
            signal.append(NAN)
            continue
        signal.append(signal_values[cursor] if cursor < len(signal_values) else NAN)
        cursor += 1

    histogram = [m - s for m, s in zip(line, signal)]
    return {"macd": line, "signal": signal, "histogram": histogram}


def bollinger(values: Sequence[float], period: int = 20, std_dev: float = 2.0) -> Dict[str, List[float]]:
    middle = sma(values, period)
    upper: List[float] = []
    lower: List[float] = []
    for idx, mean in enumerate(middle):
        if math.isnan(mean):
            upper.append(NAN)
            lower.append(NAN)
            continue
        window = values[idx - period + 1 : idx + 1]
        # population variance
        deviation = math.sqrt(sum((value - mean) ** 2 for value in window) / period)
        upper.append(mean + std_dev * deviation)
        lower.append(mean - std_dev * deviation)
    return {"upper": upper, "middle": middle, "lower": lower}


def vwap(candles: Sequence) -> List[float]:
    result: List[float] = []
    cumulative_pv = 0.0
    cumulative_volume = 0.0
    for candle in candles:
        typical = (_get_value(candle, "h") + _get_value(candle, "l") + _get_value(candle, "c")) / 3.0
        volume = _get_value(candle, "v")
        cumulative_pv += typical * volume
        cumulative_volume += volume
        result.append(cumulative_pv / cumulative_volume if cumulative_volume > 0 else NAN)
    return result


def latest(series: Sequence[float], offset: int = 0) -> float:
    """Value ``offset`` positions back from the end, NaN when out of range."""
    index = len(series) - 1 - offset
    if index < 0:
        return NAN
    return float(series[index])


__all__ = ["bollinger", "closes", "ema", "latest", "macd", "rsi", "sma", "vwap"]
