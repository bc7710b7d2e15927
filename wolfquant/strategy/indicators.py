"""Technical indicators — SMA, EMA, RSI, MACD. Pure functions over close prices, no I/O."""

import math


def sma(values: list[float], period: int) -> list[float]:
    """Simple Moving Average series.

    Returns a list the same length as *values*.  Entries before the first
    full window are ``float('nan')``.

    Raises ``ValueError`` if *period* is not positive.
    """
    if period <= 0:
        raise ValueError(f"SMA period must be positive, got {period}")

    result: list[float] = [float("nan")] * len(values)
    window_sum = 0.0
    for i, value in enumerate(values):
        window_sum += value
        if i >= period:
            window_sum -= values[i - period]
        if i >= period - 1:
            result[i] = window_sum / period
    return result


def ema(values: list[float], period: int) -> list[float]:
    """Exponential Moving Average series.

    Uses ``EMA_today = value × k + EMA_yesterday × (1 - k)`` with
    ``k = 2 / (period + 1)``, seeded with the SMA of the first *period*
    values.  Entries before the seed are ``float('nan')``; when fewer than
    *period* values are given the whole series is ``nan``.
    """
    if period <= 0:
        raise ValueError(f"EMA period must be positive, got {period}")

    result: list[float] = [float("nan")] * len(values)
    if len(values) < period:
        return result

    k = 2.0 / (period + 1)
    result[period - 1] = sum(values[:period]) / period
    for i in range(period, len(values)):
        result[i] = values[i] * k + result[i - 1] * (1 - k)
    return result


# ── RSI ──────────────────────────────────────────────────────────────────


def rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    """RSI value for Wilder-smoothed average gain and loss."""
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def rsi(values: list[float], period: int = 14) -> list[float]:
    """Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = value[i] - value[i-1]
        2. Seed average gain/loss = SMA of first *period* deltas.
        3. Subsequent: avg = (prev_avg × (period-1) + current) / period
        4. RSI = 100 - 100 / (1 + avg_gain / avg_loss)

    A flat series reads 50.  Returns a list the same length as *values*;
    entries before index *period* are ``float('nan')``.
    """
    if period <= 0:
        raise ValueError(f"RSI period must be positive, got {period}")

    result: list[float] = [float("nan")] * len(values)
    if len(values) < period + 1:
        return result

    deltas = [values[i] - values[i - 1] for i in range(1, len(values))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [max(-d, 0.0) for d in deltas]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    result[period] = rsi_from_averages(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # deltas are offset by one from values
        result[i + 1] = rsi_from_averages(avg_gain, avg_loss)

    return result


# ── MACD ─────────────────────────────────────────────────────────────────


def macd(
    values: list[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> tuple[list[float], list[float], list[float]]:
    """Moving Average Convergence Divergence.

    MACD line = EMA(fast) − EMA(slow); signal = EMA(signal_period) of the
    MACD line; histogram = MACD − signal.

    Returns ``(macd_line, signal_line, histogram)``, each the same length
    as *values* with ``nan`` until enough data exists.
    """
    if fast_period >= slow_period:
        raise ValueError(
            f"MACD fast period ({fast_period}) must be below slow period ({slow_period})"
        )

    fast = ema(values, fast_period)
    slow = ema(values, slow_period)
    macd_line = [f - s for f, s in zip(fast, slow)]

    n = len(values)
    signal_line: list[float] = [float("nan")] * n
    histogram: list[float] = [float("nan")] * n

    # Signal EMA runs over the defined part of the MACD line only
    first = slow_period - 1
    if n > first:
        defined = ema(macd_line[first:], signal_period)
        for offset, value in enumerate(defined):
            i = first + offset
            signal_line[i] = value
            if not math.isnan(value):
                histogram[i] = macd_line[i] - value

    return macd_line, signal_line, histogram
