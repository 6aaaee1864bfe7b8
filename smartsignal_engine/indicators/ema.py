"""Exponential Moving Average (EMA) indicator."""


def calculate_ema(values: list[float], period: int) -> list[float | None]:
    """
    Calculate Exponential Moving Average (EMA).

    The first valid value sits at index ``period - 1`` and is the SMA of
    the first ``period`` values; later values use the EMA recurrence.

    Args:
        values: List of values (e.g., closing prices).
        period: EMA period.

    Returns:
        List the same length as ``values``; positions before the first
        valid EMA are None.
    """
    if period < 1:
        raise ValueError("EMA period must be >= 1")
    if not values:
        return []

    if len(values) < period:
        return [None] * len(values)

    ema_values: list[float | None] = [None] * len(values)

    sma = sum(values[:period]) / period
    ema_values[period - 1] = sma

    multiplier = 2.0 / (period + 1)
    previous = sma
    for i in range(period, len(values)):
        previous = (values[i] - previous) * multiplier + previous
        ema_values[i] = previous

    return ema_values
