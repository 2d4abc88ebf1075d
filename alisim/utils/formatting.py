from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any


def format_tuple(value: Any, *, digits: int | None = None) -> str:
    """Render parameter tuples or scalars as strings for logging."""
    if value is None:
        return "None"
    if isinstance(value, Iterable) and not isinstance(value, (str, bytes)):
        return "(" + ", ".join(format_tuple(v, digits=digits) for v in value) + ")"
    if digits is not None and isinstance(value, float):
        return f"{value:.{digits}g}"
    return str(value)


def format_frequencies(frequencies: Iterable[float], symbols: Sequence[str], *, digits: int = 4) -> str:
    """``A=0.25 C=0.25 ...`` for a state-frequency vector."""
    return " ".join(f"{symbol}={float(value):.{digits}g}" for symbol, value in zip(symbols, frequencies))


def format_categories(weights: Sequence[float], rates: Sequence[float], *, digits: int = 4) -> str:
    """One ``weight:rate`` pair per rate category."""
    return " ".join(
        f"{float(weight):.{digits}g}:{float(rate):.{digits}g}" for weight, rate in zip(weights, rates)
    )


__all__ = ["format_categories", "format_frequencies", "format_tuple"]
