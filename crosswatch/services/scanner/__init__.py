"""
Scanner Module - moving-average crossover detection.

Usage:
    from crosswatch.services.scanner import compute_indicator, MACrossoverDetector

    series = compute_indicator(result.history)
    signal = MACrossoverDetector().detect_latest(series, "AAPL")
"""

from .indicators import IndicatorBar, calculate_ma, compute_indicator
from .base import Signal, SignalDetector, SignalType
from .ma_crossover import MACrossoverDetector, BUY_REASON, SELL_REASON

__all__ = [
    "IndicatorBar",
    "calculate_ma",
    "compute_indicator",
    "Signal",
    "SignalDetector",
    "SignalType",
    "MACrossoverDetector",
    "BUY_REASON",
    "SELL_REASON",
]
