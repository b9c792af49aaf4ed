"""
Signal Detector Base Classes.

This module defines the core abstractions for crossover signal detection.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from crosswatch.services.scanner.indicators import IndicatorBar


class SignalType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Signal:
    """A detected crossover event.

    Attributes:
        symbol: Symbol as watched by the user (e.g. 'AAPL', '005930')
        date: Bar date where the crossover occurred
        type: BUY or SELL
        price: Close on that date
        ma10: Indicator value on that date
        reason: Human-readable classification
    """
    symbol: str
    date: str
    type: SignalType
    price: float
    ma10: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "date": self.date,
            "type": self.type.value,
            "price": self.price,
            "ma10": self.ma10,
            "reason": self.reason,
        }


class SignalDetector(ABC):
    """Base class for signal detectors working on an indicator series.

    Class Attributes:
        signal_id: Unique identifier, reported by runs and chart responses
        min_bars: Minimum series length required for any detection
    """

    signal_id: str = ""
    min_bars: int = 2

    @abstractmethod
    def detect_latest(self, series: Sequence[IndicatorBar], symbol: str) -> Optional[Signal]:
        """Most recent fresh signal, or None."""
        pass

    @abstractmethod
    def detect_all(self, series: Sequence[IndicatorBar], symbol: str) -> List[Signal]:
        """Every signal in the series, oldest first."""
        pass

