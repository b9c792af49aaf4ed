"""Moving-average indicator over a daily bar series."""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import pandas as pd

from crosswatch.services.data_provider.base import Bar, round_price


@dataclass(frozen=True)
class IndicatorBar(Bar):
    """A Bar with its trailing moving average (None until the window fills)."""
    ma10: Optional[float] = None


def calculate_ma(closes: Sequence[float], window: int = 10) -> List[Optional[float]]:
    """Trailing simple moving average, rounded half-up to 2 decimals.

    Position i is defined only when i >= window - 1.
    """
    ma = pd.Series(list(closes), dtype="float64").rolling(window=window, min_periods=window).mean()
    return [None if pd.isna(v) else round_price(v) for v in ma]


def compute_indicator(bars: Sequence[Bar], window: int = 10) -> List[IndicatorBar]:
    """Attach ma10 to every bar. Pure; input is not modified."""
    ma = calculate_ma([b.close for b in bars], window)
    return [
        IndicatorBar(
            date=b.date,
            open=b.open,
            high=b.high,
            low=b.low,
            close=b.close,
            volume=b.volume,
            ma10=m,
        )
        for b, m in zip(bars, ma)
    ]
