"""MA10 Crossover Signal - close crossing its 10-day moving average."""

from typing import List, Optional, Sequence

from crosswatch.services.scanner.base import Signal, SignalDetector, SignalType
from crosswatch.services.scanner.indicators import IndicatorBar

BUY_REASON = "가격이 10일 이동평균선을 상향 돌파"
SELL_REASON = "가격이 10일 이동평균선을 하향 돌파"


def _above(bar: IndicatorBar) -> bool:
    # Equality counts as at-or-below
    return bar.close > bar.ma10


class MACrossoverDetector(SignalDetector):
    """Day-over-day crossing of close vs. MA10, compared on close only.

    BUY:  prev.close <= prev.ma10 and cur.close >  cur.ma10
    SELL: prev.close >  prev.ma10 and cur.close <= cur.ma10
    """

    signal_id = "ma10_crossover"
    # One full window plus a predecessor with a defined average
    min_bars = 11

    def __init__(self, lookback_days: int = 3):
        self.lookback_days = lookback_days

    def _crossing(self, series: Sequence[IndicatorBar], i: int, symbol: str) -> Optional[Signal]:
        prev, cur = series[i - 1], series[i]
        if prev.ma10 is None or cur.ma10 is None:
            return None

        was_above, is_above = _above(prev), _above(cur)
        if was_above == is_above:
            return None

        if is_above:
            sig_type, reason = SignalType.BUY, BUY_REASON
        else:
            sig_type, reason = SignalType.SELL, SELL_REASON
        return Signal(
            symbol=symbol,
            date=cur.date,
            type=sig_type,
            price=cur.close,
            ma10=cur.ma10,
            reason=reason,
        )

    def detect_latest(self, series: Sequence[IndicatorBar], symbol: str) -> Optional[Signal]:
        """Scan the last `lookback_days` bars newest-first; first crossing wins."""
        n = len(series)
        if n < self.min_bars:
            return None

        for i in range(n - 1, max(n - 1 - self.lookback_days, 0), -1):
            signal = self._crossing(series, i, symbol)
            if signal:
                return signal
        return None

    def detect_all(self, series: Sequence[IndicatorBar], symbol: str) -> List[Signal]:
        signals = []
        for i in range(1, len(series)):
            signal = self._crossing(series, i, symbol)
            if signal:
                signals.append(signal)
        return signals
