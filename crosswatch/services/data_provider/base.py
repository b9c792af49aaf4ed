import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Dict, Optional, Any

import httpx

BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

_KRX_CODE = re.compile(r"^\d{6}$")
_CENT = Decimal("0.01")


class ProviderUnavailable(Exception):
    """A provider could not produce usable data for this call."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


def round_price(value: Any) -> Optional[float]:
    """Round a monetary value half-up to 2 decimals. None/NaN/garbage -> None."""
    if value is None:
        return None
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return float(d.quantize(_CENT, rounding=ROUND_HALF_UP))


def krx_symbol(symbol: str) -> str:
    """6-digit numeric codes are KOSPI listings: 005930 -> 005930.KS."""
    if _KRX_CODE.match(symbol):
        return f"{symbol}.KS"
    return symbol


@dataclass(frozen=True)
class Bar:
    """One trading day for a symbol."""
    date: str
    open: Optional[float]
    high: Optional[float]
    low: Optional[float]
    close: float
    volume: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProviderResult:
    """Normalized history from one upstream source."""
    provider: str
    history: List[Bar]
    currency: Optional[str] = None
    exchange: Optional[str] = None
    regular_market_price: Optional[float] = None
    previous_close: Optional[float] = None
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "currency": self.currency,
            "exchange": self.exchange,
            "name": self.name,
            "regularMarketPrice": self.regular_market_price,
            "previousClose": self.previous_close,
            "history": [b.to_dict() for b in self.history],
        }


@dataclass
class Quote:
    symbol: str
    provider: str
    price: Optional[float] = None
    name: Optional[str] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    previous_close: Optional[float] = None
    currency: Optional[str] = None
    exchange: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "change": self.change,
            "changePercent": self.change_percent,
            "previousClose": self.previous_close,
            "currency": self.currency,
            "exchange": self.exchange,
            "provider": self.provider,
        }


def validate_history(provider: str, history: List[Bar]) -> List[Bar]:
    """Reject empty series and series that are not strictly ascending by date."""
    if not history:
        raise ProviderUnavailable(provider, "empty history")
    for prev, cur in zip(history, history[1:]):
        if cur.date <= prev.date:
            raise ProviderUnavailable(provider, f"dates not strictly ascending at {cur.date}")
    return history


def finish_result(result: ProviderResult) -> ProviderResult:
    """Fill last/previous close from the series when the provider has no meta."""
    validate_history(result.provider, result.history)
    if result.regular_market_price is None:
        result.regular_market_price = result.history[-1].close
    if result.previous_close is None and len(result.history) > 1:
        result.previous_close = result.history[-2].close
    return result


class BaseDataProvider(ABC):
    """Abstract base class for price data providers.

    Implementations raise ProviderUnavailable for every expected failure
    (transport error, non-2xx, malformed body, explicit error/rate-limit
    payload, empty data) so the chain can fall through to the next provider.
    """

    # False when quotes are fetched one symbol per request
    batch_quotes: bool = True

    def __init__(self, client: httpx.AsyncClient, api_key: Optional[str] = None):
        self.client = client
        self.api_key = api_key

    @abstractmethod
    def get_name(self) -> str:
        """Get provider name."""
        pass

    def is_configured(self) -> bool:
        """Providers that need a key are skipped when it is missing."""
        return True

    def map_symbol(self, symbol: str) -> str:
        """Translate a user symbol into this provider's convention."""
        return symbol

    @abstractmethod
    async def fetch_history(self, symbol: str, range_spec: str) -> ProviderResult:
        """Fetch daily bars for an already-mapped symbol.

        Args:
            symbol: Provider-format symbol
            range_spec: Lookback such as '1mo' or '3mo'

        Returns:
            ProviderResult with a validated, ascending history
        """
        pass

    @abstractmethod
    async def fetch_quotes(self, symbols: List[str]) -> List[Quote]:
        """Fetch current quotes for already-mapped symbols."""
        pass

    async def _get_json(self, url: str, params: Dict[str, Any] = None, headers: Dict[str, str] = None) -> Any:
        """GET and decode JSON, converting every failure into ProviderUnavailable."""
        name = self.get_name()
        try:
            resp = await self.client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderUnavailable(name, f"request failed: {e}") from e
        if resp.status_code != 200:
            raise ProviderUnavailable(name, f"HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderUnavailable(name, "malformed JSON") from e
