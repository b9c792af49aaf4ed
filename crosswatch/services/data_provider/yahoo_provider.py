from typing import List, Dict, Optional, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from crosswatch.core.logger import Logger
from crosswatch.core.timezone import epoch_to_date
from crosswatch.services.data_provider.base import (
    BROWSER_UA,
    BaseDataProvider,
    Bar,
    ProviderResult,
    ProviderUnavailable,
    Quote,
    finish_result,
    krx_symbol,
    round_price,
)

logger = Logger("YahooProvider")


# ─────────────────────────────────────────────────────────────────────────────
# Response schemas
# ─────────────────────────────────────────────────────────────────────────────

class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ChartMeta(_Schema):
    currency: Optional[str] = None
    exchange_name: Optional[str] = Field(None, alias="exchangeName")
    exchange_timezone_name: Optional[str] = Field(None, alias="exchangeTimezoneName")
    regular_market_price: Optional[float] = Field(None, alias="regularMarketPrice")
    previous_close: Optional[float] = Field(None, alias="previousClose")
    chart_previous_close: Optional[float] = Field(None, alias="chartPreviousClose")
    short_name: Optional[str] = Field(None, alias="shortName")
    long_name: Optional[str] = Field(None, alias="longName")


class ChartQuoteSeries(_Schema):
    open: List[Optional[float]] = Field(default_factory=list)
    high: List[Optional[float]] = Field(default_factory=list)
    low: List[Optional[float]] = Field(default_factory=list)
    close: List[Optional[float]] = Field(default_factory=list)
    volume: List[Optional[float]] = Field(default_factory=list)


class ChartIndicators(_Schema):
    quote: List[ChartQuoteSeries]


class ChartResult(_Schema):
    meta: ChartMeta
    timestamp: List[int] = Field(default_factory=list)
    indicators: ChartIndicators


class Chart(_Schema):
    result: Optional[List[ChartResult]] = None
    error: Optional[Dict[str, Any]] = None


class ChartResponse(_Schema):
    chart: Chart


class QuoteItem(_Schema):
    symbol: str
    short_name: Optional[str] = Field(None, alias="shortName")
    long_name: Optional[str] = Field(None, alias="longName")
    regular_market_price: Optional[float] = Field(None, alias="regularMarketPrice")
    regular_market_change: Optional[float] = Field(None, alias="regularMarketChange")
    regular_market_change_percent: Optional[float] = Field(None, alias="regularMarketChangePercent")
    regular_market_previous_close: Optional[float] = Field(None, alias="regularMarketPreviousClose")
    currency: Optional[str] = None
    exchange: Optional[str] = None


class QuoteResponseBody(_Schema):
    result: List[QuoteItem] = Field(default_factory=list)
    error: Optional[Dict[str, Any]] = None


class QuoteResponse(_Schema):
    quote_response: QuoteResponseBody = Field(alias="quoteResponse")


# ─────────────────────────────────────────────────────────────────────────────
# Provider
# ─────────────────────────────────────────────────────────────────────────────

def _at(values: List[Optional[float]], i: int) -> Optional[float]:
    return values[i] if i < len(values) else None


class YahooProvider(BaseDataProvider):
    """Yahoo Finance chart/quote API. Free, no key, generous limits."""

    CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
    QUOTE_URL = "https://query1.finance.yahoo.com/v7/finance/quote"

    def __init__(self, client):
        super().__init__(client)
        self._headers = {"User-Agent": BROWSER_UA}

    def get_name(self) -> str:
        return "yahoo"

    def map_symbol(self, symbol: str) -> str:
        return krx_symbol(symbol)

    async def fetch_history(self, symbol: str, range_spec: str) -> ProviderResult:
        data = await self._get_json(
            self.CHART_URL.format(symbol=symbol),
            params={"interval": "1d", "range": range_spec},
            headers=self._headers,
        )
        try:
            chart = ChartResponse.model_validate(data).chart
        except ValidationError as e:
            raise ProviderUnavailable("yahoo", f"unexpected chart shape ({e.error_count()} errors)") from e

        if chart.error:
            raise ProviderUnavailable("yahoo", f"chart error: {chart.error.get('description') or chart.error}")
        if not chart.result:
            raise ProviderUnavailable("yahoo", "no result")

        r = chart.result[0]
        q = r.indicators.quote[0] if r.indicators.quote else ChartQuoteSeries()
        tz_name = r.meta.exchange_timezone_name

        history = []
        try:
            for i, ts in enumerate(r.timestamp):
                close = round_price(_at(q.close, i))
                if close is None:
                    continue
                volume = _at(q.volume, i)
                history.append(Bar(
                    date=epoch_to_date(ts, tz_name),
                    open=round_price(_at(q.open, i)),
                    high=round_price(_at(q.high, i)),
                    low=round_price(_at(q.low, i)),
                    close=close,
                    volume=max(int(volume or 0), 0),
                ))
        except (ValueError, OverflowError, OSError) as e:
            raise ProviderUnavailable("yahoo", f"bad bar field: {e}") from e

        logger.debug(f"{symbol}: {len(history)} bars from chart API")
        m = r.meta
        return finish_result(ProviderResult(
            provider="yahoo",
            history=history,
            currency=m.currency,
            exchange=m.exchange_name,
            regular_market_price=round_price(m.regular_market_price),
            previous_close=round_price(m.previous_close or m.chart_previous_close),
            name=m.short_name or m.long_name,
        ))

    async def fetch_quotes(self, symbols: List[str]) -> List[Quote]:
        data = await self._get_json(
            self.QUOTE_URL,
            params={"symbols": ",".join(symbols)},
            headers=self._headers,
        )
        try:
            body = QuoteResponse.model_validate(data).quote_response
        except ValidationError as e:
            raise ProviderUnavailable("yahoo", "unexpected quote shape") from e
        if body.error:
            raise ProviderUnavailable("yahoo", f"quote error: {body.error}")

        return [
            Quote(
                symbol=q.symbol,
                name=q.short_name or q.long_name,
                price=q.regular_market_price,
                change=q.regular_market_change,
                change_percent=q.regular_market_change_percent,
                previous_close=q.regular_market_previous_close,
                currency=q.currency,
                exchange=q.exchange,
                provider="yahoo",
            )
            for q in body.result
        ]
