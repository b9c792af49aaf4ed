from typing import List, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from crosswatch.core.logger import Logger
from crosswatch.services.data_provider.base import (
    BaseDataProvider,
    Bar,
    ProviderResult,
    ProviderUnavailable,
    Quote,
    finish_result,
    krx_symbol,
    round_price,
)

logger = Logger("AlphaVantageProvider")

# Compact output is ~100 sessions; keep about three months
HISTORY_BARS = 90


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class _ErrorFields(_Schema):
    error_message: Optional[str] = Field(None, alias="Error Message")
    note: Optional[str] = Field(None, alias="Note")
    information: Optional[str] = Field(None, alias="Information")

    def failure(self) -> Optional[str]:
        """Alpha Vantage reports errors and throttling with HTTP 200."""
        return self.error_message or self.note or self.information


class DailyValues(_Schema):
    open: str = Field(alias="1. open")
    high: str = Field(alias="2. high")
    low: str = Field(alias="3. low")
    close: str = Field(alias="4. close")
    volume: str = Field("0", alias="5. volume")


class DailySeriesResponse(_ErrorFields):
    time_series: Optional[Dict[str, DailyValues]] = Field(None, alias="Time Series (Daily)")


class GlobalQuote(_Schema):
    symbol: str = Field(alias="01. symbol")
    price: Optional[str] = Field(None, alias="05. price")
    previous_close: Optional[str] = Field(None, alias="08. previous close")
    change: Optional[str] = Field(None, alias="09. change")
    change_percent: Optional[str] = Field(None, alias="10. change percent")


class GlobalQuoteResponse(_ErrorFields):
    global_quote: Optional[GlobalQuote] = Field(None, alias="Global Quote")


def _to_float(value: Optional[str]) -> Optional[float]:
    if value in (None, "", "-"):
        return None
    return float(value.replace("%", ""))


class AlphaVantageProvider(BaseDataProvider):
    """Alpha Vantage (free tier ~25 req/day). API key as query parameter."""

    BASE_URL = "https://www.alphavantage.co/query"
    batch_quotes = False

    def get_name(self) -> str:
        return "alphavantage"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def map_symbol(self, symbol: str) -> str:
        return krx_symbol(symbol)

    async def fetch_history(self, symbol: str, range_spec: str) -> ProviderResult:
        data = await self._get_json(self.BASE_URL, params={
            "function": "TIME_SERIES_DAILY",
            "symbol": symbol,
            "outputsize": "compact",
            "apikey": self.api_key,
        })
        try:
            parsed = DailySeriesResponse.model_validate(data)
        except ValidationError as e:
            raise ProviderUnavailable("alphavantage", "unexpected time series shape") from e

        if parsed.failure():
            raise ProviderUnavailable("alphavantage", parsed.failure())
        if not parsed.time_series:
            raise ProviderUnavailable("alphavantage", "no time series data")

        try:
            history = [
                Bar(
                    date=day,
                    open=round_price(float(v.open)),
                    high=round_price(float(v.high)),
                    low=round_price(float(v.low)),
                    close=round_price(float(v.close)),
                    volume=max(int(float(v.volume or 0)), 0),
                )
                for day, v in parsed.time_series.items()
            ]
        except (ValueError, OverflowError) as e:
            raise ProviderUnavailable("alphavantage", f"bad numeric field: {e}") from e

        history.sort(key=lambda b: b.date)
        history = history[-HISTORY_BARS:]
        logger.debug(f"{symbol}: {len(history)} bars from TIME_SERIES_DAILY")

        return finish_result(ProviderResult(provider="alphavantage", history=history))

    async def fetch_quotes(self, symbols: List[str]) -> List[Quote]:
        """GLOBAL_QUOTE is one symbol per request; callers cap the list."""
        quotes = []
        for sym in symbols:
            try:
                data = await self._get_json(self.BASE_URL, params={
                    "function": "GLOBAL_QUOTE",
                    "symbol": sym,
                    "apikey": self.api_key,
                })
                parsed = GlobalQuoteResponse.model_validate(data)
                if parsed.failure():
                    # Throttled: later symbols will fail the same way
                    logger.warn(f"GLOBAL_QUOTE stopped at {sym}: {parsed.failure()}")
                    break
                gq = parsed.global_quote
                if not gq or not gq.price:
                    continue
                quotes.append(Quote(
                    symbol=gq.symbol,
                    price=_to_float(gq.price),
                    change=_to_float(gq.change),
                    change_percent=_to_float(gq.change_percent),
                    previous_close=_to_float(gq.previous_close),
                    provider="alphavantage",
                ))
            except (ProviderUnavailable, ValueError) as e:
                logger.warn(f"GLOBAL_QUOTE failed for {sym}: {e}")
        return quotes
