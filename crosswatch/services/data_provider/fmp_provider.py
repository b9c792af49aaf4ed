from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from crosswatch.core.logger import Logger
from crosswatch.services.data_provider.base import (
    BaseDataProvider,
    Bar,
    ProviderResult,
    ProviderUnavailable,
    Quote,
    finish_result,
    round_price,
)

logger = Logger("FMPProvider")

HISTORY_BARS = 90


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class HistoricalBar(_Schema):
    date: str
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: float
    volume: Optional[float] = 0


class HistoricalResponse(_Schema):
    symbol: Optional[str] = None
    historical: List[HistoricalBar] = Field(default_factory=list)
    error_message: Optional[str] = Field(None, alias="Error Message")


class QuoteItem(_Schema):
    symbol: str
    name: Optional[str] = None
    price: Optional[float] = None
    change: Optional[float] = None
    changes_percentage: Optional[float] = Field(None, alias="changesPercentage")
    previous_close: Optional[float] = Field(None, alias="previousClose")
    exchange: Optional[str] = None


_quote_list = TypeAdapter(List[QuoteItem])


class FMPProvider(BaseDataProvider):
    """Financial Modeling Prep (free tier ~250 req/day). Indexes by plain ticker."""

    BASE_URL = "https://financialmodelingprep.com/api/v3"

    def get_name(self) -> str:
        return "fmp"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def fetch_history(self, symbol: str, range_spec: str) -> ProviderResult:
        data = await self._get_json(
            f"{self.BASE_URL}/historical-price-full/{symbol}",
            params={"timeseries": HISTORY_BARS, "apikey": self.api_key},
        )
        if isinstance(data, dict) and data.get("Error Message"):
            raise ProviderUnavailable("fmp", data["Error Message"])
        try:
            parsed = HistoricalResponse.model_validate(data)
        except ValidationError as e:
            raise ProviderUnavailable("fmp", "unexpected historical shape") from e
        if not parsed.historical:
            raise ProviderUnavailable("fmp", "no data")

        history = []
        try:
            for h in parsed.historical:
                close = round_price(h.close)
                if close is None:
                    continue
                history.append(Bar(
                    date=h.date[:10],
                    open=round_price(h.open),
                    high=round_price(h.high),
                    low=round_price(h.low),
                    close=close,
                    volume=max(int(h.volume or 0), 0),
                ))
        except (ValueError, OverflowError) as e:
            raise ProviderUnavailable("fmp", f"bad bar field: {e}") from e
        history.sort(key=lambda b: b.date)
        logger.debug(f"{symbol}: {len(history)} bars from historical-price-full")

        return finish_result(ProviderResult(
            provider="fmp",
            history=history,
            exchange=parsed.symbol,
        ))

    async def fetch_quotes(self, symbols: List[str]) -> List[Quote]:
        data: Any = await self._get_json(
            f"{self.BASE_URL}/quote/{','.join(symbols)}",
            params={"apikey": self.api_key},
        )
        if isinstance(data, dict) and data.get("Error Message"):
            raise ProviderUnavailable("fmp", data["Error Message"])
        try:
            items = _quote_list.validate_python(data)
        except ValidationError as e:
            raise ProviderUnavailable("fmp", "unexpected quote shape") from e

        return [
            Quote(
                symbol=q.symbol,
                name=q.name,
                price=q.price,
                change=q.change,
                change_percent=q.changes_percentage,
                previous_close=q.previous_close,
                exchange=q.exchange,
                provider="fmp",
            )
            for q in items
        ]
