from typing import List, Optional

import httpx

from crosswatch.core.logger import Logger
from crosswatch.services.data_provider.base import (
    BaseDataProvider,
    ProviderResult,
    ProviderUnavailable,
    Quote,
)
from crosswatch.services.data_provider.yahoo_provider import YahooProvider
from crosswatch.services.data_provider.alpha_vantage_provider import AlphaVantageProvider
from crosswatch.services.data_provider.fmp_provider import FMPProvider

logger = Logger("DataProvider")


class DataProviderService:
    """Facade for price data with strict ordered fallback.

    History: Yahoo -> Alpha Vantage -> FMP.
    Quotes:  Yahoo -> FMP (batch) -> Alpha Vantage (one at a time, capped).

    The first provider returning a valid non-empty result wins; the rest are
    not called. Failures are never retried within a call.
    """

    def __init__(
        self,
        history_providers: List[BaseDataProvider],
        quote_providers: List[BaseDataProvider] = None,
        quote_fallback_limit: int = 5,
    ):
        self.history_providers = history_providers
        self.quote_providers = quote_providers if quote_providers is not None else history_providers
        self.quote_fallback_limit = quote_fallback_limit

    @classmethod
    def create(
        cls,
        client: httpx.AsyncClient,
        alpha_vantage_key: Optional[str] = None,
        fmp_key: Optional[str] = None,
        quote_fallback_limit: int = 5,
    ) -> "DataProviderService":
        yahoo = YahooProvider(client)
        alpha = AlphaVantageProvider(client, alpha_vantage_key)
        fmp = FMPProvider(client, fmp_key)
        return cls(
            history_providers=[yahoo, alpha, fmp],
            quote_providers=[yahoo, fmp, alpha],
            quote_fallback_limit=quote_fallback_limit,
        )

    async def resolve_history(self, symbol: str, range_spec: str = "1mo") -> Optional[ProviderResult]:
        """Resolve daily bars for a symbol. None means every provider failed."""
        errors = []

        for provider in self.history_providers:
            name = provider.get_name()
            if not provider.is_configured():
                logger.debug(f"{name}: no API key, skipped")
                continue
            try:
                result = await provider.fetch_history(provider.map_symbol(symbol), range_spec)
            except ProviderUnavailable as e:
                logger.warn(f"History for {symbol} failed on {name}: {e.reason}")
                errors.append(str(e))
                continue

            if provider is not self.history_providers[0]:
                logger.info(f"Fetched {len(result.history)} bars for {symbol} from {name}")
            return result

        logger.warn(f"All data providers failed for {symbol}: {errors}")
        return None

    async def resolve_quotes(self, symbols: List[str]) -> List[Quote]:
        """Fetch current quotes. Returns [] when every provider fails."""
        if not symbols:
            return []

        for provider in self.quote_providers:
            name = provider.get_name()
            if not provider.is_configured():
                logger.debug(f"{name}: no API key, skipped")
                continue

            requested = symbols
            if not provider.batch_quotes:
                # One request per symbol against a low rate limit
                requested = symbols[:self.quote_fallback_limit]

            mapped = {provider.map_symbol(s): s for s in requested}
            try:
                quotes = await provider.fetch_quotes(list(mapped))
            except ProviderUnavailable as e:
                logger.warn(f"Quotes failed on {name}: {e.reason}")
                continue

            if quotes:
                for q in quotes:
                    q.symbol = mapped.get(q.symbol, q.symbol)
                return quotes
            logger.debug(f"{name}: no quotes returned")

        logger.warn(f"Failed to get quotes from all providers: {symbols}")
        return []
