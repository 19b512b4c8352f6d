"""PriceResolver: cached quote when fresh, otherwise fetch and re-cache.

Runs before the order transaction opens so no row lock is held across the
network call to the quote provider.
"""

import logging
from decimal import Decimal

from config.settings import settings
from src.bp_common.datetime_utils import utc_now
from src.bp_common.enums import OrderType
from src.bp_order.domain.models import PriceQuote
from src.bp_order.domain.repository import QuoteCacheProtocol, QuoteSourceProtocol
from src.bp_order.infrastructure.quote_cache import RedisQuoteCache
from src.bp_order.infrastructure.quotes import HttpQuoteSource

logger = logging.getLogger(__name__)


class PriceResolver:
    def __init__(
        self,
        source: QuoteSourceProtocol | None = None,
        cache: QuoteCacheProtocol | None = None,
        freshness_seconds: int | None = None,
    ) -> None:
        self._source: QuoteSourceProtocol = source or HttpQuoteSource()
        self._cache: QuoteCacheProtocol = cache or RedisQuoteCache()
        self._window = freshness_seconds or settings.MARKET_DATA_FRESHNESS_SECONDS

    async def resolve(self, symbol: str) -> PriceQuote:
        """Raises PriceUnavailableError when the provider cannot price the symbol."""
        symbol = symbol.upper()
        cached = await self._cache.get(symbol)
        if cached is not None and cached.is_fresh(utc_now(), self._window):
            return cached
        quote = await self._source.get_price(symbol)
        await self._cache.set(quote, self._window)
        logger.debug("Quote cache refreshed for %s at %s", symbol, quote.price)
        return quote

    async def effective_price(
        self, symbol: str, order_type: str, limit_price: Decimal | None
    ) -> Decimal:
        """limit_price for limit orders, else the resolved quote."""
        if order_type == OrderType.LIMIT.value and limit_price is not None:
            return limit_price
        return (await self.resolve(symbol)).price
