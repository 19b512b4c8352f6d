"""Redis quote cache.

key quote:{SYMBOL} -> {"price": "187.20", "as_of": ISO-8601, "fetched_at": ISO-8601}

Entries expire after the freshness window (Redis TTL); readers also check
PriceQuote.is_fresh so a clock-skewed or manually written entry is not trusted.
"""

import json
from datetime import datetime
from decimal import Decimal

import redis.asyncio as aioredis

from src.bp_common.redis_client import get_redis
from src.bp_order.domain.models import PriceQuote

_KEY_PREFIX = "quote:"


def quote_key(symbol: str) -> str:
    return f"{_KEY_PREFIX}{symbol.upper()}"


class RedisQuoteCache:
    def __init__(self, client: aioredis.Redis | None = None) -> None:
        self._client = client

    async def _redis(self) -> aioredis.Redis:
        if self._client is None:
            self._client = await get_redis()
        return self._client

    async def get(self, symbol: str) -> PriceQuote | None:
        client = await self._redis()
        raw = await client.get(quote_key(symbol))
        if raw is None:
            return None
        data = json.loads(raw)
        fetched_at = data.get("fetched_at")
        return PriceQuote(
            symbol=symbol.upper(),
            price=Decimal(data["price"]),
            as_of=datetime.fromisoformat(data["as_of"]),
            fetched_at=datetime.fromisoformat(fetched_at) if fetched_at else None,
        )

    async def set(self, quote: PriceQuote, ttl_seconds: int) -> None:
        client = await self._redis()
        payload = json.dumps(
            {
                "price": str(quote.price),
                "as_of": quote.as_of.isoformat(),
                "fetched_at": quote.fetched_at.isoformat() if quote.fetched_at else None,
            }
        )
        await client.set(quote_key(quote.symbol), payload, ex=ttl_seconds)
