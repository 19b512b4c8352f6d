"""HTTP price collaborator (Finnhub-compatible /quote endpoint).

GET {base}/quote?symbol=AAPL&token=...  ->  {"c": 187.2, "t": 1718900000, ...}
`c` is the last price, `t` the unix timestamp of that price. A zero price is
what the provider returns for unknown symbols and is treated as unavailable.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

import httpx

from config.settings import settings
from src.bp_common.datetime_utils import utc_now
from src.bp_common.errors import PriceUnavailableError
from src.bp_order.domain.models import PriceQuote

logger = logging.getLogger(__name__)


class HttpQuoteSource:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.QUOTE_API_BASE_URL).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.QUOTE_API_KEY
        self._timeout = timeout_seconds or settings.QUOTE_TIMEOUT_SECONDS
        self._transport = transport

    async def get_price(self, symbol: str) -> PriceQuote:
        params = {"symbol": symbol}
        if self._api_key:
            params["token"] = self._api_key
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.get(f"{self._base_url}/quote", params=params)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise PriceUnavailableError(symbol, f"HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise PriceUnavailableError(symbol, "quote request timed out") from e
        except httpx.RequestError as e:
            raise PriceUnavailableError(symbol, f"request error: {e}") from e
        except ValueError as e:
            raise PriceUnavailableError(symbol, "malformed quote payload") from e
        return _parse_quote(symbol, payload)


def _parse_quote(symbol: str, payload: object) -> PriceQuote:
    if not isinstance(payload, dict) or payload.get("c") is None:
        raise PriceUnavailableError(symbol, "quote payload has no price")
    try:
        price = Decimal(str(payload["c"]))
    except InvalidOperation as e:
        raise PriceUnavailableError(symbol, f"unparseable price {payload['c']!r}") from e
    if not price.is_finite() or price <= 0:
        raise PriceUnavailableError(symbol, f"non-positive price {price}")

    ts = payload.get("t")
    as_of = datetime.fromtimestamp(int(ts), tz=timezone.utc) if ts else utc_now()
    logger.debug("Fetched quote %s=%s as of %s", symbol, price, as_of.isoformat())
    return PriceQuote(symbol=symbol, price=price, as_of=as_of, fetched_at=utc_now())
