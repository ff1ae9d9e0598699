# backend/portfolio_tracker/services/market_data/alpha_vantage.py
"""
Alpha Vantage market data provider implementation.

Secondary provider used by the gateway when Yahoo Finance fails or has no
data. Talks to the Alpha Vantage REST API directly with httpx.

Endpoints used:
- GLOBAL_QUOTE        latest price
- TIME_SERIES_DAILY   daily OHLC (compact = ~100 days, full = 20+ years)
- SYMBOL_SEARCH       display name lookup

Error payloads come back with HTTP 200:
- {"Note": ...} / {"Information": ...}   rate limit (free tier: 5/min, 500/day)
- {"Error Message": ...}                 unknown symbol

Alpha Vantage has no batch quote endpoint on the free tier, so get_quotes
falls back to the base class per-symbol loop; the gateway's throttle
spaces those calls out.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from portfolio_tracker.services.constants import EXTERNAL_API_TIMEOUT_SECONDS
from portfolio_tracker.services.exceptions import (
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
)
from portfolio_tracker.services.market_data.base import (
    MarketDataProvider,
    Quote,
    ClosePrice,
    OpenClose,
)

logger = logging.getLogger(__name__)

# Daily series older than this need outputsize=full
_COMPACT_WINDOW_DAYS = 140


class AlphaVantageProvider(MarketDataProvider):
    """
    Alpha Vantage implementation of MarketDataProvider.

    Uses longer backoff than Yahoo because the free tier's limit is per
    minute.

    Args:
        api_key: Alpha Vantage API key
        base_url: Query endpoint
        client: Optional pre-built httpx.Client (tests inject a MockTransport)
    """

    RETRY_MIN_WAIT = 2
    RETRY_MAX_WAIT = 30
    RETRY_MULTIPLIER = 2

    def __init__(
            self,
            api_key: str,
            base_url: str = "https://www.alphavantage.co/query",
            client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Alpha Vantage requires an API key")
        self._api_key = api_key
        self._base_url = base_url
        self._client = client or httpx.Client(timeout=EXTERNAL_API_TIMEOUT_SECONDS)
        logger.info("AlphaVantageProvider initialized")

    @property
    def name(self) -> str:
        return "alphavantage"

    def close(self) -> None:
        self._client.close()

    # =========================================================================
    # QUOTES
    # =========================================================================

    def get_quote(self, symbol: str) -> Quote | None:
        symbol = symbol.strip().upper()
        payload = self._execute_with_retry(
            self._request, symbol, function="GLOBAL_QUOTE", symbol=symbol,
        )

        quote = payload.get("Global Quote") or {}
        price = _to_decimal(quote.get("05. price"))
        if price is None or price <= 0:
            logger.warning(f"Alpha Vantage returned no usable price for {symbol}")
            return None

        change_pct_raw = str(quote.get("10. change percent") or "0").rstrip("%")

        return Quote(
            symbol=symbol,
            price=price,
            change=_to_decimal(quote.get("09. change")) or Decimal(0),
            change_pct=_to_decimal(change_pct_raw) or Decimal(0),
            volume=_to_int(quote.get("06. volume")),
            timestamp=datetime.now(timezone.utc),
            provider=self.name,
        )

    # =========================================================================
    # HISTORICAL PRICES
    # =========================================================================

    def get_historical_price_range(
            self,
            symbol: str,
            start_date: date,
            end_date: date,
    ) -> list[ClosePrice]:
        series = self._daily_series(symbol, start_date)
        closes = []
        for day, bar in series.items():
            if not start_date <= day <= end_date:
                continue
            close = _to_decimal(bar.get("4. close"))
            if close is not None and close > 0:
                closes.append(ClosePrice(date=day, close=close))
        return sorted(closes, key=lambda c: c.date)

    def get_historical_open_close(self, symbol: str, on: date) -> OpenClose | None:
        bar = self._daily_series(symbol, on).get(on)
        if bar is None:
            return None
        close = _to_decimal(bar.get("4. close"))
        if close is None or close <= 0:
            return None
        open_price = _to_decimal(bar.get("1. open"))
        if open_price is None or open_price <= 0:
            open_price = close
        return OpenClose(date=on, open=open_price, close=close)

    def _daily_series(self, symbol: str, oldest_needed: date) -> dict[date, dict[str, str]]:
        symbol = symbol.strip().upper()
        age = (datetime.now(timezone.utc).date() - oldest_needed).days
        output_size = "full" if age > _COMPACT_WINDOW_DAYS else "compact"

        payload = self._execute_with_retry(
            self._request, symbol,
            function="TIME_SERIES_DAILY", symbol=symbol, outputsize=output_size,
        )

        raw = payload.get("Time Series (Daily)") or {}
        series: dict[date, dict[str, str]] = {}
        for day_str, bar in raw.items():
            try:
                series[date.fromisoformat(day_str)] = bar
            except ValueError:
                logger.warning(f"Skipping unparseable Alpha Vantage date '{day_str}' for {symbol}")
        return series

    # =========================================================================
    # METADATA
    # =========================================================================

    def get_symbol_name(self, symbol: str) -> str | None:
        symbol = symbol.strip().upper()
        payload = self._execute_with_retry(
            self._request, symbol, function="SYMBOL_SEARCH", keywords=symbol,
        )
        for match in payload.get("bestMatches") or []:
            if str(match.get("1. symbol", "")).upper() == symbol:
                return match.get("2. name")
        return None

    # =========================================================================
    # HTTP
    # =========================================================================

    def _request(self, label: str, **params: str) -> dict[str, Any]:
        """
        Issue one API call and classify error payloads.

        Raises:
            RateLimitError: Note/Information payload or HTTP 429
            TickerNotFoundError: Error Message payload
            ProviderUnavailableError: Transport errors, non-2xx, bad JSON
        """
        params = {**params, "apikey": self._api_key}
        try:
            response = self._client.get(self._base_url, params=params)
        except httpx.RequestError as e:
            raise ProviderUnavailableError(provider=self.name, reason=str(e)) from e

        if response.status_code == 429:
            raise RateLimitError(provider=self.name)
        if response.status_code >= 400:
            raise ProviderUnavailableError(
                provider=self.name,
                reason=f"HTTP {response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderUnavailableError(provider=self.name, reason="invalid JSON") from e

        if not isinstance(payload, dict):
            raise ProviderUnavailableError(provider=self.name, reason="unexpected payload")

        if "Note" in payload or "Information" in payload:
            logger.warning(f"Alpha Vantage rate limit hit for {label}")
            raise RateLimitError(provider=self.name, retry_after=60)
        if "Error Message" in payload:
            raise TickerNotFoundError(ticker=label, provider=self.name)

        return payload


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
