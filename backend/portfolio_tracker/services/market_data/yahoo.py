# backend/portfolio_tracker/services/market_data/yahoo.py
"""
Yahoo Finance market data provider implementation.

Primary provider, backed by the yfinance library.

Key features:
- Symbol mapping for non-US listings (A-shares, Hong Kong)
- Batch quotes via yf.Tickers
- Daily OHLC history via Ticker.history() (raw, not dividend-adjusted)
- Retry mechanism inherited from base class

Limitations:
- Rate limits exist but are undocumented
- Quotes may be delayed 15-20 minutes
"""

import logging
import math
import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pandas as pd
import yfinance as yf

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
    classify_provider_error,
)

logger = logging.getLogger(__name__)


class YahooFinanceProvider(MarketDataProvider):
    """
    Yahoo Finance implementation of MarketDataProvider.

    Retry Behavior (inherited from MarketDataProvider):
        - Retries on ProviderUnavailableError and RateLimitError
        - Does NOT retry on TickerNotFoundError
        - Exponential backoff, 3 attempts

    Example:
        provider = YahooFinanceProvider()
        quote = provider.get_quote("AAPL")
        bar = provider.get_historical_open_close("AAPL", date(2024, 3, 1))
    """

    MAX_BATCH_SIZE: int = 100

    _A_SHARE = re.compile(r"^\d{6}$")
    _HK_SHARE = re.compile(r"^\d{4,5}$")

    def __init__(self, timeout: int = 10) -> None:
        self._timeout = timeout
        logger.info(f"YahooFinanceProvider initialized (timeout={timeout}s)")

    @property
    def name(self) -> str:
        return "yahoo"

    # =========================================================================
    # QUOTES
    # =========================================================================

    def get_quote(self, symbol: str) -> Quote | None:
        return self._execute_with_retry(self._fetch_quote, symbol)

    def _fetch_quote(self, symbol: str) -> Quote | None:
        symbol = symbol.strip().upper()
        yahoo_symbol = self.to_yahoo_symbol(symbol)
        logger.debug(f"Fetching quote for {yahoo_symbol}")

        try:
            return self._quote_from_ticker(symbol, yf.Ticker(yahoo_symbol))
        except Exception as e:
            raise self._map_error(symbol, e) from e

    def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        """Batch quotes through yf.Tickers, chunked by MAX_BATCH_SIZE."""
        result: dict[str, Quote] = {}
        normalized = [s.strip().upper() for s in symbols if s and s.strip()]

        for i in range(0, len(normalized), self.MAX_BATCH_SIZE):
            chunk = normalized[i:i + self.MAX_BATCH_SIZE]
            result.update(self._execute_with_retry(self._fetch_quotes_chunk, chunk))

        return result

    def _fetch_quotes_chunk(self, symbols: list[str]) -> dict[str, Quote]:
        by_yahoo = {self.to_yahoo_symbol(s): s for s in symbols}
        result: dict[str, Quote] = {}

        try:
            yf_tickers = yf.Tickers(" ".join(by_yahoo))
        except Exception as e:
            raise self._map_error(",".join(symbols), e) from e

        for yahoo_symbol, symbol in by_yahoo.items():
            yf_ticker = yf_tickers.tickers.get(yahoo_symbol)
            if yf_ticker is None:
                continue
            try:
                quote = self._quote_from_ticker(symbol, yf_ticker)
            except Exception as e:
                logger.warning(f"Yahoo batch quote failed for {symbol}: {e}")
                continue
            if quote is not None:
                result[symbol] = quote

        return result

    def _quote_from_ticker(self, symbol: str, yf_ticker: Any) -> Quote | None:
        fast_info = yf_ticker.fast_info
        price = self._to_decimal(fast_info.last_price)
        if price is None or price <= 0:
            logger.warning(f"Yahoo returned no usable price for {symbol}")
            return None

        previous_close = self._to_decimal(fast_info.previous_close)
        change = price - previous_close if previous_close else Decimal(0)
        change_pct = (change / previous_close * 100) if previous_close else Decimal(0)

        return Quote(
            symbol=symbol,
            price=price,
            change=change,
            change_pct=change_pct,
            volume=self._to_int(getattr(fast_info, "last_volume", None)),
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
        df = self._execute_with_retry(self._fetch_history, symbol, start_date, end_date)
        closes = []
        for price_date, row in self._iter_rows(df):
            close = self._to_decimal(row.get("Close"))
            if close is None or close <= 0:
                continue
            if start_date <= price_date <= end_date:
                closes.append(ClosePrice(date=price_date, close=close))
        return sorted(closes, key=lambda c: c.date)

    def get_historical_open_close(self, symbol: str, on: date) -> OpenClose | None:
        df = self._execute_with_retry(self._fetch_history, symbol, on, on)
        for price_date, row in self._iter_rows(df):
            if price_date != on:
                continue
            close = self._to_decimal(row.get("Close"))
            if close is None or close <= 0:
                return None
            open_price = self._to_decimal(row.get("Open"))
            if open_price is None or open_price <= 0:
                open_price = close
            return OpenClose(date=on, open=open_price, close=close)
        return None

    def _fetch_history(self, symbol: str, start_date: date, end_date: date) -> pd.DataFrame:
        """Raw daily bars; Yahoo's end date is exclusive so one day is added."""
        symbol = symbol.strip().upper()
        yahoo_symbol = self.to_yahoo_symbol(symbol)
        logger.debug(f"Fetching history for {yahoo_symbol}: {start_date} to {end_date}")

        try:
            df = yf.Ticker(yahoo_symbol).history(
                start=start_date.isoformat(),
                end=(end_date + timedelta(days=1)).isoformat(),
                interval="1d",
                auto_adjust=False,
            )
        except Exception as e:
            raise self._map_error(symbol, e) from e

        if df is None or df.empty:
            logger.debug(f"No Yahoo history for {yahoo_symbol} between {start_date} and {end_date}")
            return pd.DataFrame()
        return df

    @staticmethod
    def _iter_rows(df: pd.DataFrame):
        for idx, row in df.iterrows():
            price_date = idx.date() if hasattr(idx, "date") else idx
            yield price_date, row

    # =========================================================================
    # METADATA
    # =========================================================================

    def get_symbol_name(self, symbol: str) -> str | None:
        symbol = symbol.strip().upper()
        try:
            info = yf.Ticker(self.to_yahoo_symbol(symbol)).info
        except Exception as e:
            raise self._map_error(symbol, e) from e
        if not info:
            return None
        return info.get("longName") or info.get("shortName")

    # =========================================================================
    # HELPER METHODS
    # =========================================================================

    @classmethod
    def to_yahoo_symbol(cls, symbol: str) -> str:
        """
        Map a plain symbol to Yahoo's format.

        - Already suffixed ("SAP.DE") is kept
        - 6 digits: Shanghai (.SS) if starting with 6, else Shenzhen (.SZ)
        - 4-5 digits: Hong Kong (.HK), zero-padded to 4
        - Anything else is treated as a US listing
        """
        upper = symbol.strip().upper()
        if "." in upper:
            return upper
        if cls._A_SHARE.match(upper):
            return f"{upper}.SS" if upper.startswith("6") else f"{upper}.SZ"
        if cls._HK_SHARE.match(upper):
            return f"{upper.lstrip('0').zfill(4)}.HK"
        return upper

    def _map_error(self, symbol: str, error: Exception) -> Exception:
        if isinstance(error, (TickerNotFoundError, RateLimitError, ProviderUnavailableError)):
            return error
        mapped = classify_provider_error(self.name, symbol, error)
        if isinstance(mapped, ProviderUnavailableError):
            logger.error(f"Yahoo Finance error for {symbol}: {error}")
        return mapped

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        """Convert a value to Decimal, returning None for NaN/None."""
        if value is None:
            return None
        try:
            if math.isnan(float(value)):
                return None
            return Decimal(str(value)).quantize(Decimal("0.00000001"))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _to_int(value: Any) -> int | None:
        """Convert a value to int, returning None for NaN/None."""
        if value is None:
            return None
        try:
            if math.isnan(float(value)):
                return None
            return int(value)
        except (TypeError, ValueError):
            return None
